"""HTTP API for registering, listing, and deleting users."""

from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Sequence

import anyio
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import FormOptions
from .database import Database, DuplicateEmailError, StorageError
from .models import User
from .validation import normalize_fields, validate_registration

logger = logging.getLogger("registration.service")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

REGISTERED = "Registration successful!"
DUPLICATE_EMAIL = "This email address is already registered."
REGISTER_FAILED = "Database error occurred. Please try again."
INVALID_BODY = "Request body must be a JSON object."
USER_NOT_FOUND = "User not found."
USER_DELETED = "User deleted successfully."
LIST_FAILED = "Error retrieving users."
LOAD_FAILED = "Error retrieving user."
DELETE_FAILED = "Error deleting user."
ENDPOINT_NOT_FOUND = "Endpoint not found."
UNEXPECTED_ERROR = "Something went wrong!"

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class RegistrationError(Exception):
    """An error that is reported to the client as ``{success: false}``."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class UserResponse(BaseModel):
    id: int
    name: str
    gender: str
    email: str
    country: str
    created_at: datetime


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    userId: int


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserResponse]


class UserDetailResponse(BaseModel):
    success: bool = True
    user: UserResponse


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    success: bool = True
    status: str


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        gender=user.gender,
        email=user.email,
        country=user.country,
        created_at=user.created_at,
    )


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


async def _read_registration(request: Request) -> Dict[str, object]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(_FORM_CONTENT_TYPES):
        form = await request.form()
        return dict(form)

    # An empty body carries no fields, so the missing-fields check reports it.
    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = await request.json()
    except ValueError as exc:
        raise RegistrationError(status.HTTP_400_BAD_REQUEST, INVALID_BODY) from exc
    if not isinstance(payload, dict):
        raise RegistrationError(status.HTTP_400_BAD_REQUEST, INVALID_BODY)
    return payload


def create_app(
    *,
    database: Database,
    options: Optional[FormOptions] = None,
    cors_origins: Optional[Sequence[str]] = None,
) -> FastAPI:
    """Create the registration API backed by ``database``.

    The database connection is opened when the application starts and
    closed when it shuts down.
    """

    form_options = options or FormOptions()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        database.open()
        database.initialize()
        try:
            yield
        finally:
            logger.info("Closing database connection...")
            database.close()

    app = FastAPI(
        title="User Registration",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.options = form_options

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins) if cors_origins is not None else ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

    @app.get("/", response_class=HTMLResponse, include_in_schema=False, name="registration_form")
    async def registration_form(request: Request) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "index.html",
            {"genders": form_options.genders, "countries": form_options.countries},
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/register", response_model=RegisterResponse)
    async def register(request: Request) -> RegisterResponse:
        fields = normalize_fields(await _read_registration(request))

        message = validate_registration(fields, form_options)
        if message is not None:
            raise RegistrationError(status.HTTP_400_BAD_REQUEST, message)

        create = functools.partial(database.create_user, **fields)
        try:
            user = await anyio.to_thread.run_sync(create)
        except DuplicateEmailError as exc:
            logger.info("Rejected duplicate registration for %s", exc.email)
            raise RegistrationError(status.HTTP_400_BAD_REQUEST, DUPLICATE_EMAIL) from exc
        except StorageError as exc:
            logger.error("Database error while registering user: %s", exc.__cause__ or exc)
            raise RegistrationError(status.HTTP_500_INTERNAL_SERVER_ERROR, REGISTER_FAILED) from exc

        logger.info("User registered with ID: %s", user.id)
        return RegisterResponse(message=REGISTERED, userId=user.id)

    @app.get("/users", response_model=UserListResponse)
    async def list_users() -> UserListResponse:
        try:
            users = await anyio.to_thread.run_sync(database.list_users)
        except StorageError as exc:
            logger.error("Database error while listing users: %s", exc.__cause__ or exc)
            raise RegistrationError(status.HTTP_500_INTERNAL_SERVER_ERROR, LIST_FAILED) from exc
        return UserListResponse(users=[user_to_response(user) for user in users])

    @app.get("/users/{user_id:int}", response_model=UserDetailResponse)
    async def read_user(user_id: int) -> UserDetailResponse:
        try:
            user = await anyio.to_thread.run_sync(database.get_user, user_id)
        except StorageError as exc:
            logger.error("Database error while loading user %s: %s", user_id, exc.__cause__ or exc)
            raise RegistrationError(status.HTTP_500_INTERNAL_SERVER_ERROR, LOAD_FAILED) from exc
        if user is None:
            raise RegistrationError(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND)
        return UserDetailResponse(user=user_to_response(user))

    @app.delete("/users/{user_id:int}", response_model=MessageResponse)
    async def delete_user(user_id: int) -> MessageResponse:
        try:
            deleted = await anyio.to_thread.run_sync(database.delete_user, user_id)
        except StorageError as exc:
            logger.error("Database error while deleting user %s: %s", user_id, exc.__cause__ or exc)
            raise RegistrationError(status.HTTP_500_INTERNAL_SERVER_ERROR, DELETE_FAILED) from exc
        if not deleted:
            raise RegistrationError(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND)
        logger.info("Deleted user %s", user_id)
        return MessageResponse(message=USER_DELETED)

    @app.exception_handler(RegistrationError)
    async def handle_registration_error(_: Request, exc: RegistrationError) -> JSONResponse:
        return _failure(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown paths and unsupported methods are both reported as missing endpoints.
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return _failure(status.HTTP_404_NOT_FOUND, ENDPOINT_NOT_FOUND)
        return _failure(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error while serving %s %s", request.method, request.url.path, exc_info=exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, UNEXPECTED_ERROR)

    return app


__all__ = ["RegistrationError", "create_app", "user_to_response"]
