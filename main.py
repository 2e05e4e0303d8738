"""Command-line interface for the user registration service."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Callable, List, Optional, Sequence, Tuple

import anyio

from registration.client import (
    CONFIRMATION_DELAY,
    DEFAULT_SERVICE_URL,
    RegistrationClientError,
    RegistrationForm,
    TimerScheduler,
    UIState,
    fetch_users,
)
from registration.config import Settings
from registration.database import Database, StorageError, resolve_database_path
from registration.validation import FIELDS

logger = logging.getLogger("registration.main")

_PROMPTS = {
    "name": "Full name",
    "gender": "Gender",
    "email": "Email address",
    "country": "Country",
}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User registration service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the registration database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP registration service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: $PORT or 3001)",
    )

    for name, help_text in (
        ("users", "List registered users from a running service"),
        ("register", "Fill in the registration form from the terminal"),
    ):
        client_parser = subparsers.add_parser(name, help=help_text)
        client_parser.add_argument(
            "--service-url",
            default=None,
            help=f"Base URL of a running registration service (default: {DEFAULT_SERVICE_URL})",
        )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "users", "register"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    db_path = resolve_database_path(settings.database_path)
    database = Database(db_path)
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def _serve(*, database: Database, settings: Settings, host: str, port: int) -> None:
    from registration.service import create_app
    import uvicorn

    logger.info("Starting registration service on http://%s:%s", host, port)

    app = create_app(
        database=database,
        options=settings.options,
        cors_origins=settings.cors_origins,
    )
    uvicorn.run(app, host=host, port=port, log_level="info")


def _list_users(service_url: str) -> int:
    try:
        users = anyio.run(fetch_users, service_url)
    except RegistrationClientError as exc:
        print(exc)
        return 1

    if not users:
        print("No users are currently registered.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Gender':<10}  {'Email':<32}  {'Country':<8}  Created")
    print("-" * 100)
    for user in users:
        print(
            f"{user.get('id', '?'):>4}  {str(user.get('name', '')):<24}  "
            f"{str(user.get('gender', '')):<10}  {str(user.get('email', '')):<32}  "
            f"{str(user.get('country', '')):<8}  {user.get('created_at', '')}"
        )
    return 0


def _message_printer() -> Callable[[UIState], None]:
    """Return a renderer that prints each message the form starts showing."""

    last: List[Optional[Tuple[Optional[str], Optional[str]]]] = [None]

    def render(state: UIState) -> None:
        shown = (state.message, state.message_kind) if state.message_visible else None
        if shown is not None and shown != last[0]:
            print(f"[{state.message_kind}] {state.message}")
        last[0] = shown

    return render


def _register_interactively(service_url: str, settings: Settings) -> int:
    scheduler = TimerScheduler()
    form = RegistrationForm(base_url=service_url, scheduler=scheduler, on_change=_message_printer())

    print("Register a new user (press Ctrl+C to cancel).")
    print(f"Genders: {', '.join(settings.options.genders)}")
    print(f"Countries: {', '.join(settings.options.countries)}\n")

    try:
        while True:
            for field in FIELDS:
                current = form.state.fields[field]
                suffix = f" [{current}]" if current else ""
                value = input(f"{_PROMPTS[field]}{suffix}: ")
                if value or not current:
                    form.set_field(field, value)
                form.press_enter(field)
                if field == "email":
                    form.blur_email()

            user_id = anyio.run(form.submit)
            if user_id is not None:
                scheduler.wait(CONFIRMATION_DELAY + 1.0)
                return 0

            again = input("Try again? [Y/n]: ").strip().lower()
            if again in {"n", "no"}:
                return 1
    except (KeyboardInterrupt, EOFError):
        print("\nRegistration cancelled.")
        return 1
    finally:
        scheduler.cancel_all()


def main(argv: Sequence[str] | None = None) -> Optional[int]:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = Settings.from_env()

    if args.command == "users":
        return _list_users(args.service_url or DEFAULT_SERVICE_URL)
    if args.command == "register":
        return _register_interactively(args.service_url or DEFAULT_SERVICE_URL, settings)

    try:
        database = _initialise_database(settings)
    except StorageError as exc:
        logger.error("Error opening database: %s", exc.__cause__ or exc)
        return 1

    if args.command == "serve":
        port = args.port if args.port is not None else settings.port
        _serve(database=database, settings=settings, host=args.host, port=port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
