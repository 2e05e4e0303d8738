"""Registration form controller and HTTP client helpers.

:class:`RegistrationForm` owns the state of a registration form (field
values, whether the controls are enabled, the message shown to the user and
the focused control) and changes it only through the transitions a user can
trigger: typing, pressing Enter, leaving the email field and submitting.
Rendering is left to the caller, which receives the state after every
transition through ``on_change``.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Protocol

import httpx

from .validation import FIELDS, INVALID_EMAIL, is_valid_email, normalize_fields, validate_form

logger = logging.getLogger("registration.client")

DEFAULT_SERVICE_URL = "http://localhost:3001"

SUBMIT_CONTROL = "submit"

MESSAGE_LOADING = "loading"
MESSAGE_SUCCESS = "success"
MESSAGE_ERROR = "error"

REGISTERING = "Registering..."
NETWORK_ERROR = "Network error. Please check your connection and try again."

CONFIRMATION_DELAY = 2.0
SUCCESS_HIDE_DELAY = 5.0


class RegistrationClientError(RuntimeError):
    """Raised when the registration service cannot be queried."""


@dataclass
class UIState:
    """Everything the form displays."""

    fields: Dict[str, str] = field(default_factory=lambda: {name: "" for name in FIELDS})
    enabled: bool = True
    message: Optional[str] = None
    message_kind: Optional[str] = None
    message_visible: bool = False
    focus: Optional[str] = None

    def snapshot(self) -> "UIState":
        return replace(self, fields=dict(self.fields))


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> object:
        ...


class TimerScheduler:
    """Run delayed callbacks on daemon timer threads."""

    def __init__(self) -> None:
        self._timers: List[threading.Timer] = []
        self._lock = threading.Lock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        with self._lock:
            self._timers = [existing for existing in self._timers if existing.is_alive()]
            self._timers.append(timer)
        timer.start()
        return timer

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the pending timers fire or ``timeout`` seconds pass."""
        with self._lock:
            timers = list(self._timers)
        for timer in timers:
            timer.join(timeout)

    def cancel_all(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()


class RegistrationForm:
    """Controller for a single registration form."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_SERVICE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        scheduler: Optional[Scheduler] = None,
        on_change: Optional[Callable[[UIState], None]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._scheduler: Scheduler = scheduler or TimerScheduler()
        self._on_change = on_change
        self._state = UIState()
        self._message_generation = 0
        self._lock = threading.RLock()

    @property
    def state(self) -> UIState:
        with self._lock:
            return self._state.snapshot()

    # ------------------------------------------------------------------
    # User interactions
    # ------------------------------------------------------------------
    def set_field(self, name: str, value: str) -> None:
        """Record an input event on ``name``."""

        if name not in FIELDS:
            raise KeyError(f"Unknown form field '{name}'")
        with self._lock:
            if not self._state.enabled:
                return
            self._state.fields[name] = value
            if self._state.message_visible and self._state.message_kind == MESSAGE_ERROR:
                self._hide_message()
            else:
                self._notify()

    def press_enter(self, control: str) -> str:
        """Handle Enter pressed in ``control`` and return the newly focused control."""

        with self._lock:
            if control == SUBMIT_CONTROL:
                target = SUBMIT_CONTROL
            else:
                index = FIELDS.index(control)
                target = FIELDS[index + 1] if index + 1 < len(FIELDS) else SUBMIT_CONTROL
            self._state.focus = target
            self._notify()
            return target

    def blur_email(self) -> None:
        """Re-validate the email field when it loses focus."""

        with self._lock:
            email = self._state.fields["email"].strip()
            if email and not is_valid_email(email):
                self._state.focus = "email"
                self._show_message(INVALID_EMAIL, MESSAGE_ERROR)
            else:
                self._hide_message()

    async def submit(self) -> Optional[int]:
        """Validate and send the form, returning the new user id on success.

        Submitting while a previous request is still in flight does nothing.
        """

        with self._lock:
            if not self._state.enabled:
                return None
            data = normalize_fields(self._state.fields)
            error = validate_form(data)
            if error is not None:
                self._show_message(error, MESSAGE_ERROR)
                return None
            self._show_message(REGISTERING, MESSAGE_LOADING)
            self._set_enabled(False)

        user_id: Optional[int] = None
        try:
            result = await self._post_registration(data)
            with self._lock:
                user_id = self._apply_result(result)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Registration error: %s", exc)
            with self._lock:
                self._show_message(NETWORK_ERROR, MESSAGE_ERROR)
        finally:
            with self._lock:
                self._set_enabled(True)

        if user_id is not None:
            self._scheduler.call_later(CONFIRMATION_DELAY, functools.partial(self._confirm, user_id))
        return user_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _post_registration(self, data: Dict[str, str]) -> Dict[str, object]:
        async with httpx.AsyncClient(base_url=self._base_url, transport=self._transport) as client:
            response = await client.post("/register", json=data)
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Service returned an unexpected response format")
        return payload

    def _apply_result(self, result: Dict[str, object]) -> Optional[int]:
        if not result.get("success"):
            self._show_message(str(result.get("message") or NETWORK_ERROR), MESSAGE_ERROR)
            return None

        raw_id = result.get("userId")
        if not isinstance(raw_id, int):
            raise ValueError("Service response did not include a user id")
        self._show_message(str(result.get("message") or ""), MESSAGE_SUCCESS)
        self._reset_fields()
        return raw_id

    def _confirm(self, user_id: int) -> None:
        with self._lock:
            self._show_message(f"Registration successful! Your user ID is: {user_id}", MESSAGE_SUCCESS)

    def _show_message(self, text: str, kind: str) -> None:
        self._message_generation += 1
        self._state.message = text
        self._state.message_kind = kind
        self._state.message_visible = True
        self._notify()

        if kind == MESSAGE_SUCCESS:
            generation = self._message_generation
            self._scheduler.call_later(SUCCESS_HIDE_DELAY, lambda: self._expire_message(generation))

    def _expire_message(self, generation: int) -> None:
        """Hide the message ``generation`` once its own 5 s timer fires.

        Every success message gets a full :data:`SUCCESS_HIDE_DELAY` on screen,
        so the user-id confirmation shown at 2 s stays until 7 s. The browser
        form hid it at 5 s with the timer of the first message; a stale timer
        here never hides a newer message.
        """

        with self._lock:
            if generation == self._message_generation:
                self._hide_message()

    def _hide_message(self) -> None:
        self._message_generation += 1
        self._state.message = None
        self._state.message_kind = None
        self._state.message_visible = False
        self._notify()

    def _set_enabled(self, enabled: bool) -> None:
        self._state.enabled = enabled
        self._notify()

    def _reset_fields(self) -> None:
        self._state.fields = {name: "" for name in FIELDS}
        self._state.focus = None
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state.snapshot())


async def fetch_users(
    base_url: str = DEFAULT_SERVICE_URL,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[Dict[str, object]]:
    """Return every registration known to the service, newest first."""

    try:
        async with httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport) as client:
            response = await client.get("/users")
        payload = response.json()
    except httpx.HTTPError as exc:
        raise RegistrationClientError(f"Failed to contact registration service: {exc}") from exc
    except ValueError as exc:
        raise RegistrationClientError("Service returned an unexpected response format.") from exc

    if not isinstance(payload, dict) or not payload.get("success"):
        message = payload.get("message") if isinstance(payload, dict) else None
        raise RegistrationClientError(str(message or "Error fetching users."))
    return list(payload.get("users", []))


__all__ = [
    "CONFIRMATION_DELAY",
    "DEFAULT_SERVICE_URL",
    "MESSAGE_ERROR",
    "MESSAGE_LOADING",
    "MESSAGE_SUCCESS",
    "NETWORK_ERROR",
    "REGISTERING",
    "RegistrationClientError",
    "RegistrationForm",
    "SUBMIT_CONTROL",
    "SUCCESS_HIDE_DELAY",
    "Scheduler",
    "TimerScheduler",
    "UIState",
    "fetch_users",
]
