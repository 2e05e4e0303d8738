"""Configuration management for the registration service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

DEFAULT_PORT = 3001

_DEFAULT_GENDERS = ("male", "female", "other", "prefer-not-to-say")
_DEFAULT_COUNTRIES = ("US", "CA", "GB", "AU", "DE", "FR", "IN", "JP", "BR", "MX", "other")


@dataclass(frozen=True)
class FormOptions:
    """The fixed option sets offered for the gender and country fields."""

    genders: Tuple[str, ...] = _DEFAULT_GENDERS
    countries: Tuple[str, ...] = _DEFAULT_COUNTRIES

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "FormOptions":
        """Create :class:`FormOptions` from raw dictionary data."""
        missing = {"genders", "countries"} - data.keys()
        if missing:
            raise ValueError(f"Missing required form option lists: {', '.join(sorted(missing))}")

        return FormOptions(
            genders=_parse_option_list("genders", data["genders"]),
            countries=_parse_option_list("countries", data["countries"]),
        )


def _parse_option_list(key: str, raw: object) -> Tuple[str, ...]:
    if not isinstance(raw, list):
        raise ValueError(f"Form option '{key}' must be a list of strings")
    values: List[str] = []
    for item in raw:
        text = str(item).strip()
        if text and text not in values:
            values.append(text)
    if not values:
        raise ValueError(f"Form option '{key}' must contain at least one value")
    return tuple(values)


def load_form_options(config_path: Path) -> FormOptions:
    """Load the form option sets from a YAML file."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Form options file must contain a mapping")
    return FormOptions.from_dict(raw)


def resolve_options_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the form options file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "form_options.yaml").resolve(strict=False)
    return candidate


def resolve_form_options(env_value: Optional[str]) -> FormOptions:
    """Return the configured option sets.

    An explicitly configured file must exist; the bundled file is optional and
    the built-in option sets are used when it is absent.
    """
    path = resolve_options_path(env_value)
    if not env_value and not path.exists():
        return FormOptions()
    return load_form_options(path)


def resolve_cors_origins(env_value: Optional[str]) -> List[str]:
    if env_value is None:
        return ["*"]
    return [origin.strip() for origin in env_value.split(",") if origin.strip()]


def resolve_port(env_value: Optional[str]) -> int:
    if not env_value:
        return DEFAULT_PORT
    try:
        return int(env_value)
    except ValueError as exc:
        raise ValueError(f"PORT must be an integer, got {env_value!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""

    database_path: Optional[str]
    options: FormOptions
    cors_origins: List[str]
    port: int

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            database_path=os.getenv("REGISTRATION_DB_PATH"),
            options=resolve_form_options(os.getenv("REGISTRATION_OPTIONS_PATH")),
            cors_origins=resolve_cors_origins(os.getenv("REGISTRATION_CORS_ORIGINS")),
            port=resolve_port(os.getenv("PORT")),
        )


__all__ = [
    "DEFAULT_PORT",
    "FormOptions",
    "Settings",
    "load_form_options",
    "resolve_cors_origins",
    "resolve_form_options",
    "resolve_options_path",
    "resolve_port",
]
