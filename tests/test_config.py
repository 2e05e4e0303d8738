from __future__ import annotations

from pathlib import Path

import pytest

from registration.config import (
    DEFAULT_PORT,
    FormOptions,
    Settings,
    load_form_options,
    resolve_cors_origins,
    resolve_form_options,
    resolve_options_path,
    resolve_port,
)


def test_load_form_options_from_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "options.yaml"
    config_path.write_text(
        "genders:\n  - female\n  - male\n  - female\ncountries:\n  - NZ\n  - ' AU '\n",
        encoding="utf-8",
    )

    options = load_form_options(config_path)

    assert options.genders == ("female", "male")
    assert options.countries == ("NZ", "AU")


def test_load_form_options_requires_both_lists(tmp_path: Path) -> None:
    config_path = tmp_path / "options.yaml"
    config_path.write_text("genders:\n  - female\n", encoding="utf-8")

    with pytest.raises(ValueError, match="countries"):
        load_form_options(config_path)


def test_load_form_options_rejects_empty_lists(tmp_path: Path) -> None:
    config_path = tmp_path / "options.yaml"
    config_path.write_text("genders: []\ncountries:\n  - NZ\n", encoding="utf-8")

    with pytest.raises(ValueError, match="genders"):
        load_form_options(config_path)


def test_bundled_options_file_matches_defaults() -> None:
    bundled = resolve_options_path(None)

    assert bundled.name == "form_options.yaml"
    assert load_form_options(bundled) == FormOptions()


def test_explicit_options_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        resolve_form_options(str(tmp_path / "missing.yaml"))


def test_cors_and_port_resolution() -> None:
    assert resolve_cors_origins(None) == ["*"]
    assert resolve_cors_origins("https://a.example, https://b.example,") == [
        "https://a.example",
        "https://b.example",
    ]
    assert resolve_port(None) == DEFAULT_PORT
    assert resolve_port("8080") == 8080
    with pytest.raises(ValueError):
        resolve_port("http")


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    options_path = tmp_path / "options.yaml"
    options_path.write_text("genders: [female]\ncountries: [NZ]\n", encoding="utf-8")
    monkeypatch.setenv("REGISTRATION_DB_PATH", str(tmp_path / "db.sqlite3"))
    monkeypatch.setenv("REGISTRATION_OPTIONS_PATH", str(options_path))
    monkeypatch.setenv("REGISTRATION_CORS_ORIGINS", "https://forms.example.com")
    monkeypatch.setenv("PORT", "4000")

    settings = Settings.from_env()

    assert settings.database_path == str(tmp_path / "db.sqlite3")
    assert settings.options == FormOptions(genders=("female",), countries=("NZ",))
    assert settings.cors_origins == ["https://forms.example.com"]
    assert settings.port == 4000
