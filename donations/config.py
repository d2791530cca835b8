"""Configuration management for the donation desk."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

DEFAULT_MAX_LOGIN_ATTEMPTS = 5
DEFAULT_LOCKOUT_SECONDS = 900
DEFAULT_SESSION_MAX_AGE = 60 * 60 * 8

_FALSE_VALUES = {"0", "false", "no", "off"}


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in _FALSE_VALUES


def _as_positive_int(name: str, value: object) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{name}' must be an integer") from exc
    if number <= 0:
        raise ValueError(f"'{name}' must be greater than zero")
    return number


def _resolve_path(raw: object, base_path: Path | None) -> Path:
    candidate = Path(str(raw)).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


def _split_hosts(raw: object) -> Tuple[str, ...]:
    if isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        items = str(raw).split(",")
    return tuple(item.strip() for item in items if item.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the web application and CLI."""

    database_path: Optional[Path] = None
    session_secret: Optional[str] = None
    session_secure: bool = False
    session_max_age: int = DEFAULT_SESSION_MAX_AGE
    max_login_attempts: int = DEFAULT_MAX_LOGIN_ATTEMPTS
    lockout_seconds: int = DEFAULT_LOCKOUT_SECONDS
    trusted_proxies: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        known = {
            "database_path",
            "session_secret",
            "session_secure",
            "session_max_age",
            "max_login_attempts",
            "lockout_seconds",
            "trusted_proxies",
        }
        unknown = set(data.keys()) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        database_path = data.get("database_path")
        secret = data.get("session_secret")
        return Settings(
            database_path=_resolve_path(database_path, base_path) if database_path else None,
            session_secret=str(secret) if secret else None,
            session_secure=_as_bool(data.get("session_secure", False)),
            session_max_age=_as_positive_int(
                "session_max_age", data.get("session_max_age", DEFAULT_SESSION_MAX_AGE)
            ),
            max_login_attempts=_as_positive_int(
                "max_login_attempts", data.get("max_login_attempts", DEFAULT_MAX_LOGIN_ATTEMPTS)
            ),
            lockout_seconds=_as_positive_int(
                "lockout_seconds", data.get("lockout_seconds", DEFAULT_LOCKOUT_SECONDS)
            ),
            trusted_proxies=_split_hosts(data.get("trusted_proxies", ())),
        )

    @property
    def proxy_hosts(self) -> list[str] | str:
        """Value suitable for uvicorn's ``ProxyHeadersMiddleware``."""
        return list(self.trusted_proxies) or "127.0.0.1"


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (Path(__file__).resolve().parent.parent / "config" / "donations.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


def _environment_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    mapping = {
        "DONATIONS_DB_PATH": "database_path",
        "DONATIONS_SESSION_SECRET": "session_secret",
        "DONATIONS_SESSION_SECURE": "session_secure",
        "DONATIONS_SESSION_MAX_AGE": "session_max_age",
        "DONATIONS_MAX_LOGIN_ATTEMPTS": "max_login_attempts",
        "DONATIONS_LOCKOUT_SECONDS": "lockout_seconds",
        "DONATIONS_TRUSTED_PROXIES": "trusted_proxies",
    }
    return {key: environ[env] for env, key in mapping.items() if environ.get(env)}


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from a YAML file, then apply environment overrides."""
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = resolve_config_path(environ.get("DONATIONS_CONFIG"))

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        raw.update(loaded)
        base_path = config_path.parent

    settings = Settings.from_dict(raw, base_path=base_path)
    overrides = _environment_overrides(environ)
    if not overrides:
        return settings

    # Environment paths are relative to the working directory, not the config file.
    env_settings = Settings.from_dict({**raw, **overrides}, base_path=base_path)
    if "database_path" in overrides:
        env_settings = replace(env_settings, database_path=_resolve_path(overrides["database_path"], None))
    return env_settings


__all__ = ["Settings", "load_settings", "resolve_config_path"]
