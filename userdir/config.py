"""Configuration management for the user directory service."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

_ENV_PREFIX = "USERDIR_"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Setting '{name}' must be a boolean, got {value!r}")


def _parse_int(name: str, value: object) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Setting '{name}' must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Setting '{name}' must be an integer, got {value!r}") from exc


def _parse_float(name: str, value: object) -> float:
    try:
        parsed = float(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Setting '{name}' must be a number, got {value!r}") from exc
    if not math.isfinite(parsed):
        raise ValueError(f"Setting '{name}' must be a finite number, got {value!r}")
    return parsed


def _parse_list(name: str, value: object) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value]
    elif isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
    else:
        raise ValueError(f"Setting '{name}' must be a list or comma separated string")
    return tuple(item for item in items if item)


def _parse_str(name: str, value: object) -> str:
    text = str(value).strip()
    if not text:
        raise ValueError(f"Setting '{name}' must not be empty")
    return text


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service."""

    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    pretty_logs: bool = False
    cors_allowed_origins: Tuple[str, ...] = ("*",)
    cors_allowed_methods: Tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
    cors_allowed_headers: Tuple[str, ...] = (
        "Accept",
        "Authorization",
        "Content-Type",
        "X-Request-ID",
    )
    trusted_proxies: Tuple[str, ...] = ("127.0.0.1",)
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_period: float = 60.0
    body_limit_bytes: int = 1024 * 1024
    compression_level: int = 5
    gzip_min_size: int = 500
    seed_demo_users: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"production", "prod"}

    @staticmethod
    def from_dict(data: Mapping[str, object], base: "Settings | None" = None) -> "Settings":
        """Create :class:`Settings` from raw values, overriding ``base``."""

        known = {item.name for item in fields(Settings)}
        unknown = set(data.keys()) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        parsed: Dict[str, object] = {}
        for name, value in data.items():
            parsed[name] = _PARSERS[name](name, value)

        settings = replace(base or Settings(), **parsed)
        if not 1 <= settings.port <= 65535:
            raise ValueError("Setting 'port' must be between 1 and 65535")
        if settings.body_limit_bytes < 0:
            raise ValueError("Setting 'body_limit_bytes' must not be negative")
        if not 1 <= settings.compression_level <= 9:
            raise ValueError("Setting 'compression_level' must be between 1 and 9")
        if settings.gzip_min_size < 0:
            raise ValueError("Setting 'gzip_min_size' must not be negative")
        return settings


_PARSERS = {
    "environment": _parse_str,
    "host": _parse_str,
    "port": _parse_int,
    "log_level": _parse_str,
    "pretty_logs": _parse_bool,
    "cors_allowed_origins": _parse_list,
    "cors_allowed_methods": _parse_list,
    "cors_allowed_headers": _parse_list,
    "trusted_proxies": _parse_list,
    "rate_limit_enabled": _parse_bool,
    "rate_limit_requests": _parse_int,
    "rate_limit_period": _parse_float,
    "body_limit_bytes": _parse_int,
    "compression_level": _parse_int,
    "gzip_min_size": _parse_int,
    "seed_demo_users": _parse_bool,
}


def _settings_from_env(environ: Mapping[str, str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for name in _PARSERS:
        raw = environ.get(_ENV_PREFIX + name.upper())
        if raw is not None and raw.strip():
            values[name] = raw
    return values


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Read settings from a YAML file, optionally nested under ``userdir``."""

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping")
    section = raw.get("userdir", raw)
    if not isinstance(section, dict):
        raise ValueError("The 'userdir' configuration section must be a mapping")
    return dict(section)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the path to the optional configuration file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (Path(__file__).resolve().parent.parent / "config" / "userdir.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from defaults, then the YAML file, then the environment."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get(_ENV_PREFIX + "CONFIG"))

    settings = Settings()
    if path is not None:
        settings = Settings.from_dict(load_config_file(path), settings)
    return Settings.from_dict(_settings_from_env(env), settings)


__all__ = ["Settings", "load_config_file", "load_settings", "resolve_config_path"]
