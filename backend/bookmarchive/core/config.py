"""Application configuration handling."""

from __future__ import annotations

import os
import tomllib
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from bookmarchive.core.errors import ConfigError
from bookmarchive.utils.time import parse_duration

ENV_PREFIX = "BMA_"
DEFAULT_CONFIG_PATH = Path("config.toml")

INDEXABLE_FIELDS: tuple[str, ...] = (
    "content",
    "spoiler_text",
    "username",
    "display_name",
    "media_descriptions",
    "hashtags",
)
LOG_FORMATS = ("console", "json")

_FILE_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("mastodon", "server"): "server_url",
    ("mastodon", "access_token"): "access_token",
    ("mastodon", "client_timeout"): "client_timeout",
    ("database", "path"): "db_path",
    ("database", "wal_mode"): "wal_mode",
    ("database", "busy_timeout"): "busy_timeout",
    ("polling", "interval"): "poll_interval",
    ("polling", "batch_size"): "batch_size",
    ("polling", "backfill_delay"): "backfill_delay",
    ("polling", "max_retries"): "max_retries",
    ("polling", "enabled"): "ingest_enabled",
    ("rate_limit", "max_requests"): "rate_limit_requests",
    ("rate_limit", "window"): "rate_limit_window",
    ("web", "listen"): "listen",
    ("web", "port"): "port",
    ("logging", "level"): "log_level",
    ("logging", "format"): "log_format",
    ("search", "indexed_fields"): "indexed_fields",
}


class Settings(BaseModel):
    """Runtime configuration loaded from a TOML/YAML file and environment variables."""

    server_url: str = "https://mastodon.social"
    access_token: str = ""
    client_timeout: timedelta = timedelta(seconds=30)
    db_path: Path = Field(default=Path("bookmarchive.db"))
    wal_mode: bool = True
    busy_timeout: timedelta = timedelta(seconds=5)
    poll_interval: timedelta = timedelta(minutes=5)
    batch_size: int = Field(default=40, ge=1)
    backfill_delay: timedelta = timedelta(seconds=10)
    max_retries: int = Field(default=3, ge=0)
    ingest_enabled: bool = True
    rate_limit_requests: int = Field(default=150, ge=1)
    rate_limit_window: timedelta = timedelta(minutes=5)
    listen: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    log_level: str = "info"
    log_format: str = "console"
    indexed_fields: list[str] = Field(default_factory=lambda: list(INDEXABLE_FIELDS))

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator(
        "client_timeout",
        "busy_timeout",
        "poll_interval",
        "backfill_delay",
        "rate_limit_window",
        mode="before",
    )
    @classmethod
    def _parse_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("poll_interval", "rate_limit_window")
    @classmethod
    def _require_positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("must be positive")
        return value

    @field_validator("client_timeout", "busy_timeout", "backfill_delay")
    @classmethod
    def _require_non_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("must not be negative")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        lowered = value.lower()
        if lowered not in LOG_FORMATS:
            raise ValueError(f"log format must be one of {', '.join(LOG_FORMATS)}")
        return lowered

    @field_validator("indexed_fields", mode="before")
    @classmethod
    def _split_fields(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @classmethod
    def from_file(cls, path: Path | None = None) -> "Settings":
        """Load the config file and overlay env vars; fall back to defaults.

        Only keys present in the file override defaults, so an explicit
        ``false`` or empty list wins over a truthy default.
        """
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path is not None:
            if not config_path.exists():
                raise ConfigError(f"config file not found: {config_path}")
            data.update(_flatten(_read_config_file(config_path)))
        data.update(_load_env_overrides())
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        return DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None

    def require_remote(self) -> None:
        """Raise ConfigError unless the remote server and token are set."""
        if not self.server_url.strip():
            raise ConfigError("mastodon server URL is required")
        if not self.access_token.strip():
            raise ConfigError("mastodon access token is required")


def _read_config_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        else:
            with path.open("rb") as fh:
                raw = tomllib.load(fh)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse {path}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ConfigError(f"config root must be a table: {path}")
    return raw


def _flatten(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested config sections to Settings field names (present keys only)."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (str(key),)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, prefix=next_prefix))
            continue
        mapped_key = _FILE_KEY_MAP.get(next_prefix)
        if mapped_key:
            flat[mapped_key] = value
        elif key in Settings.model_fields:
            flat[str(key)] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with BMA_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_file()


__all__ = ["Settings", "get_settings", "INDEXABLE_FIELDS", "LOG_FORMATS"]
