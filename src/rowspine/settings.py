"""Settings for opening a rowspine engine.

``RowspineSettings`` reads ``ROWSPINE_*`` environment variables and an
optional ``.env`` file, validated by pydantic at startup.

Fields
──────
database           : SQLite database path, or ``:memory:``
timeout            : Seconds to wait on a locked database
cached_statements  : Size of sqlite3's compiled-statement cache per connection
foreign_keys       : Enable ``PRAGMA foreign_keys`` on connect
log_level          : structlog level used by :func:`configure_from_settings`
json_logs          : JSON log output (``None`` = auto-detect from tty)

Examples:
    >>> import os
    >>> os.environ["ROWSPINE_DATABASE"] = "app.db"
    >>> RowspineSettings().database
    'app.db'
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rowspine.logging import configure_logging


class RowspineSettings(BaseSettings):
    """Connection and logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="ROWSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    database: str = ":memory:"
    timeout: float = Field(default=5.0, ge=0)
    cached_statements: int = Field(default=128, ge=0)
    foreign_keys: bool = True

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level


def configure_from_settings(settings: RowspineSettings | None = None) -> RowspineSettings:
    """Configure structlog from settings and return the settings used."""
    settings = settings or RowspineSettings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    return settings


__all__ = [
    "RowspineSettings",
    "configure_from_settings",
]
