"""Chagourtee application configuration.

Loads settings from ``chagourtee.settings.yaml`` (non-secret configuration).
The path can be overridden with ``CHAGOURTEE_SETTINGS``, the database path
with ``CHAGOURTEE_DB_PATH`` and the owner bootstrap secret with
``CHAGOURTEE_BOOTSTRAP_SECRET``.

Sections:
  * server: bind address and CORS origins
  * logging: root log level
  * database: DuckDB file location
  * sessions: session cookie and lifetime
  * realtime: WebSocket close codes
  * client: heartbeat / reconnect tuning for the realtime client
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chagourtee.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "data/chagourtee.db"


class SessionSettings(BaseModel):
    """Login session cookie.

    ``bootstrap_secret`` lets the very first registration become the owner;
    keep it out of the YAML and set ``CHAGOURTEE_BOOTSTRAP_SECRET`` instead.
    """
    cookie_name:      str           = "chagourtee_sid"
    ttl_days:         int           = Field(default=7, gt=0)
    secure_cookie:    bool          = False
    bootstrap_secret: Optional[str] = None


class RealtimeSettings(BaseModel):
    """Close codes sent by the ``/ws`` endpoint.

    4xxx codes are application-defined, so clients can tell a refused
    session apart from a dropped network.
    """
    unauthorized_close_code: int = 4001
    kick_close_code:         int = 4003

    @field_validator("unauthorized_close_code", "kick_close_code")
    @classmethod
    def _application_range(cls, value: int) -> int:
        if not 4000 <= value <= 4999:
            raise ValueError("close codes must be in the 4000-4999 range")
        return value


class ClientSettings(BaseModel):
    heartbeat_interval:     float = Field(default=30.0, gt=0)
    reconnect_base_delay:   float = Field(default=3.0, ge=0)
    reconnect_max_delay:    float = Field(default=30.0, ge=0)
    max_reconnect_attempts: int   = Field(default=5, ge=0)


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sessions: SessionSettings  = Field(default_factory=SessionSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    client:   ClientSettings   = Field(default_factory=ClientSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppSettings] = None


def load_config(settings_path: Optional[Path] = None) -> AppSettings:
    """Load settings from YAML and apply environment overrides."""
    if settings_path is None:
        settings_path = Path(os.environ.get("CHAGOURTEE_SETTINGS", SETTINGS_FILE))
    settings_data = _load_yaml(Path(settings_path))

    db_override = os.environ.get("CHAGOURTEE_DB_PATH")
    if db_override:
        settings_data.setdefault("database", {})["path"] = db_override

    bootstrap_secret = os.environ.get("CHAGOURTEE_BOOTSTRAP_SECRET")
    if bootstrap_secret:
        settings_data.setdefault("sessions", {})["bootstrap_secret"] = bootstrap_secret

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
    )
    return app_settings


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(settings: Optional[AppSettings]) -> None:
    """Replace (or with ``None``, forget) the cached settings."""
    global _config
    _config = settings
