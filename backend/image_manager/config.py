"""Image manager configuration.

Loads settings from two YAML files:
  * image_manager.settings.yaml  — non-secret configuration
  * image_manager.secrets.yaml   — Cloudinary credentials (never committed)

Environment variables take precedence over both files:

  CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET
  PORT          — listening port
  FRONTEND_URL  — allowed origin for cross-origin requests
  API_BASE_URL  — backend address used by the client library
  LOG_LEVEL     — root log level
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("image_manager.settings.yaml")
SECRETS_FILE  = Path("image_manager.secrets.yaml")

DEFAULT_ALLOWED_FORMATS = ["jpg", "jpeg", "png", "gif", "webp"]


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class CloudinarySecrets(BaseModel):
    cloud_name: Optional[str] = None
    api_key:    Optional[str] = None
    api_secret: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


class Secrets(BaseModel):
    cloudinary: CloudinarySecrets = Field(default_factory=CloudinarySecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 5000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class MediaStoreSettings(BaseModel):
    """Upload parameters passed through to the external media store."""
    namespace:       str       = "my-images"
    allowed_formats: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_FORMATS))
    max_width:       int       = Field(default=1024, gt=0)
    crop:            str       = "limit"
    max_results:     int       = Field(default=100, ge=1, le=500)
    timeout_seconds: float     = Field(default=60.0, gt=0)
    api_base_url:    str       = "https://api.cloudinary.com/v1_1"

    @field_validator("allowed_formats")
    @classmethod
    def _normalise_formats(cls, value: List[str]) -> List[str]:
        return [fmt.lower().lstrip(".") for fmt in value]

    @field_validator("namespace")
    @classmethod
    def _strip_namespace(cls, value: str) -> str:
        value = value.strip("/")
        if not value:
            raise ValueError("namespace must not be empty")
        return value


class ClientSettings(BaseModel):
    api_base_url:    str   = "http://localhost:5000"
    timeout_seconds: float = Field(default=60.0, gt=0)


class AppSettings(BaseModel):
    server:      ServerSettings     = Field(default_factory=ServerSettings)
    logging:     LoggingSettings    = Field(default_factory=LoggingSettings)
    media_store: MediaStoreSettings = Field(default_factory=MediaStoreSettings)
    client:      ClientSettings     = Field(default_factory=ClientSettings)
    secrets:     Secrets            = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

# env var -> path inside the merged settings dict
_ENV_OVERRIDES = {
    "CLOUDINARY_CLOUD_NAME": ("secrets", "cloudinary", "cloud_name"),
    "CLOUDINARY_API_KEY":    ("secrets", "cloudinary", "api_key"),
    "CLOUDINARY_API_SECRET": ("secrets", "cloudinary", "api_secret"),
    "PORT":                  ("server", "port"),
    "API_BASE_URL":          ("client", "api_base_url"),
    "LOG_LEVEL":             ("logging", "level"),
}


def _apply_env_overrides(data: Dict[str, Any], environ: Mapping[str, str]) -> None:
    for var, path in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        node = data
        for key in path[:-1]:
            if node.get(key) is None:
                node[key] = {}
            node = node[key]
            if not isinstance(node, dict):
                raise ValueError(f"Config section {key!r} must be a mapping")
        node[path[-1]] = value

    # FRONTEND_URL is a single origin; "*" keeps the permissive default.
    frontend_url = environ.get("FRONTEND_URL")
    if frontend_url:
        if data.get("server") is None:
            data["server"] = {}
        data["server"]["allowed_origins"] = [frontend_url]


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
    environ: Optional[Mapping[str, str]] = None,
) -> AppSettings:
    """Load and merge settings, secrets and env overrides into *AppSettings*."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data
    _apply_env_overrides(settings_data, os.environ if environ is None else environ)

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, namespace=%s, cloudinary configured=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.media_store.namespace,
        app_settings.secrets.cloudinary.configured,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Drop the cached settings (used by tests and reloads)."""
    global _config
    _config = None
