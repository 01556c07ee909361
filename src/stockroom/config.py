"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/stockroom.db"),
        description="SQLite database location for the local record service.",
    )
    asset_storage_path: Path = Field(
        default=Path("./data/assets"),
        description="Directory used by the local uploader to store item images and receipts.",
    )
    asset_base_url: Optional[str] = Field(
        default=None,
        description="Public URL prefix for locally stored assets (file:// URIs when unset).",
    )
    asset_api_base_url: Optional[str] = Field(
        default=None,
        description="Remote blob storage API base URL; enables the HTTP uploader when set.",
    )
    asset_api_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the remote blob storage API.",
    )
    upload_concurrency: int = Field(
        default=4,
        description="Maximum number of concurrent uploads per finalization run.",
    )
    upload_retry_attempts: int = Field(
        default=3,
        description="Attempts per upload before the HTTP uploader gives up.",
    )
    upload_retry_backoff: float = Field(
        default=0.5,
        description="Base backoff in seconds between HTTP upload attempts.",
    )
    notify_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving user-facing import notifications.",
    )
    notify_webhook_token: Optional[str] = Field(
        default=None,
        description="Bearer token sent to the notification webhook.",
    )
    default_page_height: float = Field(
        default=792.0,
        description="Page height assumed for placements that do not report one (US Letter).",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        default="plain",
        description="Logging format (plain/json).",
    )

    model_config = ConfigDict(frozen=True)

    def secrets(self) -> list[str]:
        """Return configured secrets that must never reach the logs."""

        return [value for value in (self.asset_api_token, self.notify_webhook_token) if value]


def _parse_env_file(path: Path) -> dict[str, str]:
    payload: dict[str, str] = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                payload[key.strip()] = raw_value.strip()
    except FileNotFoundError:
        return {}
    return payload


def _load_env_file_values() -> dict[str, str]:
    values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        values.update(_parse_env_file(candidate))
    return values


def _load_from_env() -> dict[str, object]:
    """Load optional overrides from env vars (with .env fallbacks)."""

    file_values = _load_env_file_values()

    def _env(key: str) -> Optional[str]:
        return os.environ.get(key) or file_values.get(key)

    payload: dict[str, object] = {}
    if (db_path := _env("STOCKROOM_DATABASE_PATH")):
        payload["database_path"] = Path(db_path)
    if (storage_path := _env("STOCKROOM_ASSET_STORAGE_PATH")):
        payload["asset_storage_path"] = Path(storage_path)
    if (asset_base_url := _env("STOCKROOM_ASSET_BASE_URL")):
        payload["asset_base_url"] = asset_base_url
    if (api_base_url := _env("STOCKROOM_ASSET_API_BASE_URL")):
        payload["asset_api_base_url"] = api_base_url
    if (api_token := _env("STOCKROOM_ASSET_API_TOKEN")):
        payload["asset_api_token"] = api_token
    if (concurrency := _env("STOCKROOM_UPLOAD_CONCURRENCY")):
        try:
            payload["upload_concurrency"] = int(concurrency)
        except ValueError:
            pass
    if (attempts := _env("STOCKROOM_UPLOAD_RETRY_ATTEMPTS")):
        try:
            payload["upload_retry_attempts"] = int(attempts)
        except ValueError:
            pass
    if (backoff := _env("STOCKROOM_UPLOAD_RETRY_BACKOFF")):
        try:
            payload["upload_retry_backoff"] = float(backoff)
        except ValueError:
            pass
    if (webhook_url := _env("STOCKROOM_NOTIFY_WEBHOOK_URL")):
        payload["notify_webhook_url"] = webhook_url
    if (webhook_token := _env("STOCKROOM_NOTIFY_WEBHOOK_TOKEN")):
        payload["notify_webhook_token"] = webhook_token
    if (page_height := _env("STOCKROOM_DEFAULT_PAGE_HEIGHT")):
        try:
            payload["default_page_height"] = float(page_height)
        except ValueError:
            pass
    if (log_level := _env("STOCKROOM_LOG_LEVEL")):
        payload["log_level"] = log_level
    if (log_format := _env("STOCKROOM_LOG_FORMAT")):
        payload["log_format"] = log_format
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())
