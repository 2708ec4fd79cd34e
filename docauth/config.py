from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from docauth.logging import get_logger
from docauth.service.lifecycle import DEFAULT_SESSION_MAX_AGE

logger = get_logger(__name__)


class StoreBackend(str, Enum):
    """Document store backends the runtime can wire up."""

    MEMORY = "memory"
    SANITY = "sanity"
    REDIS = "redis"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the document store adapter."""

    store_backend: StoreBackend = env_field(StoreBackend.MEMORY, "DOCUMENT_STORE")
    shared_fs_root: str | None = env_field(
        None,
        "SHARED_FS_ROOT",
        description="Directory for memory store snapshots; unset keeps state in process only",
    )
    # Sanity content lake
    sanity_project_id: str | None = env_field(None, "SANITY_PROJECT_ID")
    sanity_dataset: str = env_field("production", "SANITY_DATASET")
    sanity_api_version: str = env_field("2021-04-13", "SANITY_API_VERSION")
    sanity_token: str | None = env_field(None, "SANITY_API_TOKEN")
    sanity_use_cdn: bool = env_field(False, "SANITY_USE_CDN")
    sanity_timeout_seconds: float = env_field(30.0, "SANITY_TIMEOUT_SECONDS")
    # Redis
    redis_url: str = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_key_prefix: str = env_field("docauth", "REDIS_KEY_PREFIX")
    # Session and verification policy
    session_max_age: int = env_field(
        DEFAULT_SESSION_MAX_AGE,
        "SESSION_MAX_AGE",
        description="Session lifetime in seconds; 0 disables expiry",
    )
    session_update_age: int = env_field(
        0,
        "SESSION_UPDATE_AGE",
        description="Seconds between expiry extensions; 0 renews on every update",
    )
    auth_secret: str | None = env_field(None, "AUTH_SECRET")
    base_url: str = env_field("http://localhost:3000", "APP_BASE_URL")
    debug: bool = env_field(False, "AUTH_DEBUG")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("store_backend")
    @classmethod
    def _validate_backend(cls, value: StoreBackend) -> StoreBackend:
        return StoreBackend(value)

    @field_validator("session_max_age", "session_update_age")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("session ages must be non-negative seconds")
        return value

    @model_validator(mode="after")
    def _check_backend_requirements(self) -> "Settings":
        if self.store_backend == StoreBackend.SANITY and not self.sanity_project_id:
            raise ValueError("SANITY_PROJECT_ID is required for the sanity backend")
        if not self.auth_secret:
            logger.warning(
                "auth_secret_missing",
                message="verification calls must pass a secret explicitly",
            )
        return self


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
