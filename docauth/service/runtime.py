from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse, urlunparse

from docauth.config import Settings, StoreBackend, get_settings, reset_settings_cache
from docauth.logging import get_logger
from docauth.service.adapter import AppOptions, AuthAdapter, DocumentAdapter, SessionOptions
from docauth.storage.documents import DocumentStore
from docauth.storage.memory import MemoryDocumentStore
from docauth.storage.redis_store import RedisDocumentStore
from docauth.storage.sanity import SanityClient

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


def build_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == StoreBackend.SANITY:
        logger.info(
            "document_store_selected",
            backend="sanity",
            project_id=settings.sanity_project_id,
            dataset=settings.sanity_dataset,
        )
        return SanityClient(
            settings.sanity_project_id,
            settings.sanity_dataset,
            api_version=settings.sanity_api_version,
            token=settings.sanity_token,
            use_cdn=settings.sanity_use_cdn,
            timeout=settings.sanity_timeout_seconds,
        )
    if settings.store_backend == StoreBackend.REDIS:
        logger.info(
            "document_store_selected",
            backend="redis",
            redis_url=_mask_url_password(settings.redis_url),
        )
        return RedisDocumentStore(settings.redis_url, key_prefix=settings.redis_key_prefix)
    logger.info("document_store_selected", backend="memory", fs_root=settings.shared_fs_root)
    return MemoryDocumentStore(fs_root=settings.shared_fs_root)


def app_options_from_settings(settings: Settings) -> AppOptions:
    return AppOptions(
        session=SessionOptions(
            max_age=settings.session_max_age,
            update_age=settings.session_update_age,
        ),
        debug=settings.debug,
        base_url=settings.base_url,
        secret=settings.auth_secret,
    )


class Runtime:
    """Holds the configured store and adapter for the process."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.store = build_store(self.settings)
        self.adapter = DocumentAdapter(self.store)
        logger.info(
            "runtime_initialized",
            backend=self.settings.store_backend.value,
            session_max_age=self.settings.session_max_age,
            session_update_age=self.settings.session_update_age,
        )

    def get_adapter(self) -> AuthAdapter:
        return self.adapter.get_adapter(app_options_from_settings(self.settings))


_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    global _runtime
    if _runtime is None:
        _runtime = Runtime()
    return _runtime


def reset_runtime_for_tests() -> None:
    """Drop the cached runtime and settings so tests can re-read the environment."""

    global _runtime
    _runtime = None
    reset_settings_cache()
