"""Selection of the durable key-value store backend."""

import logging

from aws_oidc_console.auth.session import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)
from aws_oidc_console.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> KeyValueStore:
    """Build the store configured by ``storage_backend``."""
    if settings.storage_backend == "redis":
        if not settings.redis_url:
            raise ValueError("storage_backend=redis requires redis_url")
        logger.info("Using Redis key-value store")
        return RedisKeyValueStore(settings.redis_url)
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory key-value store - state is lost on restart")
        return InMemoryKeyValueStore()
    logger.info(f"Using file key-value store at {settings.storage_path}")
    return FileKeyValueStore(settings.storage_path)


# Singleton instance
_store: KeyValueStore | None = None


def get_store() -> KeyValueStore:
    """Get or create the process-wide store."""
    global _store
    if _store is None:
        _store = create_store(get_settings())
    return _store
