"""
Storage Factory

Builds the order store and store-status gate for the configured backend.
Selection happens once, at application startup:

    - STORAGE_BACKEND=file      → JSON files in DATA_DIRECTORY
    - STORAGE_BACKEND=postgres  → DATABASE_URL (SQLAlchemy async + psycopg)
    - STORAGE_BACKEND=kv        → KV_URL (Redis)

When STORAGE_BACKEND is unset it is inferred: DATABASE_URL wins, then
KV_URL, then the filesystem.

Usage:
    storage = build_storage(get_settings())
    order = await storage.orders.get(order_id)
    await storage.close()
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from dormside.core.config import Settings, StorageBackend
from dormside.core.errors import ConfigurationError
from dormside.services.storage.base import BaseOrderStore, BaseStoreStatusGate

logger = logging.getLogger(__name__)


@dataclass
class Storage:
    """The storage capabilities plus the resource that backs them."""
    orders: BaseOrderStore
    status_gate: BaseStoreStatusGate
    backend: StorageBackend
    _closer: Optional[Callable[[], Awaitable[None]]] = field(default=None, repr=False)

    async def close(self) -> None:
        if self._closer is not None:
            await self._closer()
            logger.info(f"Storage backend '{self.backend.value}' closed")


def build_storage(settings: Settings) -> Storage:
    """
    Construct the configured storage backend.

    Raises:
        ConfigurationError: If the selected backend has no connection URL
    """
    backend = settings.resolved_storage_backend

    if backend == StorageBackend.POSTGRES:
        from dormside.database import Database
        from dormside.services.storage.postgres import (
            PostgresOrderStore,
            PostgresStoreStatusGate,
        )

        if not settings.database_url:
            raise ConfigurationError("STORAGE_BACKEND=postgres requires DATABASE_URL")
        db = Database(
            settings.database_url,
            timeout=settings.storage_timeout_seconds,
            echo=settings.debug,
        )
        logger.info("Storage: Using PostgreSQL")
        return Storage(
            orders=PostgresOrderStore(db),
            status_gate=PostgresStoreStatusGate(db),
            backend=backend,
            _closer=db.dispose,
        )

    if backend == StorageBackend.KV:
        from dormside.services.storage.kv import (
            KeyValueOrderStore,
            KeyValueStoreStatusGate,
            create_kv_client,
        )

        if not settings.kv_url:
            raise ConfigurationError("STORAGE_BACKEND=kv requires KV_URL")
        client = create_kv_client(settings.kv_url, settings.storage_timeout_seconds)
        logger.info("Storage: Using key-value store (Redis)")
        return Storage(
            orders=KeyValueOrderStore(client),
            status_gate=KeyValueStoreStatusGate(client),
            backend=backend,
            _closer=client.aclose,
        )

    from dormside.services.storage.file import FileOrderStore, FileStoreStatusGate

    logger.info(f"Storage: Using JSON files in '{settings.data_directory}'")
    return Storage(
        orders=FileOrderStore(
            settings.data_directory,
            lock_timeout=settings.file_lock_timeout,
            read_only=settings.read_only_filesystem,
        ),
        status_gate=FileStoreStatusGate(
            settings.data_directory,
            lock_timeout=settings.file_lock_timeout,
            read_only=settings.read_only_filesystem,
        ),
        backend=backend,
    )


__all__ = [
    "Storage",
    "build_storage",
    "BaseOrderStore",
    "BaseStoreStatusGate",
]
