"""
Filesystem Storage Backend

Keeps orders and the store-open flag in JSON files under the data
directory::

    data/orders.json     {"orders": [...]}   most recent first
    data/settings.json   {"isOpen": true}

Every read-modify-write runs under a ``FileLock`` so concurrent requests
(or several worker processes on one host) serialize per file. File I/O is
blocking and runs in a worker thread.

On serverless hosts the filesystem is read-only; set
``READ_ONLY_FILESYSTEM=true`` there. Reads then go straight to the files
(no lock, no directory creation) and writes fail with
``StorageUnavailable`` instead of silently losing data.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from filelock import FileLock, Timeout

from dormside.core.errors import StorageUnavailable
from dormside.schemas import Order, OrderDraft, OrderStatus
from dormside.services.storage.base import (
    BaseOrderStore,
    BaseStoreStatusGate,
    new_order,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

READ_ONLY_MESSAGE = (
    "Storage is not configured for this deployment. "
    "Set DATABASE_URL to a Postgres database or KV_URL to a Redis instance."
)


class LockedJsonFile:
    """A JSON document guarded by a sibling ``.lock`` file."""

    def __init__(self, path: Path, lock_timeout: float, read_only: bool = False):
        self.path = path
        self.lock_path = path.with_name(path.name + ".lock")
        self.lock_timeout = lock_timeout
        self.read_only = read_only

    def _ensure_dir(self) -> None:
        if self.path.parent.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create data directory {self.path.parent}: {e}")
            raise StorageUnavailable() from e
        logger.info(f"Created data directory: {self.path.parent}")

    def read(self) -> Optional[Any]:
        """Parsed document, or None when the file (or its directory) does not exist."""
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {self.path}: {e}")
            raise StorageUnavailable() from e

    def write(self, document: Any) -> None:
        if self.read_only:
            raise StorageUnavailable(READ_ONLY_MESSAGE)

        self._ensure_dir()
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Error writing {self.path}: {e}")
            raise StorageUnavailable() from e

    def locked(self, operation: Callable[[], T]) -> T:
        """
        Run ``operation`` while holding the file lock.

        Read-only deployments never write, so their reads take no lock and
        touch nothing on disk; any write attempt still fails in ``write``.
        """
        if self.read_only:
            return operation()
        self._ensure_dir()
        try:
            with FileLock(str(self.lock_path), timeout=self.lock_timeout):
                return operation()
        except Timeout as e:
            logger.error(f"Lock timeout ({self.lock_timeout}s) on {self.path}")
            raise StorageUnavailable() from e
        except OSError as e:
            logger.error(f"Cannot lock {self.path}: {e}")
            raise StorageUnavailable() from e


class FileOrderStore(BaseOrderStore):
    """Order store backed by ``orders.json``."""

    def __init__(self, data_directory: str, lock_timeout: float = 30, read_only: bool = False):
        self._file = LockedJsonFile(
            Path(data_directory) / "orders.json",
            lock_timeout=lock_timeout,
            read_only=read_only,
        )

    def _load(self) -> list[Order]:
        document = self._file.read()
        if not isinstance(document, dict) or not isinstance(document.get("orders"), list):
            return []
        return [Order.model_validate(raw) for raw in document["orders"]]

    def _save(self, orders: list[Order]) -> None:
        self._file.write({
            "orders": [o.model_dump(mode="json", by_alias=True) for o in orders],
        })

    def _create(self, draft: OrderDraft) -> Order:
        orders = self._load()
        record = new_order(draft)
        orders.insert(0, record)
        self._save(orders)
        return record

    def _update(
        self,
        order_id: str,
        expected: Optional[OrderStatus] = None,
        **changes,
    ) -> Optional[Order]:
        orders = self._load()
        for index, order in enumerate(orders):
            if order.id == order_id:
                if expected is not None and order.status != expected:
                    return None
                orders[index] = order.model_copy(update=changes)
                self._save(orders)
                return orders[index]
        return None

    def _delete(self, order_id: str) -> bool:
        orders = self._load()
        remaining = [o for o in orders if o.id != order_id]
        if len(remaining) == len(orders):
            return False
        self._save(remaining)
        return True

    async def create(self, draft: OrderDraft) -> Order:
        record = await asyncio.to_thread(self._file.locked, lambda: self._create(draft))
        logger.debug(f"File store: created order {record.id}")
        return record

    async def get(self, order_id: str) -> Optional[Order]:
        orders = await asyncio.to_thread(self._file.locked, self._load)
        return next((o for o in orders if o.id == order_id), None)

    async def list_orders(self) -> list[Order]:
        return await asyncio.to_thread(self._file.locked, self._load)

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        return await asyncio.to_thread(
            self._file.locked,
            lambda: self._update(order_id, expected=expected, status=status),
        )

    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> Optional[Order]:
        return await asyncio.to_thread(
            self._file.locked,
            lambda: self._update(order_id, payment_intent_id=payment_intent_id),
        )

    async def delete(self, order_id: str) -> bool:
        return await asyncio.to_thread(self._file.locked, lambda: self._delete(order_id))


class FileStoreStatusGate(BaseStoreStatusGate):
    """Store-open flag backed by ``settings.json``."""

    def __init__(self, data_directory: str, lock_timeout: float = 30, read_only: bool = False):
        self._file = LockedJsonFile(
            Path(data_directory) / "settings.json",
            lock_timeout=lock_timeout,
            read_only=read_only,
        )

    def _read_flag(self) -> bool:
        try:
            document = self._file.read()
        except StorageUnavailable:
            logger.warning("Unreadable settings file; treating the store as open")
            return True
        if not isinstance(document, dict) or "isOpen" not in document:
            return True
        return bool(document["isOpen"])

    async def is_accepting_orders(self) -> bool:
        return await asyncio.to_thread(self._file.locked, self._read_flag)

    async def set_accepting_orders(self, is_open: bool) -> bool:
        await asyncio.to_thread(self._file.locked, lambda: self._file.write({"isOpen": bool(is_open)}))
        logger.info(f"Store is now {'open' if is_open else 'closed'}")
        return bool(is_open)
