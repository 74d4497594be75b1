"""
Storage Abstract Base Classes

Defines the two storage capabilities the storefront needs:

    - BaseOrderStore: create / get / list / update_status / delete orders
    - BaseStoreStatusGate: read and flip the "accepting orders" flag

Each backend (file, postgres, kv) implements both. The store itself never
decides which status transitions are legal; that is the lifecycle
controller's job. It only guarantees that updates to one order id are
serialized, that a conditional status update checks and writes atomically,
and that a delete always wins over a concurrent update.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from dormside.core.errors import StorageUnavailable
from dormside.schemas import Order, OrderDraft, OrderStatus


def new_order(draft: OrderDraft) -> Order:
    """Assign identity and creation time to a draft."""
    return Order(
        **draft.model_dump(),
        id=str(uuid.uuid4()),
        created_at=datetime.now(timezone.utc),
    )


class BaseOrderStore(ABC):
    """
    Abstract base class for order persistence.

    Every method raises ``StorageUnavailable`` when the backing store
    cannot be reached or is not writable in the current deployment.
    """

    @abstractmethod
    async def create(self, draft: OrderDraft) -> Order:
        """Assign ``id`` and ``created_at``, persist, return the full record."""
        pass

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_orders(self) -> list[Order]:
        """All orders, most recent first."""
        pass

    @abstractmethod
    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        """
        Overwrite ``status`` only.

        With ``expected`` the write is a compare-and-set: it happens only
        if the stored status still equals ``expected`` at write time, and
        is atomic with that check.

        Returns:
            The updated order, or None when the id is unknown or the
            stored status did not match ``expected``
        """
        pass

    @abstractmethod
    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> Optional[Order]:
        """Record the order's current payment intent. Returns None when the id is unknown."""
        pass

    @abstractmethod
    async def delete(self, order_id: str) -> bool:
        """True if a record was removed."""
        pass

    async def health_check(self) -> bool:
        try:
            await self.list_orders()
            return True
        except StorageUnavailable:
            return False


class BaseStoreStatusGate(ABC):
    """Boolean switch controlling whether new orders are accepted."""

    @abstractmethod
    async def is_accepting_orders(self) -> bool:
        """Authoritative read. A missing record means the store is open."""
        pass

    @abstractmethod
    async def set_accepting_orders(self, is_open: bool) -> bool:
        pass
