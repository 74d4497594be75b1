"""
PostgreSQL Storage Backend

Orders live in the ``orders`` table and the store-open flag in the
single-row ``store_settings`` table. Every mutation is a single statement
(``UPDATE ... RETURNING`` / ``DELETE``), so Postgres row locking serializes
concurrent updates to one order, and an update that races a delete simply
matches no row. A conditional status update puts the expected status in the
``WHERE`` clause; the loser of a race re-evaluates it after the winner
commits and matches nothing.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from dormside.database import Database
from dormside.models import OrderRow, StoreSettingsRow
from dormside.schemas import Order, OrderDraft, OrderStatus
from dormside.services.storage.base import BaseOrderStore, BaseStoreStatusGate

logger = logging.getLogger(__name__)


def row_to_order(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        created_at=row.created_at,
        status=row.status,
        fulfillment=row.fulfillment,
        payment_method=row.payment_method,
        tip=row.tip,
        delivery_fee=row.delivery_fee,
        total=row.total,
        items=row.items,
        customer=row.customer,
        payment_intent_id=row.payment_intent_id,
    )


class PostgresOrderStore(BaseOrderStore):
    """Order store backed by the shared ``Database`` handle."""

    def __init__(self, db: Database):
        self._db = db

    async def create(self, draft: OrderDraft) -> Order:
        row = OrderRow(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            status=draft.status,
            fulfillment=draft.fulfillment,
            payment_method=draft.payment_method,
            tip=draft.tip,
            delivery_fee=draft.delivery_fee,
            total=draft.total,
            items=[item.model_dump(mode="json") for item in draft.items],
            customer=draft.customer.model_dump(mode="json"),
            payment_intent_id=draft.payment_intent_id,
        )
        async with self._db.session() as session:
            session.add(row)
        logger.debug(f"Postgres store: created order {row.id}")
        return row_to_order(row)

    async def get(self, order_id: str) -> Optional[Order]:
        async with self._db.session() as session:
            row = await session.get(OrderRow, order_id)
            return row_to_order(row) if row else None

    async def list_orders(self) -> list[Order]:
        async with self._db.session() as session:
            result = await session.execute(
                select(OrderRow).order_by(OrderRow.created_at.desc())
            )
            return [row_to_order(row) for row in result.scalars().all()]

    async def _update(self, order_id: str, *conditions, **values) -> Optional[Order]:
        async with self._db.session() as session:
            result = await session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id, *conditions)
                .values(**values)
                .returning(OrderRow)
            )
            row = result.scalar_one_or_none()
            return row_to_order(row) if row else None

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        conditions = [] if expected is None else [OrderRow.status == expected]
        return await self._update(order_id, *conditions, status=status)

    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> Optional[Order]:
        return await self._update(order_id, payment_intent_id=payment_intent_id)

    async def delete(self, order_id: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(delete(OrderRow).where(OrderRow.id == order_id))
            return result.rowcount > 0


class PostgresStoreStatusGate(BaseStoreStatusGate):
    """Store-open flag in the ``store_settings`` row."""

    def __init__(self, db: Database):
        self._db = db

    async def is_accepting_orders(self) -> bool:
        async with self._db.session() as session:
            row = await session.get(StoreSettingsRow, True, populate_existing=True)
            return bool(row.is_open) if row else True

    async def set_accepting_orders(self, is_open: bool) -> bool:
        statement = pg_insert(StoreSettingsRow).values(id=True, is_open=bool(is_open))
        statement = statement.on_conflict_do_update(
            index_elements=[StoreSettingsRow.id],
            set_={"is_open": bool(is_open)},
        )
        async with self._db.session() as session:
            await session.execute(statement)
        logger.info(f"Store is now {'open' if is_open else 'closed'}")
        return bool(is_open)
