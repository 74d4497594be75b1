"""
SQLAlchemy Database Models

Tables used by the Postgres storage backend:
    - orders: one row per order; items and customer kept as JSON documents
    - store_settings: a single row holding the store-open flag
"""

from sqlalchemy import Boolean, Column, DateTime, Enum, Numeric, String, JSON
from sqlalchemy.dialects.postgresql import JSONB

from dormside.database import Base
from dormside.schemas import Fulfillment, OrderStatus, PaymentMethod

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def _values(enum_cls):
    return [member.value for member in enum_cls]


class OrderRow(Base):
    """
    Orders table.

    Only ``status`` and ``payment_intent_id`` are ever updated after insert.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_values),
        nullable=False,
        index=True,
    )
    fulfillment = Column(
        Enum(Fulfillment, name="fulfillment", values_callable=_values),
        nullable=False,
    )
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=_values),
        nullable=False,
    )

    # =========================================================================
    # PRICING
    # =========================================================================
    tip = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JsonDocument, nullable=False)
    customer = Column(JsonDocument, nullable=False)

    payment_intent_id = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<Order {self.id} - {self.fulfillment.value} - {self.status.value}>"


class StoreSettingsRow(Base):
    """Single-row table; the primary key is always ``True``."""
    __tablename__ = "store_settings"

    id = Column(Boolean, primary_key=True, default=True)
    is_open = Column(Boolean, nullable=False, default=True)
