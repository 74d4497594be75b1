"""
Pydantic Schemas for Request/Response Validation

The storefront's JSON API speaks camelCase (``paymentMethod``,
``deliveryFee``); the models expose snake_case attributes and use
camelCase aliases on the wire. Monetary amounts are ``Decimal`` internally
and serialized as JSON numbers.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    StrictBool,
    field_validator,
)
from pydantic.alias_generators import to_camel

from dormside.services.pricing import line_total as cart_line_total

Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status workflow. ``paid`` is terminal."""
    PENDING = "pending"
    CASH_PENDING = "cash_pending"
    PAID = "paid"


class Fulfillment(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"


class IntentStatus(str, Enum):
    """Payment processor's view of one payment attempt."""
    SUCCEEDED = "succeeded"
    PROCESSING = "processing"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"
    CANCELED = "canceled"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# DOMAIN RECORDS
# =============================================================================

class OrderItem(CamelModel):
    """Single cart line, priced with the menu's display price."""
    name: str = Field(..., min_length=1, max_length=200, examples=["Mac and Cheese"])
    price: str = Field(..., max_length=32, examples=["$9.50"])
    quantity: int = Field(..., ge=1, examples=[2])

    @property
    def line_total(self) -> Decimal:
        return cart_line_total(self)


class Customer(CamelModel):
    name: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=255)
    phone: str = Field(default="", max_length=40)
    address: str = Field(default="", max_length=255)


class OrderDraft(CamelModel):
    """Everything an order is created with, before the store assigns identity."""
    status: OrderStatus
    fulfillment: Fulfillment
    payment_method: PaymentMethod
    tip: Money
    delivery_fee: Money
    total: Money
    items: list[OrderItem]
    customer: Customer
    payment_intent_id: Optional[str] = None


class Order(OrderDraft):
    """A persisted order. ``id`` and ``created_at`` never change."""
    id: str
    created_at: datetime


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreateRequest(CamelModel):
    """
    Checkout submission.

    ``order_id`` is the identifier the client received from a previous
    submission in the same checkout session; when present and known, the
    submission reuses that order instead of creating a new one.
    """
    fulfillment: Fulfillment = Fulfillment.PICKUP
    payment_method: PaymentMethod
    tip: Money = Field(default=Decimal("0"), ge=0)
    delivery_fee: Money = Field(default=Decimal("0"), ge=0)
    total: Money
    items: list[OrderItem] = Field(default_factory=list)
    customer: Customer = Field(default_factory=Customer)
    status: Optional[OrderStatus] = None
    order_id: Optional[str] = None


class StatusUpdateRequest(CamelModel):
    id: str = Field(..., min_length=1)
    status: OrderStatus
    payment_intent_id: Optional[str] = None


class OrderDeleteRequest(CamelModel):
    id: str = Field(..., min_length=1)


class CheckoutRequest(CamelModel):
    """Payment-intent request: either a bare cart or a cart plus its order id."""
    items: list[OrderItem] = Field(default_factory=list)
    delivery_option: Fulfillment = Fulfillment.PICKUP
    tip: Money = Decimal("0")
    order_id: Optional[str] = None

    @field_validator("delivery_option", mode="before")
    @classmethod
    def default_to_pickup(cls, v):
        return Fulfillment.DELIVERY if v == "delivery" else Fulfillment.PICKUP

    @field_validator("tip")
    @classmethod
    def clamp_tip(cls, v: Decimal) -> Decimal:
        return max(Decimal("0"), v)


class StoreStatus(CamelModel):
    is_open: StrictBool


class MenuItem(CamelModel):
    name: str = ""
    description: str = ""
    price: str = ""


class MenuPayload(CamelModel):
    items: list[MenuItem]


class LoginRequest(CamelModel):
    username: str = ""
    password: str = ""


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderResponse(CamelModel):
    order: Order
    client_secret: Optional[str] = None


class FinalizeResponse(CamelModel):
    order: Order
    payment_status: Optional[IntentStatus] = None


class OrderListResponse(CamelModel):
    orders: list[Order]


class DeleteResponse(CamelModel):
    removed: bool


class CheckoutResponse(CamelModel):
    client_secret: str
    payment_intent_id: str
    order_id: Optional[str] = None


class OkResponse(CamelModel):
    ok: bool = True


class ErrorResponse(CamelModel):
    """Standard error response."""
    error: str
    order_id: Optional[str] = None


class HealthResponse(CamelModel):
    """Health check response."""
    status: str
    storage: str
    storage_backend: str
    payment_service: str
    timestamp: datetime
