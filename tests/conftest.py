"""
Shared test fixtures for the Dormside test suite.

The environment is pinned before anything from ``dormside`` is imported:
development mode (mock gateway and mailer), file storage and eager Celery.
"""

import os
import tempfile

os.environ.update({
    "ENV_MODE": "development",
    "DEBUG": "false",
    "STORAGE_BACKEND": "file",
    "DATA_DIRECTORY": tempfile.mkdtemp(prefix="dormside-tests-"),
    "CELERY_TASK_ALWAYS_EAGER": "true",
    "ADMIN_USERNAME": "admin",
    "ADMIN_PASSWORD": "hunter2",
    "ADMIN_SESSION_SECRET": "test-session-secret",
    "SECURE_COOKIES": "false",
    "MOCK_PAYMENT_FAILURE_RATE": "0",
    "MOCK_PAYMENT_MIN_LATENCY": "0",
    "MOCK_PAYMENT_MAX_LATENCY": "0",
})

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from dormside.core.config import Settings, get_settings  # noqa: E402
from dormside.schemas import Customer, OrderCreateRequest, OrderItem  # noqa: E402
from dormside.services.notifications import get_mailer, reset_mailer  # noqa: E402
from dormside.services.orders import OrderLifecycleController  # noqa: E402
from dormside.services.payment import get_payment_gateway, reset_payment_gateway  # noqa: E402
from dormside.services.storage.file import FileOrderStore, FileStoreStatusGate  # noqa: E402

ADMIN_CREDENTIALS = {"username": "admin", "password": "hunter2"}


# ============================================================================
# Services
# ============================================================================

@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def gateway():
    """A fresh mock gateway, also returned by get_payment_gateway()."""
    get_settings.cache_clear()
    reset_payment_gateway()
    yield get_payment_gateway()
    reset_payment_gateway()


@pytest.fixture
def mailer():
    reset_mailer()
    yield get_mailer()
    reset_mailer()


@pytest.fixture
def order_store(data_dir):
    return FileOrderStore(data_dir, lock_timeout=5)


@pytest.fixture
def status_gate(data_dir):
    return FileStoreStatusGate(data_dir, lock_timeout=5)


@pytest.fixture
def receipts():
    """Orders handed to the receipt dispatcher, in order."""
    return []


@pytest.fixture
def controller(order_store, status_gate, gateway, receipts):
    return OrderLifecycleController(
        order_store,
        status_gate,
        gateway,
        delivery_fee=Decimal("3.00"),
        receipt_dispatcher=receipts.append,
    )


# ============================================================================
# Request builders
# ============================================================================

def mac_and_cheese(quantity: int = 2) -> OrderItem:
    return OrderItem(name="Mac and Cheese", price="$9.50", quantity=quantity)


def order_request(**overrides) -> OrderCreateRequest:
    """A valid pickup order: 2 x $9.50 + $1.50 tip = $20.50."""
    fields = {
        "fulfillment": "pickup",
        "payment_method": "card",
        "tip": Decimal("1.50"),
        "delivery_fee": Decimal("0"),
        "total": Decimal("20.50"),
        "items": [mac_and_cheese()],
        "customer": Customer(name="Jamie", email="jamie@example.edu", phone="555-0100"),
    }
    fields.update(overrides)
    return OrderCreateRequest(**fields)


def order_payload(**overrides) -> dict:
    """JSON body for POST /api/orders, matching order_request()."""
    payload = {
        "fulfillment": "pickup",
        "paymentMethod": "card",
        "tip": 1.5,
        "deliveryFee": 0,
        "total": 20.5,
        "items": [{"name": "Mac and Cheese", "price": "$9.50", "quantity": 2}],
        "customer": {"name": "Jamie", "email": "jamie@example.edu", "phone": "555-0100", "address": ""},
    }
    payload.update(overrides)
    return payload


# ============================================================================
# HTTP client
# ============================================================================

@pytest.fixture
def app_settings(data_dir):
    return Settings(data_directory=data_dir)


@pytest.fixture
def client(app_settings, gateway, mailer):
    from dormside.main import create_app

    with TestClient(create_app(app_settings)) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client):
    response = client.post("/api/admin/login", json=ADMIN_CREDENTIALS)
    assert response.status_code == 200
    return client
