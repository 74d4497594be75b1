"""
Test the key-value (Redis) storage backend against fakeredis.
"""

import pytest
from fakeredis import FakeAsyncRedis

from dormside.schemas import OrderStatus
from dormside.services.storage.kv import (
    INDEX_KEY,
    KeyValueOrderStore,
    KeyValueStoreStatusGate,
    order_key,
)
from tests.test_file_store import make_draft


class DeletesOrderDuringUpdate:
    """
    Redis client wrapper that deletes an order the first time an update
    has read it, before the update's transaction executes.
    """

    def __init__(self, client: FakeAsyncRedis):
        self._client = client
        self.fired = False

    def __getattr__(self, name):
        return getattr(self._client, name)

    def pipeline(self, transaction: bool = True):
        pipe = self._client.pipeline(transaction=transaction)
        read = pipe.get

        async def get_then_delete(key):
            value = await read(key)
            if value is not None and not self.fired:
                self.fired = True
                await KeyValueOrderStore(self._client).delete(key.rsplit(":", 1)[-1])
            return value

        pipe.get = get_then_delete
        return pipe


@pytest.fixture
def redis_client():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def kv_store(redis_client):
    return KeyValueOrderStore(redis_client)


# ============================================================================
# Orders
# ============================================================================

@pytest.mark.asyncio
async def test_create_get_and_list(kv_store, redis_client):
    first = await kv_store.create(make_draft())
    second = await kv_store.create(make_draft())

    assert await kv_store.get(first.id) == first
    assert [o.id for o in await kv_store.list_orders()] == [second.id, first.id]
    assert '"paymentMethod":"cash"' in await redis_client.get(order_key(first.id))


@pytest.mark.asyncio
async def test_update_status_and_attach_intent(kv_store):
    order = await kv_store.create(make_draft(status=OrderStatus.PENDING, payment_method="card"))

    attached = await kv_store.attach_payment_intent(order.id, "pi_1")
    paid = await kv_store.update_status(order.id, OrderStatus.PAID, expected=OrderStatus.PENDING)

    assert attached.payment_intent_id == "pi_1"
    assert paid.status == OrderStatus.PAID
    assert paid.payment_intent_id == "pi_1"
    assert await kv_store.update_status(order.id, OrderStatus.PENDING, expected=OrderStatus.PENDING) is None
    assert (await kv_store.get(order.id)).status == OrderStatus.PAID


@pytest.mark.asyncio
async def test_unknown_order(kv_store):
    assert await kv_store.get("missing") is None
    assert await kv_store.update_status("missing", OrderStatus.PAID) is None
    assert await kv_store.attach_payment_intent("missing", "pi_1") is None
    assert await kv_store.delete("missing") is False


@pytest.mark.asyncio
async def test_delete_removes_document_and_index(kv_store, redis_client):
    order = await kv_store.create(make_draft())

    assert await kv_store.delete(order.id) is True
    assert await redis_client.zcard(INDEX_KEY) == 0
    assert await kv_store.list_orders() == []


@pytest.mark.asyncio
async def test_delete_wins_over_concurrent_update(redis_client):
    order = await KeyValueOrderStore(redis_client).create(make_draft())
    racing = DeletesOrderDuringUpdate(redis_client)

    result = await KeyValueOrderStore(racing).update_status(order.id, OrderStatus.PAID)

    assert racing.fired
    assert result is None
    assert await redis_client.get(order_key(order.id)) is None


# ============================================================================
# Store status gate
# ============================================================================

@pytest.mark.asyncio
async def test_gate(redis_client):
    gate = KeyValueStoreStatusGate(redis_client)

    assert await gate.is_accepting_orders() is True
    await gate.set_accepting_orders(False)
    assert await gate.is_accepting_orders() is False
    await gate.set_accepting_orders(True)
    assert await gate.is_accepting_orders() is True
