"""
Key-Value Storage Backend (Redis)

Layout::

    dormside:order:<id>         JSON document of one order
    dormside:orders             sorted set of ids scored by creation time
    dormside:settings:is_open   "1" / "0"

Status updates use WATCH/MULTI on the order's key: if the key is deleted
between the read and the write the transaction aborts and the retry sees
the order is gone, so a delete always wins over a concurrent update. The
expected-status check of a conditional update runs under the same WATCH.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from dormside.core.errors import StorageUnavailable
from dormside.schemas import Order, OrderDraft, OrderStatus
from dormside.services.storage.base import (
    BaseOrderStore,
    BaseStoreStatusGate,
    new_order,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "dormside"
INDEX_KEY = f"{KEY_PREFIX}:orders"
OPEN_FLAG_KEY = f"{KEY_PREFIX}:settings:is_open"
MAX_UPDATE_ATTEMPTS = 5


def order_key(order_id: str) -> str:
    return f"{KEY_PREFIX}:order:{order_id}"


def create_kv_client(url: str, timeout: float) -> aioredis.Redis:
    return aioredis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


def _dump(order: Order) -> str:
    return order.model_dump_json(by_alias=True)


class KeyValueOrderStore(BaseOrderStore):
    """Order store backed by a Redis client owned by the caller."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    async def create(self, draft: OrderDraft) -> Order:
        record = new_order(draft)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(order_key(record.id), _dump(record))
                pipe.zadd(INDEX_KEY, {record.id: record.created_at.timestamp()})
                await pipe.execute()
        except RedisError as e:
            logger.error(f"KV store: create failed - {e}")
            raise StorageUnavailable() from e
        logger.debug(f"KV store: created order {record.id}")
        return record

    async def get(self, order_id: str) -> Optional[Order]:
        try:
            raw = await self._redis.get(order_key(order_id))
        except RedisError as e:
            logger.error(f"KV store: get failed - {e}")
            raise StorageUnavailable() from e
        return Order.model_validate_json(raw) if raw else None

    async def list_orders(self) -> list[Order]:
        try:
            ids = await self._redis.zrevrange(INDEX_KEY, 0, -1)
            if not ids:
                return []
            documents = await self._redis.mget([order_key(i) for i in ids])
        except RedisError as e:
            logger.error(f"KV store: list failed - {e}")
            raise StorageUnavailable() from e
        # ids whose document vanished were deleted between the two reads
        return [Order.model_validate_json(raw) for raw in documents if raw]

    async def _update(
        self,
        order_id: str,
        expected: Optional[OrderStatus] = None,
        **changes,
    ) -> Optional[Order]:
        key = order_key(order_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_UPDATE_ATTEMPTS):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            await pipe.unwatch()
                            return None
                        current = Order.model_validate_json(raw)
                        if expected is not None and current.status != expected:
                            await pipe.unwatch()
                            return None
                        updated = current.model_copy(update=changes)
                        pipe.multi()
                        pipe.set(key, _dump(updated))
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.debug(f"KV store: concurrent write on {order_id}, retrying")
                        continue
        except RedisError as e:
            logger.error(f"KV store: update failed - {e}")
            raise StorageUnavailable() from e

        logger.error(f"KV store: gave up updating {order_id} after {MAX_UPDATE_ATTEMPTS} attempts")
        raise StorageUnavailable()

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected: Optional[OrderStatus] = None,
    ) -> Optional[Order]:
        return await self._update(order_id, expected=expected, status=status)

    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> Optional[Order]:
        return await self._update(order_id, payment_intent_id=payment_intent_id)

    async def delete(self, order_id: str) -> bool:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(order_key(order_id))
                pipe.zrem(INDEX_KEY, order_id)
                removed, _ = await pipe.execute()
        except RedisError as e:
            logger.error(f"KV store: delete failed - {e}")
            raise StorageUnavailable() from e
        return removed > 0


class KeyValueStoreStatusGate(BaseStoreStatusGate):
    """Store-open flag in a single Redis key."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    async def is_accepting_orders(self) -> bool:
        try:
            value = await self._redis.get(OPEN_FLAG_KEY)
        except RedisError as e:
            logger.error(f"KV gate: read failed - {e}")
            raise StorageUnavailable() from e
        return value != "0"

    async def set_accepting_orders(self, is_open: bool) -> bool:
        try:
            await self._redis.set(OPEN_FLAG_KEY, "1" if is_open else "0")
        except RedisError as e:
            logger.error(f"KV gate: write failed - {e}")
            raise StorageUnavailable() from e
        logger.info(f"Store is now {'open' if is_open else 'closed'}")
        return bool(is_open)
