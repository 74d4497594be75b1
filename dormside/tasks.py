"""
Celery Tasks
Background tasks for order receipts.
"""

import logging
import time
from datetime import datetime, timezone

from kombu.exceptions import OperationalError

from dormside.celery_worker import celery_app
from dormside.core.config import get_settings
from dormside.schemas import Order
from dormside.services.notifications import build_receipt_message, get_mailer, receipt_copies
from dormside.services.notifications.receipts import STORE_COPY

logger = logging.getLogger(__name__)


class ReceiptDeliveryError(Exception):
    """A receipt email was rejected by the mail provider."""


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(ReceiptDeliveryError,),
    retry_backoff=True
)
def send_order_receipt(self, order_data: dict, copy: str = STORE_COPY) -> dict:
    """
    Email one copy of the receipt for one order.

    Each copy is its own task, so a retry after a rejected customer copy
    never re-sends the store copy.

    Args:
        order_data: The order as serialized JSON (camelCase)
        copy: ``"store"`` or ``"customer"``

    Returns:
        dict: Recipient and provider message id
    """
    settings = get_settings()
    order = Order.model_validate(order_data)
    task_id = self.request.id
    start_time = time.time()

    logger.info(f"📋 Task {task_id}: Sending {copy} receipt for order {order.id}")

    message = build_receipt_message(
        order,
        copy,
        from_email=settings.sendgrid_from_email,
        admin_email=settings.admin_email,
        store_name=settings.store_name,
    )
    result = get_mailer().send(message)
    if not result.success:
        logger.warning(f"⚠️ Task {task_id}: Receipt to {message.to} failed - {result.error_message}")
        raise ReceiptDeliveryError(result.error_message or "Email rejected")

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"✅ Task {task_id}: Order {order.id} {copy} receipt sent in {elapsed}s")
    return {
        "success": True,
        "order_id": order.id,
        "copy": copy,
        "to": message.to,
        "message_id": result.message_id,
        "processing_time_seconds": elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }


def queue_order_receipt(order: Order) -> None:
    """
    Queue one receipt task per copy of ``order``'s receipt.

    A broker outage is logged and swallowed: the order is already stored
    and must not fail because its receipt could not be queued.
    """
    order_data = order.model_dump(mode="json", by_alias=True)
    for copy in receipt_copies(order):
        try:
            send_order_receipt.delay(order_data, copy)
        except OperationalError as e:
            logger.error(f"❌ Could not queue {copy} receipt for order {order.id}: {e}")
