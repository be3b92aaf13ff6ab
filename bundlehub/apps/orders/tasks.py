"""
Celery tasks for fulfillment.

``run_fulfillment_tick`` is what celery beat fires every dispatch interval (see
``setup_fulfillment_schedule``). A cache lock keeps ticks from overlapping across
workers; the claim itself is already race-safe, the lock only keeps external
call volume to one unit per interval.
"""
import logging
import uuid
from typing import Optional

from celery import shared_task
from django.core.cache import cache

from .dispatcher import FulfillmentDispatcher
from .services import OrderNotFoundError, queue_order_fulfillment as enqueue_order

logger = logging.getLogger(__name__)

TICK_LOCK_KEY = 'fulfillment:tick-lock'
TICK_LOCK_TTL = 120  # seconds; longer than a worst-case tick (two provider timeouts)


@shared_task(ignore_result=True)
def run_fulfillment_tick() -> Optional[str]:
    token = uuid.uuid4().hex
    if not cache.add(TICK_LOCK_KEY, token, TICK_LOCK_TTL):
        logger.debug('Fulfillment tick already running elsewhere; skipping')
        return None
    try:
        stage = FulfillmentDispatcher().tick()
    finally:
        # the TTL may have lapsed and another worker taken the lock meanwhile
        if cache.get(TICK_LOCK_KEY) == token:
            cache.delete(TICK_LOCK_KEY)
    if stage:
        logger.info('Fulfillment tick: %s', stage)
    return stage


@shared_task(
    bind=True,
    max_retries=5,
    default_retry_delay=30,
    retry_backoff=True,
    retry_backoff_max=600,
)
def queue_order_fulfillment(self, order_id: str) -> dict:
    try:
        result = enqueue_order(order_id)
    except OrderNotFoundError:
        logger.error('Cannot enqueue order %s: not found', order_id)
        return {'queued': False, 'error': 'Order not found'}
    except Exception as exc:
        logger.exception('Enqueue for order %s failed; retrying', order_id)
        raise self.retry(exc=exc)
    return result.as_dict()
