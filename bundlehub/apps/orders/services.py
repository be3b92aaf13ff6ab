from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from . import fulfillment_state as state
from .bundles import parse_volume_mb, resolve_capacity
from .conf import FulfillmentSettings, get_fulfillment_settings
from .models import FulfillmentProvider, FulfillmentStatus, Order, OrderItem, OrderStatus, PaymentStatus
from .references import build_reference
from .routing_engine import route_product

logger = logging.getLogger(__name__)


class FulfillmentError(Exception):
    """Base exception for fulfillment operations."""

    status_code = 500


class OrderNotFoundError(FulfillmentError):
    """Raised when the order is missing."""

    status_code = 404


@dataclass
class EnqueueResult:
    queued: bool
    pending: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    untouched: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'queued': self.queued,
            'pending': len(self.pending),
            'failed': len(self.failed),
            'skipped': len(self.skipped),
            'untouched': len(self.untouched),
        }


def _fail_at_enqueue(item: OrderItem, provider: str, reason: str, *, network: Optional[str] = None) -> None:
    # Nothing a retry could fix; a later re-enqueue resets the budget.
    extra = {
        'fulfillment_provider': provider,
        'hubnet_skip': False,
        'hubnet_last_attempt_at': timezone.now(),
    }
    if network is not None:
        extra['hubnet_network'] = network
    state.mark_failed(item.id, reason, exhaust=True, **extra)
    logger.warning('Order %s item %s not enqueued: %s', item.order_id, item.id, reason)


def _enqueue_item(item: OrderItem, order: Order, conf: FulfillmentSettings, result: EnqueueResult) -> None:
    decision = route_product(item.product, conf)
    item_key = str(item.id)

    if decision.provider == FulfillmentProvider.DATAHUBNET:
        network = decision.network
        if not conf.datahubnet.configured:
            _fail_at_enqueue(item, decision.provider, 'DataHubnet is not configured', network=network)
            result.failed.append(item_key)
            return
        volume_mb = parse_volume_mb(item.product)
        capacity = resolve_capacity(item.product, volume_mb, conf.datahubnet.capacity_map)
        if not capacity:
            _fail_at_enqueue(item, decision.provider, 'Unable to determine bundle size (capacity)', network=network)
            result.failed.append(item_key)
            return
    else:
        if not conf.hubnet.configured:
            _fail_at_enqueue(item, decision.provider, 'Hubnet is not configured')
            result.failed.append(item_key)
            return
        if decision.skip:
            state.mark_skipped(item.id, provider=decision.provider)
            result.skipped.append(item_key)
            return
        network = decision.network
        volume_mb = parse_volume_mb(item.product)
        capacity = None
        if not volume_mb:
            _fail_at_enqueue(item, decision.provider, 'Unable to determine bundle size (volumeMb)', network=network)
            result.failed.append(item_key)
            return

    reference = item.hubnet_reference or build_reference(decision.provider, order.id, item.id)
    state.mark_pending(
        item.id,
        provider=decision.provider,
        network=network,
        reference=reference,
        volume_mb=volume_mb,
        capacity=capacity,
    )
    result.pending.append(item_key)


def queue_order_fulfillment(order_id, *, conf: Optional[FulfillmentSettings] = None) -> EnqueueResult:
    """
    Hand every not-yet-handled item of a paid order to the dispatcher.

    Items already PENDING / SENDING / SUBMITTED / DELIVERED are left alone; unqueued
    and FAILED items are routed again. The order row is locked for the duration
    so two payment confirmations for the same order cannot enqueue concurrently.
    """
    conf = conf or get_fulfillment_settings()
    if not conf.any_provider_configured:
        logger.info('No fulfillment provider configured, order %s not queued', order_id)
        return EnqueueResult(queued=False)

    with transaction.atomic():
        order = Order.objects.select_for_update().filter(id=order_id).first()
        if order is None:
            raise OrderNotFoundError('Order not found')
        if order.payment_status != PaymentStatus.PAID:
            return EnqueueResult(queued=False)

        result = EnqueueResult(queued=True)
        items = OrderItem.objects.filter(order_id=order.id).select_related('product__category')
        for item in items:
            if item.hubnet_status and item.hubnet_status != FulfillmentStatus.FAILED:
                result.untouched.append(str(item.id))
                continue
            _enqueue_item(item, order, conf, result)

        if result.pending:
            Order.objects.filter(id=order.id, status=OrderStatus.PENDING).update(
                status=OrderStatus.PROCESSING,
                updated_at=timezone.now(),
            )

    logger.info('Order %s enqueued for fulfillment: %s', order_id, result.as_dict())
    return result


def refresh_order_completion(order_id) -> bool:
    """
    Mark the order COMPLETED once every deliverable item is DELIVERED.

    Safe to run any number of times, from any number of workers: the counts are
    re-read each time and the write only matches orders not yet completed.
    """
    deliverable = OrderItem.objects.filter(order_id=order_id, hubnet_skip=False)
    if not deliverable.exists():
        return False
    if deliverable.exclude(hubnet_status=FulfillmentStatus.DELIVERED).exists():
        return False
    updated = (
        Order.objects.filter(id=order_id, payment_status=PaymentStatus.PAID)
        .exclude(status=OrderStatus.COMPLETED)
        .update(status=OrderStatus.COMPLETED, updated_at=timezone.now())
    )
    if updated:
        logger.info('Order %s completed', order_id)
    return bool(updated)


def mark_order_paid(order_id, *, provider: str, reference: Optional[str] = None) -> bool:
    """
    Record a confirmed payment and schedule fulfillment after commit.

    Returns ``False`` when the order was already paid; it is not enqueued again.
    """
    with transaction.atomic():
        updated = (
            Order.objects.filter(id=order_id)
            .exclude(payment_status=PaymentStatus.PAID)
            .update(
                payment_status=PaymentStatus.PAID,
                payment_provider=provider,
                payment_reference=reference,
                updated_at=timezone.now(),
            )
        )
        if not updated:
            if not Order.objects.filter(id=order_id).exists():
                raise OrderNotFoundError('Order not found')
            return False

        from .tasks import queue_order_fulfillment as queue_task

        transaction.on_commit(lambda: queue_task.delay(str(order_id)))

    logger.info('Order %s paid via %s (%s)', order_id, provider, reference)
    return True
