"""
Order item fulfillment lifecycle.

Stored status (``OrderItem.hubnet_status``)::

    None -> PENDING -> SENDING -> SUBMITTED -> DELIVERED
                          |           |
                          +-> FAILED <+

``FAILED`` is split into two phases that the column alone does not name:
``RETRYABLE_FAILURE`` (attempts below the cap, the claimer will pick it up again
once the backoff interval has passed) and ``EXHAUSTED`` (attempts at the cap,
never claimed again). ``hubnet_skip`` sits outside the machine entirely.

Every write here is a single-row queryset ``update()`` so concurrent dispatchers
and webhook deliveries never overwrite each other's fields with stale instances.
``auto_now`` does not fire on ``update()``, hence the explicit ``updated_at``.
"""
from __future__ import annotations

import enum
import re
from datetime import datetime
from typing import Any, Iterable, Optional

from django.db.models import Q
from django.utils import timezone

from .models import (
    MAX_FULFILLMENT_ATTEMPTS,
    FulfillmentProvider,
    FulfillmentStatus,
    OrderItem,
    PaymentStatus,
)


class FulfillmentPhase(str, enum.Enum):
    UNQUEUED = 'UNQUEUED'
    SKIPPED = 'SKIPPED'
    PENDING = 'PENDING'
    SENDING = 'SENDING'
    SUBMITTED = 'SUBMITTED'
    DELIVERED = 'DELIVERED'
    RETRYABLE_FAILURE = 'RETRYABLE_FAILURE'
    EXHAUSTED = 'EXHAUSTED'


# Statuses the claimer may take an item from; FAILED items are retried until the attempt cap.
CLAIMABLE_STATUSES = (FulfillmentStatus.PENDING, FulfillmentStatus.FAILED)

# Provider error text that no amount of retrying will fix.
PERMANENT_ERROR_RE = re.compile(r'not eligible|contact the administrator', re.IGNORECASE)

DELIVERED_TEXT_RE = re.compile(r'deliver|success|completed', re.IGNORECASE)
FAILED_TEXT_RE = re.compile(r'fail|error|cancel', re.IGNORECASE)


def phase_of(item: OrderItem) -> FulfillmentPhase:
    if item.hubnet_skip:
        return FulfillmentPhase.SKIPPED
    status = item.hubnet_status
    if not status:
        if (item.hubnet_attempts or 0) >= MAX_FULFILLMENT_ATTEMPTS:
            return FulfillmentPhase.EXHAUSTED
        return FulfillmentPhase.UNQUEUED
    if status == FulfillmentStatus.FAILED:
        if (item.hubnet_attempts or 0) >= MAX_FULFILLMENT_ATTEMPTS:
            return FulfillmentPhase.EXHAUSTED
        return FulfillmentPhase.RETRYABLE_FAILURE
    return FulfillmentPhase(str(status))


def is_permanent_error(message: Optional[str]) -> bool:
    return bool(message) and bool(PERMANENT_ERROR_RE.search(message))


def classify_status_text(text: Any) -> Optional[str]:
    """Map provider free text onto DELIVERED / FAILED, or ``None`` while still in flight."""
    if not isinstance(text, str) or not text.strip():
        return None
    if DELIVERED_TEXT_RE.search(text):
        return FulfillmentStatus.DELIVERED
    if FAILED_TEXT_RE.search(text):
        return FulfillmentStatus.FAILED
    return None


def provider_q(provider: str) -> Q:
    # items enqueued before provider routing existed have no provider and belong to Hubnet
    if provider == FulfillmentProvider.HUBNET:
        return Q(fulfillment_provider__isnull=True) | Q(fulfillment_provider=FulfillmentProvider.HUBNET)
    return Q(fulfillment_provider=provider)


def backoff_q(cutoff: datetime) -> Q:
    return Q(hubnet_last_attempt_at__isnull=True) | Q(hubnet_last_attempt_at__lte=cutoff)


def item_claimable_q(provider: str, cutoff: datetime) -> Q:
    """Eligibility on the item row alone; the compare-and-swap claim filters on this."""
    return (
        Q(hubnet_skip=False)
        & Q(hubnet_attempts__lt=MAX_FULFILLMENT_ATTEMPTS)
        & (Q(hubnet_status__isnull=True) | Q(hubnet_status__in=CLAIMABLE_STATUSES))
        & backoff_q(cutoff)
        & provider_q(provider)
    )


def claimable_q(provider: str, cutoff: datetime) -> Q:
    # payment never goes back to UNPAID, so checking it at selection time is enough
    return Q(order__payment_status=PaymentStatus.PAID) & item_claimable_q(provider, cutoff)


def pollable_q(provider: str, cutoff: datetime) -> Q:
    return (
        Q(order__payment_status=PaymentStatus.PAID)
        & Q(hubnet_skip=False)
        & Q(hubnet_status=FulfillmentStatus.SUBMITTED)
        & backoff_q(cutoff)
        & provider_q(provider)
    )


def _update(item_id, *, only_statuses: Optional[Iterable[str]] = None, exclude_statuses: Optional[Iterable[str]] = None, **fields) -> int:
    qs = OrderItem.objects.filter(id=item_id)
    if only_statuses is not None:
        qs = qs.filter(hubnet_status__in=list(only_statuses))
    if exclude_statuses is not None:
        qs = qs.exclude(hubnet_status__in=list(exclude_statuses))
    fields['updated_at'] = timezone.now()
    return qs.update(**fields)


def record_context(item_id, **fields) -> int:
    """Persist resolved network / volume / reference before the provider call."""
    return _update(item_id, **fields)


def mark_submitted(item_id, *, transaction_id: Optional[str] = None, payment_id: Optional[str] = None) -> int:
    fields: dict = {'hubnet_status': FulfillmentStatus.SUBMITTED}
    if transaction_id:
        fields['hubnet_transaction_id'] = transaction_id
    if payment_id:
        fields['hubnet_payment_id'] = payment_id
    return _update(item_id, only_statuses=[FulfillmentStatus.SENDING], **fields)


def mark_failed(item_id, reason: str, *, exhaust: bool = False, only_statuses: Optional[Iterable[str]] = None, **extra) -> int:
    fields: dict = {'hubnet_status': FulfillmentStatus.FAILED, 'hubnet_last_error': reason, **extra}
    if exhaust:
        fields['hubnet_attempts'] = MAX_FULFILLMENT_ATTEMPTS
    # a late failure report never demotes a delivered item
    return _update(
        item_id,
        only_statuses=only_statuses,
        exclude_statuses=None if only_statuses is not None else [FulfillmentStatus.DELIVERED],
        **fields,
    )


def mark_delivered(
    item_id,
    *,
    transaction_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    only_statuses: Optional[Iterable[str]] = None,
) -> int:
    fields: dict = {
        'hubnet_status': FulfillmentStatus.DELIVERED,
        'hubnet_delivered_at': timezone.now(),
        'hubnet_last_error': None,
    }
    if transaction_id:
        fields['hubnet_transaction_id'] = transaction_id
    if payment_id:
        fields['hubnet_payment_id'] = payment_id
    return _update(
        item_id,
        only_statuses=only_statuses,
        exclude_statuses=None if only_statuses is not None else [FulfillmentStatus.DELIVERED],
        **fields,
    )


def mark_pending(item_id, *, provider: str, network: str, reference: str, volume_mb: Optional[int], capacity: Optional[int] = None) -> int:
    """Enqueue an item: fresh retry budget, reference kept if it already had one."""
    return _update(
        item_id,
        fulfillment_provider=provider,
        hubnet_skip=False,
        hubnet_status=FulfillmentStatus.PENDING,
        hubnet_network=network,
        hubnet_volume_mb=volume_mb,
        hubnet_capacity=capacity,
        hubnet_reference=reference,
        hubnet_attempts=0,
        hubnet_last_attempt_at=None,
        hubnet_last_error=None,
        hubnet_transaction_id=None,
        hubnet_payment_id=None,
    )


def mark_skipped(item_id, *, provider: str) -> int:
    return _update(
        item_id,
        fulfillment_provider=provider,
        hubnet_skip=True,
        hubnet_status=None,
        hubnet_network=None,
        hubnet_volume_mb=None,
        hubnet_capacity=None,
        hubnet_reference=None,
        hubnet_transaction_id=None,
        hubnet_payment_id=None,
        hubnet_attempts=0,
        hubnet_last_error=None,
        hubnet_last_attempt_at=None,
        hubnet_delivered_at=None,
    )
