"""
Delivery confirmation for submitted items.

DataHubnet confirmations are pulled (``poll_one_datahubnet``), Hubnet ones are
pushed to the webhook (``apply_webhook_update``). Both end in the same
transitions from ``fulfillment_state`` and the same completion check. A failure
reported here does not consume the retry budget, but leaves the item FAILED and
therefore claimable again until the attempt cap.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from django.utils import timezone

from apps.providers.adapters import AdapterBinding, ProviderError, get_adapter
from apps.providers.adapters.extract import first_present, first_text, first_truthy, path

from . import fulfillment_state as state
from .conf import FulfillmentSettings, get_fulfillment_settings
from .models import FulfillmentProvider, FulfillmentStatus, OrderItem
from .services import refresh_order_completion

logger = logging.getLogger(__name__)

PROVIDER_FAILURES = (ProviderError, requests.RequestException)

# Hubnet has moved the reference around between payload versions.
WEBHOOK_REFERENCE_STRATEGIES = (
    path('reference'),
    path('data', 'reference'),
    path('data', 'transaction', 'reference'),
)

WEBHOOK_STATUS_FLAG_STRATEGIES = (
    path('status'),
    path('data', 'status'),
)

WEBHOOK_STATUS_TEXT_STRATEGIES = (
    path('delivery_status'),
    path('status_text'),
    path('data', 'delivery_status'),
    path('data', 'status'),
    path('status'),
)

WEBHOOK_REASON_STRATEGIES = (
    path('reason'),
    path('code'),
    path('message'),
)

WEBHOOK_TRANSACTION_ID_STRATEGIES = (
    path('transaction_id'),
    path('data', 'transaction_id'),
)

WEBHOOK_PAYMENT_ID_STRATEGIES = (
    path('payment_id'),
    path('data', 'payment_id'),
)


class WebhookPayloadError(Exception):
    status_code = 400


@dataclass
class WebhookOutcome:
    item_id: str
    order_id: str
    status: Optional[str]
    changed: bool


def _flags(payload: Any) -> list:
    return [strategy(payload) for strategy in WEBHOOK_STATUS_FLAG_STRATEGIES]


def classify_webhook(payload: Any) -> Optional[str]:
    """
    DELIVERED, FAILED or ``None`` (no verdict yet) for a Hubnet push.

    A boolean ``true`` status or delivered-looking text wins. Failure-looking text
    or an explicit ``false`` fails the item. Text matching neither pattern leaves
    the item as it is; a payload carrying no status signal at all is a failure.
    """
    flags = _flags(payload)
    if any(flag is True for flag in flags):
        return FulfillmentStatus.DELIVERED

    text = first_text(payload, WEBHOOK_STATUS_TEXT_STRATEGIES)
    verdict = state.classify_status_text(text)
    if verdict is not None:
        return verdict
    if any(flag is False for flag in flags):
        return FulfillmentStatus.FAILED
    if text:
        return None
    return FulfillmentStatus.FAILED


def webhook_reference(payload: Any) -> str:
    value = first_truthy(payload, WEBHOOK_REFERENCE_STRATEGIES)
    return str(value).strip() if value else ''


def apply_webhook_update(payload: Any) -> Optional[WebhookOutcome]:
    """
    Apply a Hubnet delivery push. Returns ``None`` for references we do not know.

    Raises ``WebhookPayloadError`` when the payload carries no reference at all.
    """
    if not isinstance(payload, dict):
        raise WebhookPayloadError('Invalid payload')
    reference = webhook_reference(payload)
    if not reference:
        raise WebhookPayloadError('Missing reference')

    item = OrderItem.objects.filter(hubnet_reference=reference).only('id', 'order_id', 'hubnet_status').first()
    if item is None:
        logger.info('Hubnet webhook for unknown reference %s ignored', reference)
        return None

    verdict = classify_webhook(payload)
    changed = 0
    if verdict == FulfillmentStatus.DELIVERED:
        transaction_id = first_truthy(payload, WEBHOOK_TRANSACTION_ID_STRATEGIES)
        payment_id = first_truthy(payload, WEBHOOK_PAYMENT_ID_STRATEGIES)
        changed = state.mark_delivered(
            item.id,
            transaction_id=str(transaction_id) if transaction_id else None,
            payment_id=str(payment_id) if payment_id else None,
        )
        refresh_order_completion(item.order_id)
    elif verdict == FulfillmentStatus.FAILED:
        reason = first_present(payload, WEBHOOK_REASON_STRATEGIES)
        changed = state.mark_failed(item.id, str(reason) if reason is not None else 'Hubnet failed')
    else:
        logger.info('Hubnet webhook for %s has no final status yet', reference)

    logger.info(
        'Hubnet webhook ref=%s item=%s verdict=%s changed=%s',
        reference, item.id, verdict, bool(changed),
    )
    return WebhookOutcome(
        item_id=str(item.id),
        order_id=str(item.order_id),
        status=verdict,
        changed=bool(changed),
    )


def poll_one_datahubnet(
    conf: Optional[FulfillmentSettings] = None,
    binding: Optional[AdapterBinding] = None,
) -> bool:
    """
    Check the status of the oldest SUBMITTED DataHubnet item.

    Returns ``False`` when there was nothing to poll. The backoff stamp is
    written before the call so an ambiguous or failing status check does not
    make the next tick poll the same item again.
    """
    conf = conf or get_fulfillment_settings()
    binding = binding or get_adapter(FulfillmentProvider.DATAHUBNET)
    provider = FulfillmentProvider.DATAHUBNET.value
    now = timezone.now()
    cutoff = now - conf.dispatch_interval

    item = (
        OrderItem.objects.filter(state.pollable_q(provider, cutoff))
        .order_by('updated_at')
        .only('id', 'order_id', 'hubnet_transaction_id', 'hubnet_reference')
        .first()
    )
    if item is None:
        return False

    stamped = (
        OrderItem.objects.filter(id=item.id, hubnet_status=FulfillmentStatus.SUBMITTED)
        .filter(state.backoff_q(cutoff))
        .update(hubnet_last_attempt_at=now, updated_at=now)
    )
    if not stamped:
        return False

    check_id = item.hubnet_transaction_id or item.hubnet_reference
    try:
        result = binding.adapter.check_status(binding.credentials(conf), check_id)
    except PROVIDER_FAILURES as exc:
        logger.warning('DataHubnet status check for item %s failed: %s', item.id, exc)
        state.record_context(item.id, hubnet_last_error=str(exc) or 'DataHubnet status check failed')
        return True

    verdict = state.classify_status_text(result.status_text)
    if verdict == FulfillmentStatus.DELIVERED:
        state.mark_delivered(item.id, only_statuses=[FulfillmentStatus.SUBMITTED])
        refresh_order_completion(item.order_id)
    elif verdict == FulfillmentStatus.FAILED:
        state.mark_failed(
            item.id,
            result.status_text or 'DataHubnet failed',
            only_statuses=[FulfillmentStatus.SUBMITTED],
        )
    logger.info('DataHubnet poll item=%s status=%r verdict=%s', item.id, result.status_text, verdict)
    return True
