"""
Fulfillment dispatcher.

One tick does at most one unit of external work, in fixed priority order:

1. submit one DataHubnet item,
2. otherwise poll one submitted DataHubnet item,
3. otherwise submit one Hubnet item.

Ownership of an item for submission is taken by ``Claimer.claim``: a conditional
UPDATE keyed on the item id *and* the eligibility predicate. Whoever gets the
row count of one owns the item; every other worker sees zero rows and moves on.
That makes it safe to run several dispatchers (threads, processes, Celery
workers) against the same database.
"""
from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Optional

import requests
from django.db.models import F
from django.utils import timezone

from apps.providers.adapters import AdapterBinding, ProviderError, get_adapter

from . import fulfillment_state as state
from .bundles import parse_volume_mb, resolve_capacity
from .conf import FulfillmentSettings, get_fulfillment_settings
from .models import FulfillmentProvider, FulfillmentStatus, OrderItem
from .reconciler import poll_one_datahubnet
from .references import build_reference
from .routing_engine import hubnet_network_for_category

logger = logging.getLogger(__name__)

PROVIDER_FAILURES = (ProviderError, requests.RequestException)

STAGE_DATAHUBNET_DISPATCH = 'datahubnet-dispatch'
STAGE_DATAHUBNET_POLL = 'datahubnet-poll'
STAGE_HUBNET_DISPATCH = 'hubnet-dispatch'


class Claimer:
    """Atomic "take the oldest eligible item and mark it SENDING"."""

    def candidate(self, provider: str, cutoff) -> Optional[Any]:
        return (
            OrderItem.objects.filter(state.claimable_q(provider, cutoff))
            .order_by('updated_at')
            .values_list('id', flat=True)
            .first()
        )

    def try_claim(self, item_id, provider: str, cutoff, *, extra: Optional[Dict[str, Any]] = None) -> bool:
        # Own-table predicate only: a join would make Django rewrite the UPDATE
        # as ``WHERE id IN (subquery)`` and lose the compare-and-swap re-check.
        now = timezone.now()
        fields: Dict[str, Any] = {
            'hubnet_status': FulfillmentStatus.SENDING,
            'hubnet_attempts': F('hubnet_attempts') + 1,
            'hubnet_last_attempt_at': now,
            'hubnet_last_error': None,
            'updated_at': now,
        }
        if extra:
            fields.update(extra)
        claimed = OrderItem.objects.filter(state.item_claimable_q(provider, cutoff), id=item_id).update(**fields)
        return claimed == 1

    def claim(self, provider: str, interval: timedelta, *, extra: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Return the claimed item id, or ``None`` when nothing was claimed (idle or lost race)."""
        cutoff = timezone.now() - interval
        item_id = self.candidate(provider, cutoff)
        if item_id is None:
            return None
        if not self.try_claim(item_id, provider, cutoff, extra=extra):
            logger.info('Claim on %s item %s lost to another worker', provider, item_id)
            return None
        logger.info('Claimed %s item %s', provider, item_id)
        return item_id


class FulfillmentDispatcher:
    """
    Periodic driver for fulfillment.

    ``tick()`` runs one pass; overlapping calls are skipped, not queued.
    ``start()`` runs ticks every ``dispatch_interval`` on a daemon thread until
    ``stop()``.
    """

    def __init__(
        self,
        conf: Optional[FulfillmentSettings] = None,
        *,
        claimer: Optional[Claimer] = None,
        hubnet: Optional[AdapterBinding] = None,
        datahubnet: Optional[AdapterBinding] = None,
    ) -> None:
        self.conf = conf or get_fulfillment_settings()
        self.claimer = claimer or Claimer()
        self.hubnet = hubnet or get_adapter(FulfillmentProvider.HUBNET)
        self.datahubnet = datahubnet or get_adapter(FulfillmentProvider.DATAHUBNET)
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- lifecycle ---------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if not self.conf.any_provider_configured:
            logger.warning('No fulfillment provider configured; dispatcher not started')
            return False
        if self.running:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='fulfillment-dispatcher', daemon=True)
        self._thread.start()
        logger.info('Fulfillment dispatcher started (interval %sms)', self.conf.dispatch_interval_ms)
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info('Fulfillment dispatcher stopped')

    def _run(self) -> None:
        interval = self.conf.dispatch_interval.total_seconds()
        while not self._stop_event.wait(interval):
            try:
                self.tick()
            except Exception:
                logger.exception('Fulfillment tick crashed')

    # -- ticks -------------------------------------------------------------

    def tick(self) -> Optional[str]:
        """Run one pass. Returns the stage that did work, or ``None``."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug('Previous fulfillment tick still running; skipping')
            return None
        try:
            return self.run_once()
        finally:
            self._tick_lock.release()

    def run_once(self) -> Optional[str]:
        if self.conf.datahubnet.configured:
            if self.dispatch_datahubnet():
                return STAGE_DATAHUBNET_DISPATCH
            if poll_one_datahubnet(self.conf, self.datahubnet):
                return STAGE_DATAHUBNET_POLL
        if self.conf.hubnet.configured:
            if self.dispatch_hubnet():
                return STAGE_HUBNET_DISPATCH
        return None

    # -- stages ------------------------------------------------------------

    def _load(self, item_id) -> Optional[OrderItem]:
        return OrderItem.objects.select_related('order', 'product__category').filter(id=item_id).first()

    def _fail_attempt(self, item: OrderItem, reason: str, **extra) -> None:
        state.mark_failed(item.id, reason, only_statuses=[FulfillmentStatus.SENDING], **extra)
        logger.warning('Item %s failed before submission: %s', item.id, reason)

    def _record_provider_failure(self, item: OrderItem, provider: str, exc: Exception) -> None:
        message = str(exc) or f'{provider} request failed'
        permanent = state.is_permanent_error(message)
        state.mark_failed(item.id, message, exhaust=permanent, only_statuses=[FulfillmentStatus.SENDING])
        logger.warning(
            '%s rejected item %s (attempt %s%s): %s',
            provider, item.id, item.hubnet_attempts, ', permanent' if permanent else '', message,
        )

    def _record_unexpected_failure(self, item_id, provider: str, exc: Exception) -> None:
        # A claimed item must not be left in SENDING: nothing claims it from there.
        logger.exception('%s dispatch of item %s crashed', provider, item_id)
        state.mark_failed(item_id, str(exc) or f'{provider} request failed', only_statuses=[FulfillmentStatus.SENDING])

    def dispatch_datahubnet(self) -> bool:
        network = self.conf.datahubnet.telecel_network
        item_id = self.claimer.claim(
            FulfillmentProvider.DATAHUBNET.value,
            self.conf.dispatch_interval,
            extra={'hubnet_network': network},
        )
        if item_id is None:
            return False
        try:
            self._submit_datahubnet(item_id, network)
        except Exception as exc:
            self._record_unexpected_failure(item_id, 'DataHubnet', exc)
        return True

    def _submit_datahubnet(self, item_id, network: str) -> None:
        provider = FulfillmentProvider.DATAHUBNET.value
        item = self._load(item_id)
        if item is None:
            return

        phone = item.recipient_phone or item.order.customer_phone
        volume_mb = item.hubnet_volume_mb or parse_volume_mb(item.product)
        capacity = item.hubnet_capacity or resolve_capacity(item.product, volume_mb, self.conf.datahubnet.capacity_map)
        reference = item.hubnet_reference or build_reference(provider, item.order_id, item.id)

        if not phone or not capacity:
            reason = 'Missing recipient phone' if not phone else 'Unable to determine bundle size (capacity)'
            self._fail_attempt(item, reason, hubnet_reference=reference)
            return

        state.record_context(
            item.id,
            hubnet_volume_mb=volume_mb,
            hubnet_capacity=capacity,
            hubnet_reference=reference,
        )
        try:
            result = self.datahubnet.adapter.place_order(
                self.datahubnet.credentials(self.conf),
                phone=phone,
                network=network,
                capacity=capacity,
                reference=reference,
                express=True,
            )
        except PROVIDER_FAILURES as exc:
            self._record_provider_failure(item, 'DataHubnet', exc)
            return

        state.mark_submitted(item.id, transaction_id=result.remote_id)
        logger.info('DataHubnet accepted item %s ref=%s remote=%s', item.id, reference, result.remote_id)

    def dispatch_hubnet(self) -> bool:
        item_id = self.claimer.claim(FulfillmentProvider.HUBNET.value, self.conf.dispatch_interval)
        if item_id is None:
            return False
        try:
            self._submit_hubnet(item_id)
        except Exception as exc:
            self._record_unexpected_failure(item_id, 'Hubnet', exc)
        return True

    def _submit_hubnet(self, item_id) -> None:
        provider = FulfillmentProvider.HUBNET.value
        item = self._load(item_id)
        if item is None:
            return

        category_slug = item.product.category_slug
        network = item.hubnet_network or hubnet_network_for_category(category_slug, self.conf.hubnet.network_map)
        if not network:
            self._fail_attempt(item, f"No Hubnet network mapping for category: {category_slug or 'unknown'}")
            return

        phone = item.recipient_phone or item.order.customer_phone
        volume_mb = item.hubnet_volume_mb or parse_volume_mb(item.product)
        reference = item.hubnet_reference or build_reference(provider, item.order_id, item.id)

        if not phone or not volume_mb:
            reason = 'Missing recipient phone' if not phone else 'Unable to determine bundle size (volumeMb)'
            self._fail_attempt(item, reason, hubnet_network=network, hubnet_reference=reference)
            return

        state.record_context(
            item.id,
            hubnet_network=network,
            hubnet_volume_mb=volume_mb,
            hubnet_reference=reference,
        )
        try:
            result = self.hubnet.adapter.new_transaction(
                self.hubnet.credentials(self.conf),
                network=network,
                phone=phone,
                volume_mb=volume_mb,
                reference=reference,
                referrer=item.order.customer_phone,
                webhook=self.conf.hubnet.webhook_url or None,
            )
        except PROVIDER_FAILURES as exc:
            self._record_provider_failure(item, 'Hubnet', exc)
            return

        state.mark_submitted(item.id, transaction_id=result.transaction_id, payment_id=result.payment_id)
        logger.info('Hubnet accepted item %s ref=%s transaction=%s', item.id, reference, result.transaction_id)
