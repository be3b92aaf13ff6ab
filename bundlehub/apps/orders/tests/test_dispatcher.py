"""
Claimer and dispatcher: atomic claims, attempt cap, backoff, tick priority.
"""
from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from apps.orders.conf import DatahubnetSettings, FulfillmentSettings, HubnetSettings, get_fulfillment_settings
from apps.orders.dispatcher import (
    STAGE_DATAHUBNET_DISPATCH,
    STAGE_DATAHUBNET_POLL,
    STAGE_HUBNET_DISPATCH,
    Claimer,
    FulfillmentDispatcher,
)
from apps.orders.fulfillment_state import FulfillmentPhase, phase_of
from apps.orders.models import MAX_FULFILLMENT_ATTEMPTS, FulfillmentStatus, OrderItem
from apps.orders.services import queue_order_fulfillment
from apps.orders.tasks import TICK_LOCK_KEY, run_fulfillment_tick
from apps.providers.adapters import AdapterBinding, ProviderError
from apps.providers.adapters.datahubnet import DatahubnetOrderResult, DatahubnetStatusResult
from apps.providers.adapters.hubnet import HubnetTransactionResult

from .factories import age, make_item, make_order, make_product

INTERVAL = timedelta(seconds=13)


def _binding(provider):
    return AdapterBinding(provider=provider, adapter=MagicMock(), _builder=lambda conf: f'{provider}-creds')


class TestClaimer(TestCase):

    def setUp(self):
        self.claimer = Claimer()
        self.order = make_order()
        self.product = make_product("MTN 1GB", 'mtn')

    def test_claims_pending_item(self):
        item = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.PENDING, fulfillment_provider='hubnet')
        self.assertEqual(self.claimer.claim('hubnet', INTERVAL), item.id)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.SENDING)
        self.assertEqual(item.hubnet_attempts, 1)
        self.assertIsNotNone(item.hubnet_last_attempt_at)

    def test_only_one_claim_wins(self):
        item = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.PENDING)
        cutoff = timezone.now() - INTERVAL
        results = [self.claimer.try_claim(item.id, 'hubnet', cutoff) for _ in range(5)]
        self.assertEqual(results.count(True), 1)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_attempts, 1)

    def test_lost_race_is_nothing_to_do(self):
        item = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.SENDING, hubnet_attempts=1)
        with patch.object(self.claimer, 'candidate', return_value=item.id):
            self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))
        item.refresh_from_db()
        self.assertEqual(item.hubnet_attempts, 1)

    def test_attempt_cap_is_absolute(self):
        item = make_item(
            self.order, self.product,
            hubnet_status=FulfillmentStatus.FAILED,
            hubnet_attempts=MAX_FULFILLMENT_ATTEMPTS,
        )
        age(item, seconds=86400)
        self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))

    def test_skipped_item_never_claimed(self):
        make_item(self.order, self.product, hubnet_skip=True)
        self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))

    def test_unpaid_order_not_claimed(self):
        make_item(make_order(paid=False), self.product, hubnet_status=FulfillmentStatus.PENDING)
        self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))

    def test_failed_item_waits_for_backoff(self):
        item = make_item(
            self.order, self.product,
            hubnet_status=FulfillmentStatus.FAILED,
            hubnet_attempts=2,
            hubnet_last_attempt_at=timezone.now(),
        )
        self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))
        age(item, seconds=30)
        self.assertEqual(self.claimer.claim('hubnet', INTERVAL), item.id)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_attempts, 3)

    def test_in_flight_states_not_claimed(self):
        for status in (FulfillmentStatus.SENDING, FulfillmentStatus.SUBMITTED, FulfillmentStatus.DELIVERED):
            make_item(self.order, self.product, hubnet_status=status)
        self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))

    def test_claim_is_per_provider(self):
        dh_item = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.PENDING, fulfillment_provider='datahubnet')
        self.assertIsNone(self.claimer.claim('hubnet', INTERVAL))
        self.assertEqual(self.claimer.claim('datahubnet', INTERVAL), dh_item.id)

    def test_items_without_provider_belong_to_hubnet(self):
        item = make_item(self.order, self.product)
        self.assertIsNone(self.claimer.claim('datahubnet', INTERVAL))
        self.assertEqual(self.claimer.claim('hubnet', INTERVAL), item.id)

    def test_oldest_updated_first(self):
        newer = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.PENDING)
        older = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.PENDING)
        OrderItem.objects.filter(id=older.id).update(updated_at=timezone.now() - timedelta(hours=1))
        self.assertEqual(self.claimer.claim('hubnet', INTERVAL), older.id)
        self.assertEqual(self.claimer.claim('hubnet', INTERVAL), newer.id)


class TestDispatcher(TestCase):

    def setUp(self):
        self.hubnet = _binding('hubnet')
        self.datahubnet = _binding('datahubnet')
        self.hubnet.adapter.new_transaction.return_value = HubnetTransactionResult('TX-1', 'PAY-1', {})
        self.datahubnet.adapter.place_order.return_value = DatahubnetOrderResult('DH-REMOTE-1', {})
        self.dispatcher = FulfillmentDispatcher(
            get_fulfillment_settings(),
            hubnet=self.hubnet,
            datahubnet=self.datahubnet,
        )
        self.order = make_order()

    def _enqueued_item(self, name, category, **fields):
        item = make_item(self.order, make_product(name, category), **fields)
        queue_order_fulfillment(self.order.id)
        item.refresh_from_db()
        return item

    def test_nothing_to_do(self):
        self.assertIsNone(self.dispatcher.tick())
        self.hubnet.adapter.new_transaction.assert_not_called()
        self.datahubnet.adapter.place_order.assert_not_called()

    def test_hubnet_submission(self):
        item = self._enqueued_item("MTN 1GB", 'mtn')
        self.assertEqual(self.dispatcher.tick(), STAGE_HUBNET_DISPATCH)

        self.hubnet.adapter.new_transaction.assert_called_once_with(
            'hubnet-creds',
            network='mtn',
            phone='0241234567',
            volume_mb=1000,
            reference=item.hubnet_reference,
            referrer='0241234567',
            webhook='https://shop.test/api-dj/hubnet/webhook',
        )
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.SUBMITTED)
        self.assertEqual(item.hubnet_transaction_id, 'TX-1')
        self.assertEqual(item.hubnet_payment_id, 'PAY-1')
        self.assertEqual(item.hubnet_attempts, 1)

    def test_recipient_phone_overrides_customer_phone(self):
        self._enqueued_item("MTN 1GB", 'mtn', recipient_phone='0551112222')
        self.dispatcher.tick()
        kwargs = self.hubnet.adapter.new_transaction.call_args.kwargs
        self.assertEqual(kwargs['phone'], '0551112222')

    def test_datahubnet_submission(self):
        item = self._enqueued_item("Telecel 5GB", 'telecel')
        self.assertEqual(self.dispatcher.tick(), STAGE_DATAHUBNET_DISPATCH)
        self.datahubnet.adapter.place_order.assert_called_once_with(
            'datahubnet-creds',
            phone='0241234567',
            network='telecel',
            capacity=5,
            reference=item.hubnet_reference,
            express=True,
        )
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.SUBMITTED)
        self.assertEqual(item.hubnet_transaction_id, 'DH-REMOTE-1')

    def test_two_provider_scenario(self):
        dh_item = make_item(self.order, make_product("Telecel 5GB", 'telecel'))
        hn_item = make_item(self.order, make_product("MTN 2GB", 'mtn'))
        queue_order_fulfillment(self.order.id)

        dh_item.refresh_from_db()
        hn_item.refresh_from_db()
        self.assertEqual(dh_item.hubnet_status, FulfillmentStatus.PENDING)
        self.assertEqual(hn_item.hubnet_status, FulfillmentStatus.PENDING)
        self.assertNotEqual(dh_item.hubnet_reference, hn_item.hubnet_reference)
        self.assertEqual((dh_item.fulfillment_provider, dh_item.hubnet_network, dh_item.hubnet_capacity), ('datahubnet', 'telecel', 5))
        self.assertEqual((hn_item.fulfillment_provider, hn_item.hubnet_network, hn_item.hubnet_volume_mb), ('hubnet', 'mtn', 2000))

        self.assertEqual(self.dispatcher.tick(), STAGE_DATAHUBNET_DISPATCH)
        # DataHubnet has nothing left to submit and its item is inside the poll backoff
        self.assertEqual(self.dispatcher.tick(), STAGE_HUBNET_DISPATCH)

        dh_item.refresh_from_db()
        hn_item.refresh_from_db()
        self.assertEqual(dh_item.hubnet_status, FulfillmentStatus.SUBMITTED)
        self.assertEqual(hn_item.hubnet_status, FulfillmentStatus.SUBMITTED)
        self.datahubnet.adapter.check_status.assert_not_called()

    def test_poll_runs_before_hubnet_dispatch(self):
        dh_item = self._enqueued_item("Telecel 5GB", 'telecel')
        self._enqueued_item("MTN 1GB", 'mtn')
        self.datahubnet.adapter.check_status.return_value = DatahubnetStatusResult('Processing', {})
        self.assertEqual(self.dispatcher.tick(), STAGE_DATAHUBNET_DISPATCH)
        age(dh_item)
        self.assertEqual(self.dispatcher.tick(), STAGE_DATAHUBNET_POLL)
        self.datahubnet.adapter.check_status.assert_called_once_with('datahubnet-creds', 'DH-REMOTE-1')
        self.hubnet.adapter.new_transaction.assert_not_called()

    def test_transient_failure_is_retried_after_backoff(self):
        item = self._enqueued_item("MTN 1GB", 'mtn')
        self.hubnet.adapter.new_transaction.side_effect = ProviderError('Gateway timeout')
        self.dispatcher.tick()
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_last_error, 'Gateway timeout')
        self.assertEqual(item.hubnet_attempts, 1)

        # inside the backoff window nothing happens
        self.assertIsNone(self.dispatcher.tick())

        age(item)
        self.hubnet.adapter.new_transaction.side_effect = None
        self.assertEqual(self.dispatcher.tick(), STAGE_HUBNET_DISPATCH)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.SUBMITTED)
        self.assertEqual(item.hubnet_attempts, 2)
        self.assertEqual(self.hubnet.adapter.new_transaction.call_count, 2)

    def test_permanent_failure_exhausts_attempts(self):
        item = self._enqueued_item("MTN 1GB", 'mtn')
        self.hubnet.adapter.new_transaction.side_effect = ProviderError(
            'This account is not eligible. Please contact the administrator'
        )
        self.dispatcher.tick()
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_attempts, MAX_FULFILLMENT_ATTEMPTS)

        age(item, seconds=86400)
        self.assertIsNone(self.dispatcher.tick())

    def test_missing_phone_fails_without_calling_provider(self):
        self.order.customer_phone = ''
        self.order.save(update_fields=['customer_phone'])
        item = self._enqueued_item("MTN 1GB", 'mtn')
        self.dispatcher.tick()
        self.hubnet.adapter.new_transaction.assert_not_called()
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_last_error, 'Missing recipient phone')
        self.assertEqual(item.hubnet_attempts, 1)

    def test_unqueued_item_without_network_fails(self):
        # never enqueued, so the dispatcher meets the unmapped category itself
        item = make_item(self.order, make_product("Glo 1GB", 'glo'))
        self.dispatcher.tick()
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_last_error, 'No Hubnet network mapping for category: glo')
        self.assertEqual(item.hubnet_attempts, 1)
        self.hubnet.adapter.new_transaction.assert_not_called()

    def test_datahubnet_provider_error(self):
        item = self._enqueued_item("Telecel 5GB", 'telecel')
        self.datahubnet.adapter.place_order.side_effect = ProviderError('Insufficient wallet balance')
        self.assertEqual(self.dispatcher.tick(), STAGE_DATAHUBNET_DISPATCH)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_last_error, 'Insufficient wallet balance')

    def test_unexpected_error_does_not_strand_item_in_sending(self):
        item = self._enqueued_item("MTN 1GB", 'mtn')
        self.hubnet.adapter.new_transaction.side_effect = DatabaseError('connection reset')
        self.assertEqual(self.dispatcher.tick(), STAGE_HUBNET_DISPATCH)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_last_error, 'connection reset')
        self.assertEqual(item.hubnet_attempts, 1)

        # still inside the retry budget, so a later tick picks it up again
        age(item)
        self.hubnet.adapter.new_transaction.side_effect = None
        self.assertEqual(self.dispatcher.tick(), STAGE_HUBNET_DISPATCH)
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.SUBMITTED)

    def test_store_error_before_submission_fails_item(self):
        item = self._enqueued_item("Telecel 5GB", 'telecel')
        with patch('apps.orders.dispatcher.state.record_context', side_effect=DatabaseError('')):
            self.assertEqual(self.dispatcher.tick(), STAGE_DATAHUBNET_DISPATCH)
        self.datahubnet.adapter.place_order.assert_not_called()
        item.refresh_from_db()
        self.assertEqual(item.hubnet_status, FulfillmentStatus.FAILED)
        self.assertEqual(item.hubnet_last_error, 'DataHubnet request failed')

    def test_overlapping_tick_is_skipped(self):
        self._enqueued_item("MTN 1GB", 'mtn')
        self.dispatcher._tick_lock.acquire()
        try:
            self.assertIsNone(self.dispatcher.tick())
        finally:
            self.dispatcher._tick_lock.release()
        self.hubnet.adapter.new_transaction.assert_not_called()
        self.assertEqual(self.dispatcher.tick(), STAGE_HUBNET_DISPATCH)


class TestDispatcherLifecycle(TestCase):

    def test_does_not_start_without_providers(self):
        conf = FulfillmentSettings(hubnet=HubnetSettings(), datahubnet=DatahubnetSettings())
        dispatcher = FulfillmentDispatcher(conf, hubnet=_binding('hubnet'), datahubnet=_binding('datahubnet'))
        self.assertFalse(dispatcher.start())
        self.assertFalse(dispatcher.running)

    def test_start_and_stop(self):
        dispatcher = FulfillmentDispatcher(hubnet=_binding('hubnet'), datahubnet=_binding('datahubnet'))
        self.assertTrue(dispatcher.start())
        try:
            self.assertTrue(dispatcher.running)
            self.assertFalse(dispatcher.start())
        finally:
            dispatcher.stop(timeout=5)
        self.assertFalse(dispatcher.running)


class TestTickTask(TestCase):

    def tearDown(self):
        cache.delete(TICK_LOCK_KEY)

    @patch('apps.orders.tasks.FulfillmentDispatcher')
    def test_runs_one_tick_and_releases_lock(self, dispatcher_cls):
        dispatcher_cls.return_value.tick.return_value = STAGE_HUBNET_DISPATCH
        self.assertEqual(run_fulfillment_tick(), STAGE_HUBNET_DISPATCH)
        self.assertIsNone(cache.get(TICK_LOCK_KEY))

    @patch('apps.orders.tasks.FulfillmentDispatcher')
    def test_does_not_release_a_lock_taken_over_by_another_worker(self, dispatcher_cls):
        def slow_tick():
            # our lock expired mid-tick and another worker took it
            cache.set(TICK_LOCK_KEY, 'other-worker', 60)
            return None

        dispatcher_cls.return_value.tick.side_effect = slow_tick
        run_fulfillment_tick()
        self.assertEqual(cache.get(TICK_LOCK_KEY), 'other-worker')

    @patch('apps.orders.tasks.FulfillmentDispatcher')
    def test_skips_while_another_tick_holds_the_lock(self, dispatcher_cls):
        cache.add(TICK_LOCK_KEY, '1', 60)
        self.assertIsNone(run_fulfillment_tick())
        dispatcher_cls.assert_not_called()


class TestFulfillmentPhase(TestCase):

    def setUp(self):
        self.order = make_order()
        self.product = make_product("MTN 1GB", 'mtn')

    def test_failed_splits_on_attempt_cap(self):
        retryable = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.FAILED, hubnet_attempts=2)
        exhausted = make_item(
            self.order, self.product,
            hubnet_status=FulfillmentStatus.FAILED,
            hubnet_attempts=MAX_FULFILLMENT_ATTEMPTS,
        )
        self.assertEqual(phase_of(retryable), FulfillmentPhase.RETRYABLE_FAILURE)
        self.assertEqual(phase_of(exhausted), FulfillmentPhase.EXHAUSTED)

    def test_other_phases(self):
        self.assertEqual(phase_of(make_item(self.order, self.product)), FulfillmentPhase.UNQUEUED)
        self.assertEqual(phase_of(make_item(self.order, self.product, hubnet_skip=True)), FulfillmentPhase.SKIPPED)
        submitted = make_item(self.order, self.product, hubnet_status=FulfillmentStatus.SUBMITTED)
        self.assertEqual(phase_of(submitted), FulfillmentPhase.SUBMITTED)
