"""
Bundle size parsing, reference generation and provider/network routing.
"""
import re
import uuid

from django.test import SimpleTestCase, TestCase

from apps.orders.bundles import half_up, parse_bundle_size, resolve_capacity
from apps.orders.conf import DatahubnetSettings, FulfillmentSettings, HubnetSettings
from apps.orders.references import build_reference
from apps.orders.routing_engine import (
    hubnet_network_for_category,
    provider_for_category,
    route_category,
)

from .factories import make_product


class TestBundleSizeParsing(SimpleTestCase):

    def test_gigabytes(self):
        size = parse_bundle_size("MTN 1GB Data Bundle")
        self.assertEqual(size.volume_mb, 1000)
        self.assertEqual(size.capacity, 1)

    def test_fractional_gigabytes_round_half_up(self):
        size = parse_bundle_size("Bundle 2.5 GB")
        self.assertEqual(size.volume_mb, 2500)
        self.assertEqual(size.capacity, 3)

    def test_megabytes_not_whole_gigabytes(self):
        size = parse_bundle_size("Foo 1500MB Bundle")
        self.assertEqual(size.volume_mb, 1500)
        self.assertIsNone(size.capacity)

    def test_megabytes_whole_gigabytes(self):
        size = parse_bundle_size("Foo 1000MB Bundle")
        self.assertEqual(size.volume_mb, 1000)
        self.assertEqual(size.capacity, 1)

    def test_no_size(self):
        size = parse_bundle_size("No size here")
        self.assertIsNone(size.volume_mb)
        self.assertIsNone(size.capacity)
        self.assertFalse(size.resolved)

    def test_slug_is_searched_too(self):
        size = parse_bundle_size("Telecel Bundle", "telecel-10gb")
        self.assertEqual(size.volume_mb, 10000)
        self.assertEqual(size.capacity, 10)

    def test_gb_wins_over_mb(self):
        size = parse_bundle_size("500MB + 2GB combo")
        self.assertEqual(size.volume_mb, 2000)

    def test_half_up(self):
        self.assertEqual(half_up(0.5), 1)
        self.assertEqual(half_up(2.5), 3)
        self.assertEqual(half_up(2.4), 2)


class TestCapacityOverrides(TestCase):

    def setUp(self):
        self.product = make_product("Telecel 1500MB", category_slug='telecel')

    def test_parse_when_no_override(self):
        self.assertIsNone(resolve_capacity(self.product, 1500, {}))

    def test_override_by_volume(self):
        self.assertEqual(resolve_capacity(self.product, 1500, {'1500': 2}), 2)

    def test_override_by_product_slug_wins(self):
        overrides = {self.product.slug: 7, '1500': 2}
        self.assertEqual(resolve_capacity(self.product, 1500, overrides), 7)

    def test_override_by_product_id(self):
        self.assertEqual(resolve_capacity(self.product, 1500, {str(self.product.id): 4}), 4)


class TestReferences(SimpleTestCase):

    def test_format(self):
        order_id = uuid.UUID('12345678-1234-1234-1234-1234567890ab')
        item_id = uuid.UUID('abcdefab-cdef-abcd-efab-cdefabc0ffee')
        self.assertEqual(build_reference('hubnet', order_id, item_id), 'HN-567890AB-C0FFEE')
        self.assertEqual(build_reference('datahubnet', order_id, item_id), 'DH-567890AB-C0FFEE')

    def test_shape_for_random_ids(self):
        for _ in range(20):
            ref = build_reference('hubnet', uuid.uuid4(), uuid.uuid4())
            self.assertLessEqual(len(ref), 25)
            self.assertTrue(re.fullmatch(r'[A-Z0-9-]+', ref))
            self.assertTrue(ref.startswith('HN-'))

    def test_non_alphanumerics_stripped(self):
        ref = build_reference('datahubnet', 'ord_er-00000001', 'it.em#99')
        self.assertEqual(ref, 'DH-00000001-ITEM99')

    def test_stable(self):
        order_id, item_id = uuid.uuid4(), uuid.uuid4()
        self.assertEqual(
            build_reference('hubnet', order_id, item_id),
            build_reference('hubnet', order_id, item_id),
        )


class TestRouting(SimpleTestCase):

    def setUp(self):
        self.conf = FulfillmentSettings(
            hubnet=HubnetSettings(api_key='k', network_map={'glo': 'glo-net'}),
            datahubnet=DatahubnetSettings(api_key='k', telecel_network='telecel'),
            provider_map={'telecel': 'datahubnet'},
        )

    def test_default_provider_is_hubnet(self):
        self.assertEqual(provider_for_category('mtn', {}), 'hubnet')
        self.assertEqual(provider_for_category(None, {}), 'hubnet')

    def test_builtin_networks(self):
        self.assertEqual(hubnet_network_for_category('MTN', {}), 'mtn')
        self.assertEqual(hubnet_network_for_category('airteltigo', {}), 'at')
        self.assertEqual(hubnet_network_for_category('big-time', {}), 'big-time')
        self.assertEqual(hubnet_network_for_category('at-bigtime', {}), 'big-time')

    def test_builtin_wins_over_map(self):
        self.assertEqual(hubnet_network_for_category('mtn', {'mtn': 'other'}), 'mtn')

    def test_configured_network(self):
        decision = route_category('glo', self.conf)
        self.assertEqual(decision.provider, 'hubnet')
        self.assertEqual(decision.network, 'glo-net')
        self.assertFalse(decision.skip)

    def test_unmapped_category_is_skipped(self):
        decision = route_category('vodafone-cash', self.conf)
        self.assertEqual(decision.provider, 'hubnet')
        self.assertTrue(decision.skip)

    def test_datahubnet_uses_single_network(self):
        decision = route_category('telecel', self.conf)
        self.assertEqual(decision.provider, 'datahubnet')
        self.assertEqual(decision.network, 'telecel')
        self.assertFalse(decision.skip)
