from datetime import timedelta

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from apps.orders.conf import (
    DEFAULT_DISPATCH_INTERVAL_MS,
    DEFAULT_HTTP_TIMEOUT,
    HUBNET_DEFAULT_BASE_URL,
    MIN_DISPATCH_INTERVAL_MS,
    get_fulfillment_settings,
    load_fulfillment_settings,
)


class TestFulfillmentSettings(SimpleTestCase):

    def test_test_environment_values(self):
        conf = get_fulfillment_settings()
        self.assertTrue(conf.hubnet.configured)
        self.assertTrue(conf.datahubnet.configured)
        self.assertEqual(conf.provider_map, {'telecel': 'datahubnet'})
        self.assertEqual(conf.dispatch_interval, timedelta(seconds=13))

    def test_cached_until_settings_change(self):
        first = get_fulfillment_settings()
        self.assertIs(get_fulfillment_settings(), first)
        with override_settings(HUBNET_API_KEY=''):
            conf = get_fulfillment_settings()
            self.assertIsNot(conf, first)
            self.assertFalse(conf.hubnet.configured)
            self.assertTrue(conf.any_provider_configured)

    @override_settings(HUBNET_ENABLED=False)
    def test_disabled_provider_is_not_configured(self):
        self.assertFalse(get_fulfillment_settings().hubnet.configured)

    @override_settings(HUBNET_BASE_URL='')
    def test_default_base_url(self):
        self.assertEqual(get_fulfillment_settings().hubnet.base_url, HUBNET_DEFAULT_BASE_URL)

    @override_settings(DATAHUBNET_BASE_URL='https://datahubnet.test/api/')
    def test_trailing_slash_stripped(self):
        self.assertEqual(get_fulfillment_settings().datahubnet.base_url, 'https://datahubnet.test/api')

    @override_settings(HUBNET_NETWORK_MAP='{"Glo": "glo"}')
    def test_network_map_keys_lowercased(self):
        self.assertEqual(get_fulfillment_settings().hubnet.network_map, {'glo': 'glo'})

    def test_invalid_json_rejected(self):
        for name in ('HUBNET_NETWORK_MAP', 'FULFILLMENT_PROVIDER_MAP', 'DATAHUBNET_CAPACITY_MAP'):
            with override_settings(**{name: '{not json'}):
                with self.assertRaisesMessage(ImproperlyConfigured, f'Invalid {name} JSON'):
                    load_fulfillment_settings()

    @override_settings(FULFILLMENT_PROVIDER_MAP='["telecel"]')
    def test_map_must_be_object(self):
        with self.assertRaises(ImproperlyConfigured):
            load_fulfillment_settings()

    @override_settings(FULFILLMENT_PROVIDER_MAP='{"telecel": "mpesa"}')
    def test_unknown_provider_rejected(self):
        with self.assertRaisesMessage(ImproperlyConfigured, "unknown provider 'mpesa'"):
            load_fulfillment_settings()

    @override_settings(DATAHUBNET_CAPACITY_MAP='{"telecel-5gb": 5, "2500": 2.5}')
    def test_capacity_map_rounds_half_up(self):
        self.assertEqual(
            get_fulfillment_settings().datahubnet.capacity_map,
            {'telecel-5gb': 5, '2500': 3},
        )

    def test_capacity_map_rejects_bad_values(self):
        for raw in ('{"x": "lots"}', '{"x": 0}', '{"x": -1}'):
            with override_settings(DATAHUBNET_CAPACITY_MAP=raw):
                with self.assertRaises(ImproperlyConfigured):
                    load_fulfillment_settings()

    def test_dispatch_interval(self):
        cases = [
            ('20000', 20000),
            ('1000', MIN_DISPATCH_INTERVAL_MS),
            ('', DEFAULT_DISPATCH_INTERVAL_MS),
            ('soon', DEFAULT_DISPATCH_INTERVAL_MS),
            ('0', DEFAULT_DISPATCH_INTERVAL_MS),
        ]
        for raw, expected in cases:
            with override_settings(HUBNET_DISPATCH_INTERVAL_MS=raw):
                self.assertEqual(load_fulfillment_settings().dispatch_interval_ms, expected, raw)

    def test_http_timeout(self):
        cases = [
            ('', DEFAULT_HTTP_TIMEOUT),
            ('3', (3.0, 3.0)),
            ('2, 30', (2.0, 30.0)),
            ((4, 40), (4.0, 40.0)),
        ]
        for raw, expected in cases:
            with override_settings(PROVIDER_HTTP_TIMEOUT=raw):
                self.assertEqual(load_fulfillment_settings().http_timeout, expected, raw)

    def test_http_timeout_rejects_garbage(self):
        for raw in ('fast', '0', '1,2,3'):
            with override_settings(PROVIDER_HTTP_TIMEOUT=raw):
                with self.assertRaises(ImproperlyConfigured):
                    load_fulfillment_settings()
