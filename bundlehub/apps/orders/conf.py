"""
Typed fulfillment configuration.

``config.settings`` only carries the raw environment strings. This module turns
them into frozen dataclasses once, validating the JSON mapping blobs so that a
malformed map stops the process at startup (``OrdersConfig.ready``) instead of
failing every dispatcher tick. Missing API keys are *not* a startup
error: the adapters raise ``ProviderConfigError`` when a call is attempted.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver

HUBNET_DEFAULT_BASE_URL = 'https://console.hubnet.app/live/api/context/business/transaction'
DATAHUBNET_DEFAULT_BASE_URL = 'https://www.datahubnet.online/api'

DEFAULT_DISPATCH_INTERVAL_MS = 13000
MIN_DISPATCH_INTERVAL_MS = 5000
DEFAULT_HTTP_TIMEOUT = (5.0, 20.0)

KNOWN_PROVIDERS = ('hubnet', 'datahubnet')


@dataclass(frozen=True)
class HubnetSettings:
    enabled: bool = True
    api_key: str = ''
    base_url: str = HUBNET_DEFAULT_BASE_URL
    webhook_url: str = ''
    webhook_secret: str = ''
    network_map: Mapping[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.api_key)


@dataclass(frozen=True)
class DatahubnetSettings:
    enabled: bool = True
    api_key: str = ''
    base_url: str = DATAHUBNET_DEFAULT_BASE_URL
    auth_scheme: str = 'Api-Key'
    auth_scheme_status: Optional[str] = None
    capacity_map: Mapping[str, int] = field(default_factory=dict)
    telecel_network: str = 'telecel'

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.api_key)


@dataclass(frozen=True)
class FulfillmentSettings:
    hubnet: HubnetSettings
    datahubnet: DatahubnetSettings
    provider_map: Mapping[str, str] = field(default_factory=dict)
    dispatch_interval_ms: int = DEFAULT_DISPATCH_INTERVAL_MS
    http_timeout: Tuple[float, float] = DEFAULT_HTTP_TIMEOUT

    @property
    def dispatch_interval(self) -> timedelta:
        return timedelta(milliseconds=self.dispatch_interval_ms)

    @property
    def any_provider_configured(self) -> bool:
        return self.hubnet.configured or self.datahubnet.configured


def _raw(name: str, default: Any = '') -> Any:
    value = getattr(settings, name, default)
    return default if value is None else value


def _parse_json_object(name: str, raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return dict(raw)
    text = str(raw or '').strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise ImproperlyConfigured(f'Invalid {name} JSON') from exc
    if not isinstance(parsed, dict):
        raise ImproperlyConfigured(f'{name} must be a JSON object')
    return parsed


def _parse_network_map(raw: Any) -> Dict[str, str]:
    parsed = _parse_json_object('HUBNET_NETWORK_MAP', raw)
    out: Dict[str, str] = {}
    for slug, network in parsed.items():
        value = str(network or '').strip()
        if not value:
            raise ImproperlyConfigured(f'HUBNET_NETWORK_MAP: empty network for category {slug!r}')
        out[str(slug).strip().lower()] = value
    return out


def _parse_provider_map(raw: Any) -> Dict[str, str]:
    parsed = _parse_json_object('FULFILLMENT_PROVIDER_MAP', raw)
    out: Dict[str, str] = {}
    for slug, provider in parsed.items():
        value = str(provider or '').strip().lower()
        if value not in KNOWN_PROVIDERS:
            raise ImproperlyConfigured(
                f'FULFILLMENT_PROVIDER_MAP: unknown provider {provider!r} for category {slug!r}'
            )
        out[str(slug).strip().lower()] = value
    return out


def _parse_capacity_map(raw: Any) -> Dict[str, int]:
    parsed = _parse_json_object('DATAHUBNET_CAPACITY_MAP', raw)
    out: Dict[str, int] = {}
    for key, value in parsed.items():
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ImproperlyConfigured(f'DATAHUBNET_CAPACITY_MAP: capacity for {key!r} is not a number')
        if not number > 0:
            raise ImproperlyConfigured(f'DATAHUBNET_CAPACITY_MAP: capacity for {key!r} must be positive')
        out[str(key).strip()] = int(number + 0.5)
    return out


def _parse_interval(raw: Any) -> int:
    try:
        value = int(float(str(raw).strip()))
    except (TypeError, ValueError):
        value = 0
    if value <= 0:
        value = DEFAULT_DISPATCH_INTERVAL_MS
    return max(MIN_DISPATCH_INTERVAL_MS, value)


def _parse_timeout(raw: Any) -> Tuple[float, float]:
    if isinstance(raw, (tuple, list)) and len(raw) == 2:
        parts = list(raw)
    else:
        text = str(raw or '').strip()
        if not text:
            return DEFAULT_HTTP_TIMEOUT
        parts = [p.strip() for p in text.split(',')]
        if len(parts) == 1:
            parts = parts * 2
    try:
        connect, read = (float(p) for p in parts)
    except (TypeError, ValueError):
        raise ImproperlyConfigured(f'Invalid PROVIDER_HTTP_TIMEOUT: {raw!r}')
    if connect <= 0 or read <= 0:
        raise ImproperlyConfigured('PROVIDER_HTTP_TIMEOUT values must be positive')
    return connect, read


def load_fulfillment_settings() -> FulfillmentSettings:
    hubnet = HubnetSettings(
        enabled=bool(_raw('HUBNET_ENABLED', True)),
        api_key=str(_raw('HUBNET_API_KEY')).strip(),
        base_url=(str(_raw('HUBNET_BASE_URL')).strip() or HUBNET_DEFAULT_BASE_URL).rstrip('/'),
        webhook_url=str(_raw('HUBNET_WEBHOOK_URL')).strip(),
        webhook_secret=str(_raw('HUBNET_WEBHOOK_SECRET')).strip(),
        network_map=_parse_network_map(_raw('HUBNET_NETWORK_MAP')),
    )
    datahubnet = DatahubnetSettings(
        enabled=bool(_raw('DATAHUBNET_ENABLED', True)),
        api_key=str(_raw('DATAHUBNET_API_KEY')).strip(),
        base_url=(str(_raw('DATAHUBNET_BASE_URL')).strip() or DATAHUBNET_DEFAULT_BASE_URL).rstrip('/'),
        auth_scheme=str(_raw('DATAHUBNET_AUTH_SCHEME')).strip() or 'Api-Key',
        auth_scheme_status=str(_raw('DATAHUBNET_AUTH_SCHEME_STATUS')).strip() or None,
        capacity_map=_parse_capacity_map(_raw('DATAHUBNET_CAPACITY_MAP')),
        telecel_network=str(_raw('DATAHUBNET_TELECEL_NETWORK')).strip() or 'telecel',
    )
    return FulfillmentSettings(
        hubnet=hubnet,
        datahubnet=datahubnet,
        provider_map=_parse_provider_map(_raw('FULFILLMENT_PROVIDER_MAP')),
        dispatch_interval_ms=_parse_interval(_raw('HUBNET_DISPATCH_INTERVAL_MS', DEFAULT_DISPATCH_INTERVAL_MS)),
        http_timeout=_parse_timeout(_raw('PROVIDER_HTTP_TIMEOUT')),
    )


@lru_cache(maxsize=1)
def get_fulfillment_settings() -> FulfillmentSettings:
    return load_fulfillment_settings()


@receiver(setting_changed)
def _reset_fulfillment_settings(**kwargs):
    get_fulfillment_settings.cache_clear()
