from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from apps.orders.conf import FulfillmentSettings, get_fulfillment_settings

from .datahubnet import DatahubnetAdapter, DatahubnetCredentials
from .errors import (
    InvalidPhoneError,
    ProviderConfigError,
    ProviderDisabledError,
    ProviderError,
)
from .hubnet import HubnetAdapter, HubnetCredentials

__all__ = [
    'AdapterBinding',
    'get_adapter',
    'DatahubnetAdapter',
    'DatahubnetCredentials',
    'HubnetAdapter',
    'HubnetCredentials',
    'ProviderError',
    'ProviderConfigError',
    'ProviderDisabledError',
    'InvalidPhoneError',
]


@dataclass(frozen=True)
class AdapterBinding:
    provider: str
    adapter: Any
    _builder: Callable[[FulfillmentSettings], Any]

    def credentials(self, conf: Optional[FulfillmentSettings] = None):
        return self._builder(conf or get_fulfillment_settings())


def _hubnet_builder(conf: FulfillmentSettings) -> HubnetCredentials:
    return HubnetCredentials(
        base_url=conf.hubnet.base_url,
        api_key=conf.hubnet.api_key,
        enabled=conf.hubnet.enabled,
        timeout=conf.http_timeout,
    )


def _datahubnet_builder(conf: FulfillmentSettings) -> DatahubnetCredentials:
    return DatahubnetCredentials(
        base_url=conf.datahubnet.base_url,
        api_key=conf.datahubnet.api_key,
        auth_scheme=conf.datahubnet.auth_scheme,
        auth_scheme_status=conf.datahubnet.auth_scheme_status,
        enabled=conf.datahubnet.enabled,
        timeout=conf.http_timeout,
    )


def get_adapter(provider: str) -> Optional[AdapterBinding]:
    key = (provider or '').strip().lower()
    if key == 'hubnet':
        return AdapterBinding(provider='hubnet', adapter=HubnetAdapter(), _builder=_hubnet_builder)
    if key == 'datahubnet':
        return AdapterBinding(provider='datahubnet', adapter=DatahubnetAdapter(), _builder=_datahubnet_builder)
    return None
