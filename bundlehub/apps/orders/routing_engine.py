"""
Provider and network selection for order items.

A product's category slug decides which reseller fulfils it and which network
code that reseller expects. Hubnet is the default provider; categories it has no
network code for are left alone (``hubnet_skip``) rather than failed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .conf import FulfillmentSettings
from .models import FulfillmentProvider

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = FulfillmentProvider.HUBNET.value

BUILTIN_HUBNET_NETWORKS = {
    'mtn': 'mtn',
    'airteltigo': 'at',
    'big-time': 'big-time',
    'at-bigtime': 'big-time',
}


@dataclass(frozen=True)
class RoutingDecision:
    provider: str
    network: Optional[str]

    @property
    def skip(self) -> bool:
        """No network code: the item is not ours to deliver."""
        return self.network is None


def _norm(slug: Optional[str]) -> str:
    return str(slug or '').strip().lower()


def provider_for_category(category_slug: Optional[str], provider_map: Mapping[str, str]) -> str:
    return provider_map.get(_norm(category_slug)) or DEFAULT_PROVIDER


def hubnet_network_for_category(category_slug: Optional[str], network_map: Mapping[str, str]) -> Optional[str]:
    slug = _norm(category_slug)
    if slug in BUILTIN_HUBNET_NETWORKS:
        return BUILTIN_HUBNET_NETWORKS[slug]
    return network_map.get(slug)


def route_category(category_slug: Optional[str], conf: FulfillmentSettings) -> RoutingDecision:
    provider = provider_for_category(category_slug, conf.provider_map)
    if provider == FulfillmentProvider.DATAHUBNET:
        # single-carrier reseller: one network code for everything routed to it
        return RoutingDecision(provider=provider, network=conf.datahubnet.telecel_network)
    network = hubnet_network_for_category(category_slug, conf.hubnet.network_map)
    if network is None:
        logger.debug('No Hubnet network mapping for category %r', category_slug)
    return RoutingDecision(provider=provider, network=network)


def route_product(product, conf: FulfillmentSettings) -> RoutingDecision:
    return route_category(product.category_slug, conf)
