from __future__ import annotations

import re
from typing import Any

from .models import FulfillmentProvider

REFERENCE_MAX_LENGTH = 25

REFERENCE_PREFIXES = {
    FulfillmentProvider.HUBNET.value: 'HN',
    FulfillmentProvider.DATAHUBNET.value: 'DH',
}

_NON_ALNUM = re.compile(r'[^A-Za-z0-9]+')


def build_reference(provider: str, order_id: Any, item_id: Any) -> str:
    """``<prefix>-<last 8 of order id>-<last 6 of item id>``, uppercase, at most 25 chars."""
    prefix = REFERENCE_PREFIXES[str(provider)]
    order_part = _NON_ALNUM.sub('', str(order_id or ''))[-8:]
    item_part = _NON_ALNUM.sub('', str(item_id or ''))[-6:]
    return f"{prefix}-{order_part}-{item_part}".upper()[:REFERENCE_MAX_LENGTH]
