"""Bundle size resolution from product names, slugs and configured overrides."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

_GB_RE = re.compile(r'(\d+(?:\.\d+)?)\s*gb', re.IGNORECASE)
_MB_RE = re.compile(r'(\d+)\s*mb', re.IGNORECASE)


@dataclass(frozen=True)
class BundleSize:
    volume_mb: Optional[int]
    capacity: Optional[int]

    @property
    def resolved(self) -> bool:
        return self.volume_mb is not None or self.capacity is not None


def half_up(value: float) -> int:
    """Round halves up (``2.5 -> 3``), unlike Python's banker's ``round``."""
    return int(math.floor(value + 0.5))


def _haystack(name: Any, slug: Any) -> str:
    return f"{name or ''} {slug or ''}"


def _positive(value: Optional[int]) -> Optional[int]:
    return value if value is not None and value > 0 else None


def parse_bundle_size(name: Any, slug: Any = None) -> BundleSize:
    """
    Infer the bundle size from free text such as ``"MTN 5GB Data Bundle"``.

    A GB quantity wins over an MB one. GB gives ``volume_mb = round(gb * 1000)``
    and ``capacity = round(gb)``; MB gives ``volume_mb`` as written and a
    capacity only when it is a whole number of gigabytes.
    """
    hay = _haystack(name, slug)

    gb = _GB_RE.search(hay)
    if gb:
        value = float(gb.group(1))
        if value > 0:
            return BundleSize(
                volume_mb=_positive(half_up(value * 1000)),
                capacity=_positive(half_up(value)),
            )

    mb = _MB_RE.search(hay)
    if mb:
        value = int(mb.group(1))
        if value > 0:
            capacity = value // 1000 if value % 1000 == 0 else None
            return BundleSize(volume_mb=value, capacity=capacity)

    return BundleSize(volume_mb=None, capacity=None)


def parse_volume_mb(product) -> Optional[int]:
    return parse_bundle_size(product.name, product.slug).volume_mb


def resolve_capacity(product, volume_mb: Optional[int], capacity_map: Mapping[str, int]) -> Optional[int]:
    """
    Capacity (whole GB) for a DataHubnet order.

    Lookup order: override by product slug, then by product id, then by the
    resolved volume in MB, then whatever the product name/slug parse gives.
    """
    for key in (product.slug, str(product.id)):
        if key and key in capacity_map:
            return capacity_map[key]
    if volume_mb is not None and str(volume_mb) in capacity_map:
        return capacity_map[str(volume_mb)]
    return parse_bundle_size(product.name, product.slug).capacity
