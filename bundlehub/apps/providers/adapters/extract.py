"""
Provider-response tolerance.

Both resellers have shipped several response shapes for the same field over time
(``data.order.status`` vs ``data.status`` vs ``status``). Rather than chaining
``.get()`` calls at every call site, each field is described as an ordered tuple
of extraction strategies; the first strategy yielding a non-empty value wins.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

Strategy = Callable[[Any], Optional[Any]]


def path(*keys: str) -> Strategy:
    """Strategy that walks nested dicts along ``keys``."""

    def _extract(payload: Any) -> Optional[Any]:
        node = payload
        for key in keys:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node

    _extract.__name__ = 'path_' + '_'.join(keys)
    return _extract


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    # False and 0 are real answers for status flags
    return True


def first_present(payload: Any, strategies: Iterable[Strategy]) -> Optional[Any]:
    for strategy in strategies:
        value = strategy(payload)
        if _present(value):
            return value
    return None


def first_text(payload: Any, strategies: Iterable[Strategy]) -> Optional[str]:
    """Like ``first_present`` but only string values count."""
    for strategy in strategies:
        value = strategy(payload)
        if isinstance(value, str) and value.strip():
            return value
    return None


def first_truthy(payload: Any, strategies: Iterable[Strategy]) -> Optional[Any]:
    """First value that is truthy. Used for identifiers where ``0`` or ``''`` mean absent."""
    for strategy in strategies:
        value = strategy(payload)
        if value:
            return value
    return None
