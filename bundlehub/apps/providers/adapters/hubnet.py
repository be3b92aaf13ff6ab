from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import requests

from .errors import InvalidPhoneError, ProviderConfigError, ProviderDisabledError, ProviderError
from .extract import first_text, first_truthy, path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (5, 20)  # (connect, read) seconds

_NON_DIGITS = re.compile(r'\D+')

ERROR_MESSAGE_STRATEGIES = (
    path('reason'),
    path('message'),
)

TRANSACTION_ID_STRATEGIES = (
    path('transaction_id'),
    path('data', 'transaction_id'),
)

PAYMENT_ID_STRATEGIES = (
    path('payment_id'),
    path('data', 'payment_id'),
)


def normalize_phone(phone: Any) -> str:
    """Return the local 10-digit form of a Ghanaian number (``0XXXXXXXXX``)."""
    digits = _NON_DIGITS.sub('', str(phone or ''))
    if len(digits) == 10:
        return digits
    if len(digits) == 12 and digits.startswith('233'):
        return f"0{digits[3:]}"
    raise InvalidPhoneError('Invalid phone number')


def try_normalize_phone(phone: Any) -> Optional[str]:
    try:
        return normalize_phone(phone)
    except InvalidPhoneError:
        return None


@dataclass
class HubnetCredentials:
    base_url: Optional[str]
    api_key: Optional[str]
    enabled: bool = True
    timeout: Tuple[float, float] = DEFAULT_TIMEOUT


@dataclass
class HubnetTransactionResult:
    transaction_id: Optional[str]
    payment_id: Optional[str]
    raw: Any


class HubnetAdapter:
    """Adapter for Hubnet: volume-based ordering, delivery is pushed via webhook."""

    def _base(self, creds: HubnetCredentials) -> str:
        base = (creds.base_url or '').strip()
        if not base:
            raise ProviderConfigError('Hubnet base URL is not configured')
        return base.rstrip('/')

    def _ensure_ready(self, creds: HubnetCredentials) -> None:
        if not creds.enabled:
            raise ProviderDisabledError('Hubnet is disabled')
        if not (creds.api_key or '').strip():
            raise ProviderConfigError('Hubnet API key is not configured')

    def _headers(self, creds: HubnetCredentials) -> Dict[str, str]:
        return {
            'token': f"Bearer {creds.api_key}",
            'Content-Type': 'application/json',
        }

    def _handle(self, resp: requests.Response, fallback_message: str) -> Any:
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not resp.ok:
            message = first_text(data, ERROR_MESSAGE_STRATEGIES) or fallback_message
            logger.warning('Hubnet HTTP %s: %s', resp.status_code, message)
            raise ProviderError(message, response=data)
        return data

    def get_balance(self, creds: HubnetCredentials) -> Any:
        self._ensure_ready(creds)
        url = f"{self._base(creds)}/check_balance"
        try:
            resp = requests.get(url, headers=self._headers(creds), timeout=creds.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f'Hubnet request failed: {exc}') from exc
        return self._handle(resp, 'Failed to check Hubnet balance')

    def new_transaction(
        self,
        creds: HubnetCredentials,
        *,
        network: str,
        phone: str,
        volume_mb: int,
        reference: str,
        referrer: Optional[str] = None,
        webhook: Optional[str] = None,
    ) -> HubnetTransactionResult:
        self._ensure_ready(creds)
        payload: Dict[str, Any] = {
            'phone': normalize_phone(phone),
            'volume': str(volume_mb),
            'reference': str(reference),
        }
        # referrer is informational; a malformed one is dropped rather than failing the order
        normalized_referrer = try_normalize_phone(referrer) if referrer else None
        if normalized_referrer:
            payload['referrer'] = normalized_referrer
        if webhook:
            payload['webhook'] = str(webhook)

        url = f"{self._base(creds)}/{quote(str(network), safe='')}-new-transaction"
        logger.info('Hubnet new-transaction ref=%s network=%s volume=%s', reference, network, volume_mb)
        try:
            resp = requests.post(url, headers=self._headers(creds), json=payload, timeout=creds.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f'Hubnet request failed: {exc}') from exc
        data = self._handle(resp, 'Hubnet request failed')

        transaction_id = first_truthy(data, TRANSACTION_ID_STRATEGIES)
        payment_id = first_truthy(data, PAYMENT_ID_STRATEGIES)
        return HubnetTransactionResult(
            transaction_id=str(transaction_id) if transaction_id else None,
            payment_id=str(payment_id) if payment_id else None,
            raw=data,
        )
