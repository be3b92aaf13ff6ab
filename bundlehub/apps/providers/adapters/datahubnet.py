from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import requests

from .errors import ProviderConfigError, ProviderDisabledError, ProviderError
from .extract import first_present, first_text, first_truthy, path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (5, 20)  # (connect, read) seconds

# Where the remote order id lives in a placeOrder answer, newest shape first.
ORDER_ID_STRATEGIES = (
    path('data', 'order_id'),
    path('order_id'),
    path('id'),
)

# Where the free-text status lives in a check-status answer.
STATUS_TEXT_STRATEGIES = (
    path('data', 'order', 'status'),
    path('data', 'status'),
    path('status'),
)

ERROR_MESSAGE_STRATEGIES = (
    path('message'),
    path('error'),
)


@dataclass
class DatahubnetCredentials:
    base_url: Optional[str]
    api_key: Optional[str]
    auth_scheme: str = 'Api-Key'
    auth_scheme_status: Optional[str] = None
    enabled: bool = True
    timeout: Tuple[float, float] = DEFAULT_TIMEOUT


@dataclass
class DatahubnetOrderResult:
    remote_id: Optional[str]
    raw: Any


@dataclass
class DatahubnetStatusResult:
    status_text: str
    raw: Any


class DatahubnetAdapter:
    """Adapter for DataHubnet: capacity-based ordering, status is polled."""

    def _base(self, creds: DatahubnetCredentials) -> str:
        base = (creds.base_url or '').strip()
        if not base:
            raise ProviderConfigError('DataHubnet base URL is not configured')
        return base.rstrip('/')

    def _ensure_ready(self, creds: DatahubnetCredentials) -> None:
        if not creds.enabled:
            raise ProviderDisabledError('DataHubnet is disabled')
        if not (creds.api_key or '').strip():
            raise ProviderConfigError('DataHubnet API key is not configured')

    def _headers(self, creds: DatahubnetCredentials, scheme: Optional[str] = None) -> Dict[str, str]:
        return {
            'Authorization': f"{scheme or creds.auth_scheme} {creds.api_key}",
            'Content-Type': 'application/json',
        }

    def _json_or_none(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return None

    def _handle(self, resp: requests.Response, fallback_message: str) -> Any:
        data = self._json_or_none(resp)
        if not resp.ok:
            message = first_text(data, ERROR_MESSAGE_STRATEGIES) or fallback_message
            logger.warning('DataHubnet HTTP %s: %s', resp.status_code, message)
            raise ProviderError(message, response=data)
        return data

    def _get(self, creds: DatahubnetCredentials, url: str, *, scheme: Optional[str] = None) -> requests.Response:
        try:
            return requests.get(url, headers=self._headers(creds, scheme), timeout=creds.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f'DataHubnet request failed: {exc}') from exc

    def get_balance(self, creds: DatahubnetCredentials) -> Any:
        self._ensure_ready(creds)
        resp = self._get(creds, f"{self._base(creds)}/user/balance/")
        return self._handle(resp, 'Failed to fetch DataHubnet balance')

    def place_order(
        self,
        creds: DatahubnetCredentials,
        *,
        phone: str,
        network: str,
        capacity: int,
        reference: str,
        express: Optional[bool] = None,
    ) -> DatahubnetOrderResult:
        self._ensure_ready(creds)
        payload: Dict[str, Any] = {
            'phone': str(phone),
            'network': str(network),
            'capacity': int(capacity),
            'reference': str(reference),
        }
        if express is not None:
            payload['express'] = bool(express)

        url = f"{self._base(creds)}/v1/placeOrder/"
        logger.info('DataHubnet placeOrder ref=%s network=%s capacity=%s', reference, network, capacity)
        try:
            resp = requests.post(url, headers=self._headers(creds), json=payload, timeout=creds.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f'DataHubnet request failed: {exc}') from exc
        data = self._handle(resp, 'DataHubnet order failed')

        # A 2xx answer can still carry an application-level error; "error": false means none
        error = first_present(data, (path('error'),))
        if error not in (None, False) and str(error).strip():
            raise ProviderError(str(error), response=data)

        remote_id = first_truthy(data, ORDER_ID_STRATEGIES)
        return DatahubnetOrderResult(remote_id=str(remote_id) if remote_id else None, raw=data)

    def check_status(self, creds: DatahubnetCredentials, order_id_or_reference: str) -> DatahubnetStatusResult:
        self._ensure_ready(creds)
        ident = quote(str(order_id_or_reference), safe='')
        resp = self._get(creds, f"{self._base(creds)}/v1/check-status/{ident}", scheme=creds.auth_scheme_status)
        data = self._handle(resp, 'Failed to check DataHubnet status')
        text = first_present(data, STATUS_TEXT_STRATEGIES)
        return DatahubnetStatusResult(status_text='' if text is None else str(text), raw=data)
