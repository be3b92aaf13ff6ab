from __future__ import annotations

from typing import Any, Optional


class ProviderError(Exception):
    """Raised when a reseller API rejects a call or answers with something unusable."""

    status_code = 502

    def __init__(self, message: str, *, status_code: Optional[int] = None, response: Any = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        self.response = response


class ProviderConfigError(ProviderError):
    status_code = 500


class ProviderDisabledError(ProviderError):
    status_code = 400


class InvalidPhoneError(ProviderError):
    status_code = 400
