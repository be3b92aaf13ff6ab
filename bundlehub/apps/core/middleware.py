from __future__ import annotations

import time
import logging

logger = logging.getLogger("request")

# Webhook and health calls arrive every few seconds; keep them out of INFO.
_QUIET_SUFFIXES = ("/health", "/hubnet/webhook")


class RequestLogMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        start = time.monotonic()
        path = request.path
        method = request.method
        status_code = None
        try:
            response = self.get_response(request)
            status_code = response.status_code
            return response
        finally:
            duration = int((time.monotonic() - start) * 1000)
            user = getattr(request, 'user', None)
            user_id = getattr(user, 'pk', None) if getattr(user, 'is_authenticated', False) else None
            level = logging.DEBUG if path.rstrip('/').endswith(_QUIET_SUFFIXES) else logging.INFO
            if status_code is None or status_code >= 500:
                level = logging.WARNING
            logger.log(
                level,
                "req", extra={
                    "method": method,
                    "path": path,
                    "userId": str(user_id) if user_id else None,
                    "status": status_code,
                    "durationMs": duration,
                }
            )
