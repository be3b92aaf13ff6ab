from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders.models import FulfillmentProvider

from .adapters import ProviderError, get_adapter
from .permissions import RequireAdminRole

logger = logging.getLogger(__name__)


def fetch_provider_balance(provider: str):
    """Raw balance payload from the provider. Raises ``ProviderError``."""
    binding = get_adapter(provider)
    if binding is None:
        raise ProviderError(f'Unknown provider: {provider}', status_code=400)
    return binding.adapter.get_balance(binding.credentials())


class _ProviderBalanceView(APIView):
    permission_classes = [IsAuthenticated, RequireAdminRole]
    provider: str = ''

    def get(self, request):
        try:
            data = fetch_provider_balance(self.provider)
        except ProviderError as exc:
            logger.warning('%s balance check failed: %s', self.provider, exc)
            return Response({'error': str(exc)}, status=exc.status_code)
        return Response(data)


@extend_schema(tags=["Admin Providers"])
class HubnetBalanceView(_ProviderBalanceView):
    provider = FulfillmentProvider.HUBNET.value


@extend_schema(tags=["Admin Providers"])
class DatahubnetBalanceView(_ProviderBalanceView):
    provider = FulfillmentProvider.DATAHUBNET.value
