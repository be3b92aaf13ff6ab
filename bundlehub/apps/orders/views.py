from __future__ import annotations

import hmac
import logging
import uuid

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.providers.permissions import RequireAdminRole

from .conf import get_fulfillment_settings
from .models import OrderItem
from .reconciler import WebhookPayloadError, apply_webhook_update
from .serializers import (
    EnqueueResponseSerializer,
    FulfillmentItemSerializer,
    FulfillmentItemsResponseSerializer,
    WebhookAckSerializer,
)
from .services import OrderNotFoundError, queue_order_fulfillment

logger = logging.getLogger(__name__)

ADMIN_ITEMS_LIMIT = 200


class AdminQueueOrderFulfillmentView(APIView):
    permission_classes = [IsAuthenticated, RequireAdminRole]

    @extend_schema(tags=["Admin Fulfillment"], responses={200: EnqueueResponseSerializer})
    def post(self, request, order_id):
        try:
            result = queue_order_fulfillment(order_id)
        except OrderNotFoundError as exc:
            return Response({'error': str(exc)}, status=exc.status_code)
        return Response(result.as_dict())


class AdminFulfillmentItemsView(APIView):
    permission_classes = [IsAuthenticated, RequireAdminRole]

    @extend_schema(
        tags=["Admin Fulfillment"],
        parameters=[OpenApiParameter(name='orderId', required=False, type=str)],
        responses={200: FulfillmentItemsResponseSerializer},
    )
    def get(self, request):
        order_id = (request.query_params.get('orderId') or '').strip()
        qs = OrderItem.objects.select_related('order', 'product__category').order_by('-updated_at')
        if order_id:
            try:
                uuid.UUID(order_id)
            except ValueError:
                raise ValidationError({'orderId': 'Must be a UUID'})
            qs = qs.filter(order_id=order_id)
        items = FulfillmentItemSerializer(qs[:ADMIN_ITEMS_LIMIT], many=True).data
        return Response({'items': items})


def _secret_matches(supplied: str, secret: str) -> bool:
    return bool(supplied) and hmac.compare_digest(supplied.encode(), secret.encode())


class HubnetWebhookView(APIView):
    # Hubnet calls this without credentials; the optional shared secret is the gate.
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(tags=["Webhooks"], request=dict, responses={200: WebhookAckSerializer})
    def post(self, request):
        secret = get_fulfillment_settings().hubnet.webhook_secret
        if secret:
            header_secret = request.headers.get('X-Hubnet-Secret') or ''
            query_secret = request.query_params.get('secret') or ''
            if not (_secret_matches(header_secret, secret) or _secret_matches(query_secret, secret)):
                logger.warning('Hubnet webhook rejected: bad secret')
                return Response({'error': 'Unauthorized'}, status=401)

        try:
            outcome = apply_webhook_update(request.data)
        except WebhookPayloadError as exc:
            return Response({'error': str(exc)}, status=exc.status_code)
        if outcome is None:
            return Response({'ok': True, 'ignored': True})
        return Response({'ok': True, 'itemId': outcome.item_id})
