from __future__ import annotations

from rest_framework import serializers

from .fulfillment_state import phase_of
from .models import OrderItem


class FulfillmentItemSerializer(serializers.ModelSerializer):
    orderId = serializers.UUIDField(source='order_id', read_only=True)
    orderCode = serializers.CharField(source='order.order_code', read_only=True)
    orderStatus = serializers.CharField(source='order.status', read_only=True)
    paymentStatus = serializers.CharField(source='order.payment_status', read_only=True)
    productName = serializers.CharField(source='product.name', read_only=True)
    categorySlug = serializers.CharField(source='product.category_slug', read_only=True, allow_null=True)
    recipientPhone = serializers.CharField(source='recipient_phone', read_only=True, allow_null=True)
    fulfillmentProvider = serializers.CharField(source='fulfillment_provider', read_only=True, allow_null=True)
    hubnetSkip = serializers.BooleanField(source='hubnet_skip', read_only=True)
    hubnetStatus = serializers.CharField(source='hubnet_status', read_only=True, allow_null=True)
    hubnetNetwork = serializers.CharField(source='hubnet_network', read_only=True, allow_null=True)
    hubnetVolumeMb = serializers.IntegerField(source='hubnet_volume_mb', read_only=True, allow_null=True)
    hubnetCapacity = serializers.IntegerField(source='hubnet_capacity', read_only=True, allow_null=True)
    hubnetReference = serializers.CharField(source='hubnet_reference', read_only=True, allow_null=True)
    hubnetTransactionId = serializers.CharField(source='hubnet_transaction_id', read_only=True, allow_null=True)
    hubnetPaymentId = serializers.CharField(source='hubnet_payment_id', read_only=True, allow_null=True)
    hubnetAttempts = serializers.IntegerField(source='hubnet_attempts', read_only=True)
    hubnetLastAttemptAt = serializers.DateTimeField(source='hubnet_last_attempt_at', read_only=True, allow_null=True)
    hubnetLastError = serializers.CharField(source='hubnet_last_error', read_only=True, allow_null=True)
    hubnetDeliveredAt = serializers.DateTimeField(source='hubnet_delivered_at', read_only=True, allow_null=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)
    fulfillmentPhase = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = [
            'id', 'orderId', 'orderCode', 'orderStatus', 'paymentStatus',
            'productName', 'categorySlug', 'quantity', 'recipientPhone',
            'fulfillmentProvider', 'hubnetSkip', 'hubnetStatus', 'hubnetNetwork',
            'hubnetVolumeMb', 'hubnetCapacity', 'hubnetReference',
            'hubnetTransactionId', 'hubnetPaymentId', 'hubnetAttempts',
            'hubnetLastAttemptAt', 'hubnetLastError', 'hubnetDeliveredAt', 'updatedAt',
            'fulfillmentPhase',
        ]

    def get_fulfillmentPhase(self, obj) -> str:
        # FAILED alone does not say whether the dispatcher will retry it
        return phase_of(obj).value


class FulfillmentItemsResponseSerializer(serializers.Serializer):
    items = FulfillmentItemSerializer(many=True)


class EnqueueResponseSerializer(serializers.Serializer):
    queued = serializers.BooleanField()
    pending = serializers.IntegerField()
    failed = serializers.IntegerField()
    skipped = serializers.IntegerField()
    untouched = serializers.IntegerField()


class WebhookAckSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    ignored = serializers.BooleanField(required=False)
    itemId = serializers.UUIDField(required=False)
