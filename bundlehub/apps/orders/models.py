from __future__ import annotations

import uuid
from django.conf import settings
from django.db import models


# Hard ceiling on submission attempts per item. At the cap an item is never claimed again.
MAX_FULFILLMENT_ATTEMPTS = 6


class PaymentStatus(models.TextChoices):
    UNPAID = 'UNPAID', 'Unpaid'
    PAID = 'PAID', 'Paid'


class OrderStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    PROCESSING = 'PROCESSING', 'Processing'
    COMPLETED = 'COMPLETED', 'Completed'


class FulfillmentProvider(models.TextChoices):
    HUBNET = 'hubnet', 'Hubnet'
    DATAHUBNET = 'datahubnet', 'DataHubnet'


class FulfillmentStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    SENDING = 'SENDING', 'Sending'
    SUBMITTED = 'SUBMITTED', 'Submitted'
    DELIVERED = 'DELIVERED', 'Delivered'
    FAILED = 'FAILED', 'Failed'


class Order(models.Model):
    class Meta:
        db_table = 'orders'
        ordering = ('-created_at',)
        indexes = [
            models.Index(fields=['payment_status', 'status'], name='orders_payment_2b1c1e_idx'),
        ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_code = models.CharField(max_length=40, unique=True, db_column='orderCode')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
        db_column='userId',
    )
    customer_name = models.CharField(max_length=160, db_column='customerName')
    customer_email = models.CharField(max_length=254, db_column='customerEmail')
    customer_phone = models.CharField(max_length=32, db_column='customerPhone')
    customer_address = models.CharField(max_length=255, blank=True, default='', db_column='customerAddress')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_provider = models.CharField(max_length=30, null=True, blank=True, db_column='paymentProvider')
    payment_reference = models.CharField(max_length=120, null=True, blank=True, db_column='paymentReference')
    payment_status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
        db_column='paymentStatus',
    )
    status = models.CharField(max_length=12, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True, db_column='createdAt')
    updated_at = models.DateTimeField(auto_now=True, db_column='updatedAt')

    def __str__(self):
        return self.order_code or f"Order {self.id}"


class OrderItem(models.Model):
    """
    One bundle for one recipient phone.

    Product, quantity and prices are a snapshot taken at checkout. The ``hubnet_*``
    columns are the fulfillment state and are written only through
    ``apps.orders.services``, ``apps.orders.dispatcher`` and ``apps.orders.reconciler``,
    always as single-row queryset updates.
    """

    class Meta:
        db_table = 'order_items'
        ordering = ('created_at',)
        indexes = [
            models.Index(fields=['hubnet_status', 'hubnet_skip', 'updated_at'], name='order_items_hubnet__5d0e7a_idx'),
            models.Index(fields=['order', 'hubnet_skip'], name='order_items_orderId_8c2f41_idx'),
        ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, related_name='items', on_delete=models.CASCADE, db_column='orderId')
    product = models.ForeignKey('products.Product', related_name='order_items', on_delete=models.PROTECT, db_column='productId')
    quantity = models.PositiveIntegerField(default=1)
    recipient_phone = models.CharField(max_length=32, null=True, blank=True, db_column='recipientPhone')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, db_column='unitPrice')
    line_total = models.DecimalField(max_digits=12, decimal_places=2, db_column='lineTotal')

    fulfillment_provider = models.CharField(
        max_length=20,
        choices=FulfillmentProvider.choices,
        null=True,
        blank=True,
        db_column='fulfillmentProvider',
    )
    hubnet_skip = models.BooleanField(default=False, db_column='hubnetSkip')
    hubnet_status = models.CharField(
        max_length=12,
        choices=FulfillmentStatus.choices,
        null=True,
        blank=True,
        db_column='hubnetStatus',
    )
    hubnet_network = models.CharField(max_length=40, null=True, blank=True, db_column='hubnetNetwork')
    hubnet_volume_mb = models.PositiveIntegerField(null=True, blank=True, db_column='hubnetVolumeMb')
    hubnet_capacity = models.PositiveIntegerField(null=True, blank=True, db_column='hubnetCapacity')
    hubnet_reference = models.CharField(max_length=25, null=True, blank=True, unique=True, db_column='hubnetReference')
    hubnet_transaction_id = models.CharField(max_length=120, null=True, blank=True, db_column='hubnetTransactionId')
    hubnet_payment_id = models.CharField(max_length=120, null=True, blank=True, db_column='hubnetPaymentId')
    hubnet_attempts = models.PositiveSmallIntegerField(default=0, db_column='hubnetAttempts')
    hubnet_last_attempt_at = models.DateTimeField(null=True, blank=True, db_column='hubnetLastAttemptAt')
    hubnet_last_error = models.TextField(null=True, blank=True, db_column='hubnetLastError')
    hubnet_delivered_at = models.DateTimeField(null=True, blank=True, db_column='hubnetDeliveredAt')

    created_at = models.DateTimeField(auto_now_add=True, db_column='createdAt')
    updated_at = models.DateTimeField(auto_now=True, db_column='updatedAt')

    def __str__(self):
        return f"{self.order_id}:{self.id}"
