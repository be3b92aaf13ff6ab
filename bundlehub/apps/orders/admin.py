from __future__ import annotations

from django.contrib import admin, messages

from .models import Order, OrderItem
from .services import queue_order_fulfillment


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = (
        "product", "quantity", "recipient_phone", "fulfillment_provider", "hubnet_skip",
        "hubnet_status", "hubnet_reference", "hubnet_attempts", "hubnet_last_error",
    )
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_code", "customer_name", "customer_phone", "payment_status", "status", "total", "created_at")
    list_filter = ("payment_status", "status")
    search_fields = ("order_code", "customer_email", "customer_phone", "payment_reference")
    date_hierarchy = "created_at"
    raw_id_fields = ("user",)
    inlines = [OrderItemInline]
    actions = ["requeue_fulfillment"]

    @admin.action(description="Queue paid orders for fulfillment")
    def requeue_fulfillment(self, request, queryset):
        queued = 0
        for order in queryset:
            if queue_order_fulfillment(order.id).queued:
                queued += 1
        self.message_user(request, f"{queued} order(s) queued", messages.SUCCESS)


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = (
        "id", "order", "fulfillment_provider", "hubnet_status", "hubnet_skip",
        "hubnet_attempts", "hubnet_reference", "updated_at",
    )
    list_filter = ("fulfillment_provider", "hubnet_status", "hubnet_skip")
    search_fields = ("hubnet_reference", "hubnet_transaction_id", "recipient_phone", "order__order_code")
    raw_id_fields = ("order", "product")
    readonly_fields = (
        "hubnet_reference", "hubnet_transaction_id", "hubnet_payment_id", "hubnet_attempts",
        "hubnet_last_attempt_at", "hubnet_delivered_at", "created_at", "updated_at",
    )
