from django.urls import path

from .views import AdminFulfillmentItemsView, AdminQueueOrderFulfillmentView, HubnetWebhookView

urlpatterns = [
    path('hubnet/webhook', HubnetWebhookView.as_view(), name='hubnet-webhook'),
    path('hubnet/webhook/', HubnetWebhookView.as_view(), name='hubnet-webhook-slash'),
]

# Admin routes are included with prefix 'admin/' in config urls
admin_urlpatterns = [
    path('hubnet/queue-order/<uuid:order_id>', AdminQueueOrderFulfillmentView.as_view(), name='hubnet-queue-order'),
    path('hubnet/items', AdminFulfillmentItemsView.as_view(), name='hubnet-items'),
]
