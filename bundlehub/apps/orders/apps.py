from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.orders'
    verbose_name = 'Orders & fulfillment'

    def ready(self):
        # Fail at startup, not on the first dispatcher tick, when a mapping is malformed.
        from .conf import get_fulfillment_settings

        get_fulfillment_settings()
