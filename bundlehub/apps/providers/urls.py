from django.urls import path

from .views import DatahubnetBalanceView, HubnetBalanceView

# Included under the admin prefix in config urls
admin_urlpatterns = [
    path('hubnet/balance', HubnetBalanceView.as_view(), name='hubnet-balance'),
    path('datahubnet/balance', DatahubnetBalanceView.as_view(), name='datahubnet-balance'),
]
