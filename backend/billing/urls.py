"""URL routes for billing endpoints."""
from django.urls import path

from .views import ChargeGenerationView
from .views_webhook import GatewayWebhookView

app_name = "billing"

urlpatterns = [
    path("charges/generate/", ChargeGenerationView.as_view(), name="charges-generate"),
    path("webhooks/<str:gateway>/", GatewayWebhookView.as_view(), name="gateway-webhook"),
]
