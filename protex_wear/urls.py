"""
URL configuration for protex_wear project.
"""
from django.contrib import admin
from django.urls import path

from shop.api.views import (
    checkout_session_view,
    graphql_view,
    shipping_quote_view,
    stripe_webhook_view,
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/shipping/quote", shipping_quote_view, name="shipping-quote"),
    path("api/checkout/session", checkout_session_view, name="checkout-session"),
    path("api/webhooks/stripe", stripe_webhook_view, name="stripe-webhook"),
    path("graphql/", graphql_view, name="graphql"),
]
