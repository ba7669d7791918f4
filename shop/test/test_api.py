"""
Integration tests for the HTTP endpoints.
"""
import json
from unittest import mock

from django.test import TestCase, override_settings

from shop.infra.models import IdempotencyKey, OrderORM
from shop.test.factories import (
    WEBHOOK_SECRET,
    FakePaymentClient,
    make_product,
    provider_event,
    signed_payload,
)


class ShippingQuoteAPITest(TestCase):

    def post(self, data):
        return self.client.post(
            "/api/shipping/quote",
            data=json.dumps(data),
            content_type="application/json",
        )

    def test_quote(self):
        response = self.post({
            "destination": {"country": "ES"},
            "package": {"weight": 1},
            "orderValue": 50,
        })
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(
            [option["method"] for option in data["shippingOptions"]],
            ["standard", "express", "overnight"],
        )
        self.assertEqual(data["shippingOptions"][0]["cost"], 12.09)
        self.assertEqual(data["calculationDetails"]["taxes"], 21.0)

    def test_validation_error(self):
        response = self.post({"destination": {}, "package": {"weight": 1}, "orderValue": 50})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["success"], False)
        self.assertEqual(response.json()["error"], "Missing destination country")

    def test_invalid_json(self):
        response = self.client.post("/api/shipping/quote", data="{", content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid JSON")

    def test_get_not_allowed(self):
        response = self.client.get("/api/shipping/quote")
        self.assertEqual(response.status_code, 405)


class CheckoutSessionAPITest(TestCase):

    def setUp(self):
        self.product = make_product(stock=5)
        self.provider = FakePaymentClient()
        patcher = mock.patch("shop.api.views.get_payment_client", return_value=self.provider)
        patcher.start()
        self.addCleanup(patcher.stop)

    def post(self, data, **headers):
        return self.client.post(
            "/api/checkout/session",
            data=json.dumps(data),
            content_type="application/json",
            headers=headers,
        )

    def cart(self, quantity=1):
        return {
            "items": [{"productId": self.product.id, "quantity": quantity}],
            "customerEmail": "ana@example.com",
        }

    def test_creates_session(self):
        response = self.post(self.cart(), Origin="https://shop.example")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(set(data), {"sessionId", "url", "orderId"})
        self.assertTrue(OrderORM.objects.filter(id=data["orderId"]).exists())
        self.assertEqual(self.provider.sessions[0]["cancel_url"], "https://shop.example/cart")

    def test_empty_cart(self):
        response = self.post({"items": []})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Cart is empty", "code": "VALIDATION_ERROR"})

    def test_out_of_stock(self):
        response = self.post(self.cart(quantity=6))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "OUT_OF_STOCK")

    def test_unknown_product(self):
        response = self.post({"items": [{"productId": "nope", "quantity": 1}]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Product nope not found", "code": "VALIDATION_ERROR"})
        self.assertFalse(OrderORM.objects.exists())

    def test_provider_failure_is_generic(self):
        self.provider.fail = True
        response = self.post(self.cart())
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "An internal error occurred")
        self.assertEqual(OrderORM.objects.get().status, "PENDING")

    def test_idempotent_replay(self):
        first = self.post(self.cart(), **{"Idempotency-Key": "key-1"})
        second = self.post(self.cart(), **{"Idempotency-Key": "key-1"})
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.json(), first.json())
        self.assertEqual(OrderORM.objects.count(), 1)
        self.assertEqual(len(self.provider.sessions), 1)
        self.assertEqual(IdempotencyKey.objects.get().user_id, "GUEST")

    def test_idempotency_conflict(self):
        self.post(self.cart(), **{"Idempotency-Key": "key-2"})
        response = self.post(self.cart(quantity=2), **{"Idempotency-Key": "key-2"})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "DUPLICATE_REQUEST")
        self.assertEqual(OrderORM.objects.count(), 1)


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
class StripeWebhookAPITest(TestCase):

    def setUp(self):
        patcher = mock.patch("shop.api.views.get_payment_client", return_value=FakePaymentClient())
        patcher.start()
        self.addCleanup(patcher.stop)

    def post(self, body, **headers):
        return self.client.post(
            "/api/webhooks/stripe",
            data=body,
            content_type="application/json",
            headers=headers,
        )

    def test_acknowledges_event(self):
        body, header = signed_payload(provider_event("payout.paid", {"id": "po_1"}, event_id="evt_1"))
        response = self.post(body, **{"stripe-signature": header})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "received": True,
            "eventId": "evt_1",
            "eventType": "payout.paid",
            "result": {"message": "Event type payout.paid not handled"},
        })

    def test_missing_signature(self):
        body, _ = signed_payload(provider_event("payout.paid", {}))
        response = self.post(body)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Missing Stripe signature")

    def test_invalid_signature(self):
        body, _ = signed_payload(provider_event("payout.paid", {}))
        response = self.post(body, **{"Stripe-Signature": "t=1,v1=deadbeef"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid signature")

    def test_business_error_still_200(self):
        body, header = signed_payload(provider_event(
            "checkout.session.completed",
            {"id": "cs_1", "metadata": {"orderId": "00000000-0000-0000-0000-000000000001"}},
        ))
        response = self.post(body, **{"Stripe-Signature": header})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["result"]["error"], "NOT_FOUND")
