"""
Tests for the checkout service.
"""
from decimal import Decimal

from django.test import TestCase, override_settings

from shop.domain.errors import (
    InsufficientStockError,
    PaymentProviderError,
    ValidationError,
)
from shop.infra.models import OrderEventORM, OrderORM, ProductORM
from shop.services.checkout import CheckoutRequest, CheckoutService, to_cents
from shop.test.factories import FakePaymentClient, make_product


class CheckoutRequestTest(TestCase):

    def test_empty_cart(self):
        for payload in ({}, {"items": []}, {"items": None}):
            with self.assertRaises(ValidationError) as ctx:
                CheckoutRequest.from_payload(payload)
            self.assertEqual(ctx.exception.message, "Cart is empty")

    def test_invalid_quantity(self):
        with self.assertRaises(ValidationError):
            CheckoutRequest.from_payload({"items": [{"productId": "p", "quantity": 0}]})
        with self.assertRaises(ValidationError):
            CheckoutRequest.from_payload({"items": [{"productId": "p", "quantity": 1.5}]})

    def test_invalid_price(self):
        with self.assertRaises(ValidationError):
            CheckoutRequest.from_payload({"items": [{"productId": "p", "quantity": 1, "price": -2}]})

    def test_guest_defaults(self):
        request = CheckoutRequest.from_payload({"items": [{"id": "p", "quantity": 1}]})
        self.assertEqual(request.user_id, "GUEST")
        self.assertEqual(request.customer_email, "unknown@guest.com")
        self.assertEqual(request.customer_name, "Guest User")
        self.assertEqual(request.destination_country, "ES")
        self.assertEqual(request.items[0].product_id, "p")


class CheckoutServiceTest(TestCase):

    def setUp(self):
        self.glove = make_product(price=Decimal("12.10"), stock=10, weight=Decimal("0.500"))
        self.helmet = make_product(price=Decimal("30.25"), stock=2, weight=None)
        self.client_fake = FakePaymentClient()
        self.service = CheckoutService(payment_client=self.client_fake)

    def request(self, **overrides):
        payload = {
            "items": [
                {"productId": self.glove.id, "quantity": 2, "price": 1},
                {"productId": self.helmet.id, "quantity": 1},
            ],
            "customerEmail": "ana@example.com",
            "customerName": "Ana Pérez",
            "userId": "user-1",
            "shippingAddress": {"street": "Calle Mayor 1", "city": "Madrid", "country": "ES"},
        }
        payload.update(overrides)
        return CheckoutRequest.from_payload(payload)

    def test_creates_pending_order_and_session(self):
        result = self.service.create_checkout_session(self.request(), origin="https://shop.example")

        order = OrderORM.objects.get(id=result["orderId"])
        self.assertEqual(result["sessionId"], "cs_test_1")
        self.assertEqual(result["url"], "https://checkout.stripe.test/cs_test_1")
        self.assertEqual(order.checkout_session_id, "cs_test_1")
        self.assertEqual(order.status, "PENDING")
        self.assertEqual(order.payment_status, "PENDING")
        self.assertEqual(order.user_id, "user-1")
        self.assertEqual(order.owner, "user-1")

        # Catalog prices, not client prices
        self.assertEqual(order.subtotal, Decimal("54.45"))
        # 2 x 0.5 kg + 1 x 0.5 kg fallback, domestic standard
        self.assertEqual(order.shipping_cost, Decimal("12.09"))
        self.assertEqual(order.total_amount, Decimal("66.54"))
        self.assertEqual(order.tax_amount, Decimal("9.45"))
        self.assertEqual(order.discount_amount, Decimal("0.00"))

        self.assertEqual(order.carrier, "Correos España")
        self.assertTrue(order.tracking_number.startswith("PW"))
        self.assertIn(order.tracking_number, order.tracking_url)
        self.assertIsNotNone(order.estimated_delivery)

        events = list(OrderEventORM.objects.filter(order=order))
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].event_type, "OrderCreated")
        self.assertEqual(events[0].sequence_number, 1)

    def test_session_params(self):
        result = self.service.create_checkout_session(self.request(), origin="https://shop.example/")
        params = self.client_fake.sessions[0]

        self.assertEqual(params["mode"], "payment")
        self.assertEqual(params["customer_email"], "ana@example.com")
        self.assertEqual(params["success_url"], "https://shop.example/success?session_id={CHECKOUT_SESSION_ID}")
        self.assertEqual(params["cancel_url"], "https://shop.example/cart")
        self.assertEqual(params["metadata"]["orderId"], result["orderId"])
        self.assertEqual(params["payment_intent_data"]["metadata"]["orderId"], result["orderId"])

        amounts = [(line["price_data"]["unit_amount"], line["quantity"]) for line in params["line_items"]]
        self.assertEqual(amounts, [(1210, 2), (3025, 1), (1209, 1)])
        self.assertEqual(
            params["line_items"][-1]["price_data"]["product_data"]["name"],
            "Envío (Correos España)",
        )

    def test_free_shipping_has_no_shipping_line(self):
        request = self.request(items=[{"productId": self.glove.id, "quantity": 9}])
        self.service.create_checkout_session(request)
        params = self.client_fake.sessions[0]
        self.assertEqual(len(params["line_items"]), 1)

    @override_settings(CHECKOUT_DEFAULT_ORIGIN="http://storefront.test")
    def test_default_origin(self):
        self.service.create_checkout_session(self.request())
        self.assertEqual(self.client_fake.sessions[0]["cancel_url"], "http://storefront.test/cart")

    def test_international_express(self):
        request = self.request(
            shippingMethod="express",
            shippingAddress={"country": "us"},
        )
        result = self.service.create_checkout_session(request)
        order = OrderORM.objects.get(id=result["orderId"])
        # 19.99 x 2.5 x 1.21
        self.assertEqual(order.shipping_cost, Decimal("60.47"))
        self.assertEqual(order.shipping_method, "express")
        self.assertEqual(order.carrier, "SEUR")

    def test_insufficient_stock(self):
        request = self.request(items=[{"productId": self.helmet.id, "quantity": 3}])
        with self.assertRaises(InsufficientStockError) as ctx:
            self.service.create_checkout_session(request)
        self.assertEqual(ctx.exception.available, 2)
        self.assertFalse(OrderORM.objects.exists())
        self.assertEqual(self.client_fake.sessions, [])

    def test_stock_check_sums_repeated_lines(self):
        request = self.request(items=[
            {"productId": self.helmet.id, "quantity": 2},
            {"productId": self.helmet.id, "quantity": 1},
        ])
        with self.assertRaises(InsufficientStockError):
            self.service.create_checkout_session(request)

    def test_unknown_product(self):
        request = self.request(items=[{"productId": "missing", "quantity": 1}])
        with self.assertRaises(ValidationError) as ctx:
            self.service.create_checkout_session(request)
        self.assertEqual(ctx.exception.message, "Product missing not found")

    def test_inactive_product(self):
        ProductORM.objects.filter(id=self.glove.id).update(is_active=False)
        request = self.request(items=[{"productId": self.glove.id, "quantity": 1}])
        with self.assertRaises(ValidationError):
            self.service.create_checkout_session(request)

    def test_provider_failure_leaves_pending_order(self):
        service = CheckoutService(payment_client=FakePaymentClient(fail=True))
        with self.assertRaises(PaymentProviderError):
            service.create_checkout_session(self.request())
        order = OrderORM.objects.get()
        self.assertEqual(order.status, "PENDING")
        self.assertIsNone(order.checkout_session_id)

    def test_checkout_does_not_touch_stock(self):
        self.service.create_checkout_session(self.request())
        self.glove.refresh_from_db()
        self.assertEqual(self.glove.stock, 10)


class ToCentsTest(TestCase):

    def test_rounding(self):
        self.assertEqual(to_cents(Decimal("12.10")), 1210)
        self.assertEqual(to_cents(Decimal("0.005")), 1)
