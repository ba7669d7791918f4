"""
Tests for the order lifecycle state machine.
"""
from decimal import Decimal

from django.test import SimpleTestCase

from shop.domain.errors import InvalidTransitionError, ValidationError
from shop.domain.order import (
    ALLOWED_TRANSITIONS,
    GUEST_USER_ID,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ShippingDetails,
    can_transition,
)


def make_order(**kwargs) -> Order:
    items = [
        OrderItem("prod-1", 2, Decimal("12.10"), sku="GL-1", name="Guante"),
        OrderItem("prod-2", 1, Decimal("30.00"), sku="CS-1", name="Casco"),
    ]
    order, _ = Order.create(items, Decimal("12.09"), **kwargs)
    return order


def order_in(status: OrderStatus, payment_status=PaymentStatus.PENDING) -> Order:
    items = [OrderItem("prod-1", 1, Decimal("10.00"))]
    return Order(
        items,
        Decimal("0.00"),
        status=status,
        payment_status=payment_status,
        shipping=ShippingDetails(method="standard", carrier="Correos España"),
    )


class OrderCreationTest(SimpleTestCase):

    def test_create_computes_totals(self):
        order = make_order()
        self.assertEqual(order.subtotal, Decimal("54.20"))
        self.assertEqual(order.total_amount, Decimal("66.29"))
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.user_id, GUEST_USER_ID)
        self.assertEqual(order.owner, GUEST_USER_ID)

    def test_create_returns_creation_event(self):
        items = [OrderItem("prod-1", 3, Decimal("5.00"))]
        order, event = Order.create(items, Decimal("0"), user_id="user-1")
        self.assertEqual(event.aggregate_id, order.id)
        self.assertEqual(event.items_count, 1)
        self.assertEqual(event.total_amount, Decimal("15.00"))
        self.assertEqual(event.status, "PENDING")

    def test_empty_cart_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            Order([], Decimal("0"))
        self.assertEqual(ctx.exception.message, "Cart is empty")

    def test_item_validation(self):
        with self.assertRaises(ValidationError):
            OrderItem("prod-1", 0, Decimal("1.00"))
        with self.assertRaises(ValidationError):
            OrderItem("prod-1", 1, Decimal("-1.00"))
        with self.assertRaises(ValidationError):
            OrderItem("", 1, Decimal("1.00"))

    def test_items_are_a_copy(self):
        order = make_order()
        order.items.clear()
        self.assertEqual(len(order.items), 2)


class TransitionTableTest(SimpleTestCase):

    def test_terminal_states(self):
        for status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            self.assertTrue(order_in(status).is_terminal)
            for target in OrderStatus:
                if target != status:
                    self.assertFalse(can_transition(status, target))

    def test_every_status_has_an_entry(self):
        self.assertEqual(set(ALLOWED_TRANSITIONS), set(OrderStatus))

    def test_disputed_only_to_refunded(self):
        self.assertTrue(can_transition(OrderStatus.DISPUTED, OrderStatus.REFUNDED))
        self.assertFalse(can_transition(OrderStatus.DISPUTED, OrderStatus.SHIPPED))


class PaymentEventsTest(SimpleTestCase):

    def test_mark_paid_confirms(self):
        order = make_order()
        change = order.mark_paid(OrderStatus.CONFIRMED, "pi_1", source="webhook")
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(order.payment_intent_id, "pi_1")
        self.assertIsNotNone(order.confirmed_at)
        self.assertTrue(change.newly_paid)
        self.assertEqual(change.from_status, "PENDING")
        self.assertEqual(change.to_status, "CONFIRMED")

    def test_mark_paid_never_moves_backwards(self):
        order = order_in(OrderStatus.PROCESSING, PaymentStatus.PAID)
        change = order.mark_paid(OrderStatus.CONFIRMED)
        self.assertEqual(order.status, OrderStatus.PROCESSING)
        self.assertFalse(change.newly_paid)

    def test_second_payment_event_is_not_newly_paid(self):
        order = make_order()
        self.assertTrue(order.mark_paid(OrderStatus.CONFIRMED).newly_paid)
        change = order.mark_paid(OrderStatus.PROCESSING)
        self.assertEqual(order.status, OrderStatus.PROCESSING)
        self.assertFalse(change.newly_paid)

    def test_mark_paid_after_cancel_rejected(self):
        order = order_in(OrderStatus.CANCELLED, PaymentStatus.FAILED)
        with self.assertRaises(InvalidTransitionError):
            order.mark_paid(OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_status, PaymentStatus.FAILED)

    def test_payment_failed_cancels(self):
        order = make_order()
        order.mark_payment_failed("pi_2")
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment_status, PaymentStatus.FAILED)

    def test_dispute(self):
        order = order_in(OrderStatus.DELIVERED, PaymentStatus.PAID)
        order.mark_disputed("pi_3")
        self.assertEqual(order.status, OrderStatus.DISPUTED)
        self.assertEqual(order.payment_status, PaymentStatus.DISPUTED)

    def test_money_fields_unchanged_by_transitions(self):
        order = make_order()
        before = (order.subtotal, order.shipping_cost, order.tax_amount, order.total_amount)
        order.mark_paid(OrderStatus.CONFIRMED)
        order.mark_processing()
        order.cancel()
        self.assertEqual(
            (order.subtotal, order.shipping_cost, order.tax_amount, order.total_amount),
            before,
        )


class FulfilmentEventsTest(SimpleTestCase):

    def test_full_flow(self):
        order = order_in(OrderStatus.CONFIRMED, PaymentStatus.PAID)
        order.mark_processing()
        order.mark_shipped("TRK-1")
        self.assertEqual(order.shipping.tracking_number, "TRK-1")
        self.assertIsNotNone(order.shipped_at)
        order.mark_delivered()
        self.assertIsNotNone(order.delivered_at)
        order.mark_refunded()
        self.assertEqual(order.status, OrderStatus.REFUNDED)

    def test_new_tracking_number_rebuilds_url(self):
        order = order_in(OrderStatus.PROCESSING, PaymentStatus.PAID)
        order.shipping.tracking_number = "PW-OLD"
        order.shipping.tracking_url = "https://www.correos.es/es/es/herramientas/localizador/envios/detalle?tracking-number=PW-OLD"
        order.mark_shipped("PQ123ES")
        self.assertEqual(order.shipping.tracking_number, "PQ123ES")
        self.assertEqual(
            order.shipping.tracking_url,
            "https://www.correos.es/es/es/herramientas/localizador/envios/detalle?tracking-number=PQ123ES",
        )

    def test_ship_without_number_keeps_url(self):
        order = order_in(OrderStatus.PROCESSING, PaymentStatus.PAID)
        order.shipping.tracking_url = "https://example.test/track/PW-1"
        order.mark_shipped()
        self.assertEqual(order.shipping.tracking_url, "https://example.test/track/PW-1")

    def test_cannot_ship_pending_order(self):
        order = make_order()
        with self.assertRaises(InvalidTransitionError) as ctx:
            order.mark_shipped()
        self.assertEqual(ctx.exception.code, "INVALID_STATE")
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_cannot_cancel_shipped_order(self):
        order = order_in(OrderStatus.SHIPPED, PaymentStatus.PAID)
        with self.assertRaises(InvalidTransitionError):
            order.cancel()

    def test_updated_at_touched(self):
        order = make_order()
        before = order.updated_at
        order.mark_paid(OrderStatus.CONFIRMED)
        self.assertGreaterEqual(order.updated_at, before)
