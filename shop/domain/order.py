"""
Domain model for the Order aggregate and its lifecycle.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from shop.domain import rates
from shop.domain.errors import InvalidTransitionError, ValidationError
from shop.domain.events import OrderCreated, OrderStatusChanged

GUEST_USER_ID = "GUEST"
GUEST_EMAIL = "unknown@guest.com"
GUEST_NAME = "Guest User"


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    DISPUTED = "DISPUTED"


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.DISPUTED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.DISPUTED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.DISPUTED,
    },
    OrderStatus.SHIPPED: {
        OrderStatus.DELIVERED,
        OrderStatus.DISPUTED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.DELIVERED: {
        OrderStatus.DISPUTED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.DISPUTED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

# Normal forward flow; statuses outside it are side branches.
FULFILMENT_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Return whether ``current -> target`` is allowed. Staying put is allowed."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


class OrderItem:
    """Order line item value object."""

    def __init__(
        self,
        product_id: str,
        quantity: int,
        unit_price: Decimal,
        sku: str = "",
        name: str = "",
    ):
        if not product_id:
            raise ValidationError("Item productId is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Item quantity must be a positive integer")
        if unit_price < 0:
            raise ValidationError("Item price must be non-negative")

        self.product_id = str(product_id)
        self.quantity = quantity
        self.unit_price = unit_price
        self.sku = sku
        self.name = name

    @property
    def subtotal(self) -> Decimal:
        """Calculate item subtotal."""
        return self.unit_price * self.quantity

    def as_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "price": str(self.unit_price),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItem":
        return cls(
            product_id=data["productId"],
            quantity=int(data["quantity"]),
            unit_price=Decimal(str(data["price"])),
            sku=data.get("sku", ""),
            name=data.get("name", ""),
        )


@dataclass
class ShippingDetails:
    """Carrier metadata fixed when the order is created."""
    method: str
    carrier: str
    tracking_number: str | None = None
    tracking_url: str | None = None
    estimated_delivery: date | None = None


class Order:
    """
    Order aggregate root.

    Money fields are computed once, at creation. Status changes go through
    the named event methods below, each returning an ``OrderStatusChanged``
    for the order timeline.
    """

    def __init__(
        self,
        items: list[OrderItem],
        shipping_cost: Decimal = Decimal("0.00"),
        *,
        id: UUID | None = None,
        user_id: str = GUEST_USER_ID,
        customer_email: str = GUEST_EMAIL,
        customer_name: str = GUEST_NAME,
        customer_company: str | None = None,
        tax_amount: Decimal = Decimal("0.00"),
        discount_amount: Decimal = Decimal("0.00"),
        subtotal: Decimal | None = None,
        total_amount: Decimal | None = None,
        shipping: ShippingDetails | None = None,
        shipping_address: dict | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        checkout_session_id: str | None = None,
        payment_intent_id: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        confirmed_at: datetime | None = None,
        shipped_at: datetime | None = None,
        delivered_at: datetime | None = None,
    ):
        if not items:
            raise ValidationError("Cart is empty")

        now = datetime.now(timezone.utc)
        self.id = id or uuid4()
        self.user_id = user_id or GUEST_USER_ID
        self.customer_email = customer_email or GUEST_EMAIL
        self.customer_name = customer_name or GUEST_NAME
        self.customer_company = customer_company
        self._items = list(items)
        self.shipping = shipping
        self.shipping_address = shipping_address or {}
        self.checkout_session_id = checkout_session_id
        self.payment_intent_id = payment_intent_id

        self._subtotal = subtotal if subtotal is not None else sum(
            (item.subtotal for item in self._items), Decimal("0.00")
        )
        self._shipping_cost = shipping_cost
        self._tax_amount = tax_amount
        self._discount_amount = discount_amount
        self._total_amount = (
            total_amount if total_amount is not None else self._subtotal + shipping_cost
        )

        self._status = status
        self._payment_status = payment_status
        self.created_at = created_at or now
        self.updated_at = updated_at or now
        self.confirmed_at = confirmed_at
        self.shipped_at = shipped_at
        self.delivered_at = delivered_at

    @classmethod
    def create(cls, items: list[OrderItem], shipping_cost: Decimal, **kwargs) -> tuple["Order", OrderCreated]:
        """Create a PENDING order for a checkout and its creation event."""
        order = cls(items, shipping_cost, **kwargs)
        event = OrderCreated(
            aggregate_id=order.id,
            event_type="OrderCreated",
            user_id=order.user_id,
            total_amount=order.total_amount,
            items_count=len(order.items),
        )
        return order, event

    @property
    def items(self) -> list[OrderItem]:
        """Get order items (immutable)."""
        return list(self._items)

    @property
    def owner(self) -> str:
        return self.user_id

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def payment_status(self) -> PaymentStatus:
        return self._payment_status

    @property
    def subtotal(self) -> Decimal:
        return self._subtotal

    @property
    def shipping_cost(self) -> Decimal:
        return self._shipping_cost

    @property
    def tax_amount(self) -> Decimal:
        return self._tax_amount

    @property
    def discount_amount(self) -> Decimal:
        return self._discount_amount

    @property
    def total_amount(self) -> Decimal:
        return self._total_amount

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self._status]

    def _transition(
        self,
        target: OrderStatus,
        payment_status: PaymentStatus | None = None,
        source: str = "",
    ) -> OrderStatusChanged:
        if not can_transition(self._status, target):
            raise InvalidTransitionError(self.id, self._status.value, target.value)

        previous_status = self._status
        previous_payment = self._payment_status
        self._status = target
        if payment_status is not None:
            self._payment_status = payment_status
        self.updated_at = datetime.now(timezone.utc)

        return OrderStatusChanged(
            aggregate_id=self.id,
            event_type="OrderStatusChanged",
            from_status=previous_status.value,
            to_status=self._status.value,
            payment_status=self._payment_status.value,
            previous_payment_status=previous_payment.value,
            source=source,
        )

    def mark_paid(
        self,
        target: OrderStatus = OrderStatus.CONFIRMED,
        payment_intent_id: str | None = None,
        source: str = "",
    ) -> OrderStatusChanged:
        """
        Record a successful payment.

        The status moves forward to ``target`` but never backwards: a
        confirmation arriving after the order reached PROCESSING keeps it
        there.
        """
        if self._status not in FULFILMENT_SEQUENCE:
            raise InvalidTransitionError(self.id, self._status.value, target.value)

        current_rank = FULFILMENT_SEQUENCE.index(self._status)
        next_status = target if FULFILMENT_SEQUENCE.index(target) > current_rank else self._status

        change = self._transition(next_status, PaymentStatus.PAID, source)
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        if self.confirmed_at is None:
            self.confirmed_at = self.updated_at
        return change

    def mark_payment_failed(self, payment_intent_id: str | None = None, source: str = "") -> OrderStatusChanged:
        """Cancel the order after a failed payment."""
        change = self._transition(OrderStatus.CANCELLED, PaymentStatus.FAILED, source)
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        return change

    def mark_disputed(self, payment_intent_id: str | None = None, source: str = "") -> OrderStatusChanged:
        """Flag the order after a charge dispute."""
        change = self._transition(OrderStatus.DISPUTED, PaymentStatus.DISPUTED, source)
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        return change

    def mark_processing(self, source: str = "") -> OrderStatusChanged:
        return self._transition(OrderStatus.PROCESSING, source=source)

    def mark_shipped(self, tracking_number: str | None = None, source: str = "") -> OrderStatusChanged:
        change = self._transition(OrderStatus.SHIPPED, source=source)
        if tracking_number and self.shipping is not None:
            self.shipping.tracking_number = tracking_number
            self.shipping.tracking_url = rates.tracking_url(self.shipping.carrier, tracking_number)
        self.shipped_at = self.updated_at
        return change

    def mark_delivered(self, source: str = "") -> OrderStatusChanged:
        change = self._transition(OrderStatus.DELIVERED, source=source)
        self.delivered_at = self.updated_at
        return change

    def cancel(self, source: str = "") -> OrderStatusChanged:
        return self._transition(OrderStatus.CANCELLED, source=source)

    def mark_refunded(self, source: str = "") -> OrderStatusChanged:
        return self._transition(OrderStatus.REFUNDED, source=source)
