"""
Checkout: stock check, order creation and provider checkout session.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping
from uuid import UUID, uuid4

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from shop.domain import rates
from shop.domain.errors import (
    InsufficientStockError,
    PaymentProviderError,
    ShopError,
    ValidationError,
)
from shop.domain.order import (
    GUEST_EMAIL,
    GUEST_NAME,
    GUEST_USER_ID,
    Order,
    OrderItem,
    ShippingDetails,
)
from shop.domain.rates import CustomerType, ShippingMethod
from shop.domain.shipping import (
    Destination,
    Package,
    ShippingRequest,
    compute_shipping_options,
    round_cents,
)
from shop.infra.event_store import OrderEventRepository
from shop.infra.payments import StripeClient
from shop.infra.repositories import OrderRepository, ProductRepository

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "ES"


@dataclass(frozen=True)
class CartLine:
    """One cart line as submitted by the storefront."""
    product_id: str
    quantity: int
    name: str = ""
    price: Decimal | None = None


@dataclass(frozen=True)
class CheckoutRequest:
    """Validated checkout request."""
    items: list[CartLine]
    customer_email: str = GUEST_EMAIL
    customer_name: str = GUEST_NAME
    customer_company: str | None = None
    user_id: str = GUEST_USER_ID
    shipping_address: dict = field(default_factory=dict)
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    customer_type: CustomerType = CustomerType.RETAIL

    @classmethod
    def from_payload(cls, payload: Any) -> "CheckoutRequest":
        """Parse a JSON payload, raising ValidationError on malformed input."""
        if not isinstance(payload, Mapping):
            raise ValidationError("Invalid request body")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("Cart is empty")
        items = [_parse_line(raw) for raw in raw_items]

        address = payload.get("shippingAddress") or {}
        if not isinstance(address, Mapping):
            raise ValidationError("Invalid shippingAddress")

        method = payload.get("shippingMethod") or ShippingMethod.STANDARD.value
        try:
            shipping_method = ShippingMethod(method)
        except ValueError:
            raise ValidationError("Invalid shipping method")

        customer = payload.get("customerType") or CustomerType.RETAIL.value
        try:
            customer_type = CustomerType(customer)
        except ValueError:
            raise ValidationError("Invalid customer type")

        return cls(
            items=items,
            customer_email=_optional_str(payload, "customerEmail") or GUEST_EMAIL,
            customer_name=_optional_str(payload, "customerName") or GUEST_NAME,
            customer_company=_optional_str(payload, "customerCompany"),
            user_id=_optional_str(payload, "userId") or GUEST_USER_ID,
            shipping_address=dict(address),
            shipping_method=shipping_method,
            customer_type=customer_type,
        )

    @property
    def destination_country(self) -> str:
        country = self.shipping_address.get("country")
        if isinstance(country, str) and country.strip():
            return country.strip().upper()
        return DEFAULT_COUNTRY


def _optional_str(payload: Mapping, key: str) -> str | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {key}")
    return value.strip()


def _parse_line(raw: Any) -> CartLine:
    if not isinstance(raw, Mapping):
        raise ValidationError("Invalid cart item")
    product_id = raw.get("productId") or raw.get("id")
    if not isinstance(product_id, str) or not product_id:
        raise ValidationError("Invalid cart item productId")
    quantity = raw.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Invalid cart item quantity")
    price = raw.get("price")
    if price is not None:
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
            raise ValidationError("Invalid cart item price")
        price = Decimal(str(price))
    return CartLine(
        product_id=product_id,
        quantity=quantity,
        name=str(raw.get("name") or ""),
        price=price,
    )


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CheckoutService:
    """Creates PENDING orders and their provider checkout sessions."""

    def __init__(
        self,
        payment_client: StripeClient,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        event_repo: OrderEventRepository | None = None,
    ):
        self.payment_client = payment_client
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.event_repo = event_repo or OrderEventRepository()

    def create_checkout_session(self, request: CheckoutRequest, origin: str | None = None) -> dict:
        """
        Check stock, create the order and open a checkout session for it.

        The stock check does not reserve anything. A provider failure after
        the order insert leaves that order PENDING.
        """
        order_items, weight = self._check_stock(request)
        order = self._create_order(request, order_items, weight)

        origin = (origin or settings.CHECKOUT_DEFAULT_ORIGIN).rstrip("/")
        try:
            session = self.payment_client.create_checkout_session(
                self._session_params(order, origin)
            )
        except PaymentProviderError:
            logger.error(
                "checkout_session_failed",
                extra={"order_id": str(order.id)},
            )
            raise

        session_id = session.get("id")
        if not session_id:
            raise PaymentProviderError("Payment provider returned no session id")
        self.order_repo.set_checkout_session(order.id, session_id)

        logger.info(
            "checkout_session_created",
            extra={"order_id": str(order.id), "session_id": session_id},
        )
        return {
            "sessionId": session_id,
            "url": session.get("url"),
            "orderId": str(order.id),
        }

    def _check_stock(self, request: CheckoutRequest) -> tuple[list[OrderItem], Decimal]:
        products = self.product_repo.get_many([line.product_id for line in request.items])

        requested = Counter()
        for line in request.items:
            requested[line.product_id] += line.quantity

        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None or not product.is_active:
                raise ValidationError(f"Product {product_id} not found")
            if product.stock < quantity:
                raise InsufficientStockError(product_id, quantity, product.stock)

        default_weight = Decimal(str(settings.SHIPPING_DEFAULT_ITEM_WEIGHT_KG))
        items = []
        weight = Decimal("0")
        for line in request.items:
            product = products[line.product_id]
            items.append(OrderItem(
                product_id=product.id,
                quantity=line.quantity,
                unit_price=Decimal(product.price),
                sku=product.sku,
                name=product.name,
            ))
            item_weight = Decimal(product.weight) if product.weight else default_weight
            weight += item_weight * line.quantity
        return items, weight

    def _create_order(self, request: CheckoutRequest, items: list[OrderItem], weight: Decimal) -> Order:
        subtotal = sum((item.subtotal for item in items), Decimal("0.00"))
        quote = compute_shipping_options(ShippingRequest(
            destination=Destination(country=request.destination_country),
            package=Package(weight=weight, value=subtotal),
            order_value=subtotal,
            shipping_method=request.shipping_method,
            customer_type=request.customer_type,
        ))
        option = quote.option_for(request.shipping_method)
        if option is None:
            raise ShopError("Shipping could not be calculated")

        order_id = uuid4()
        tracking_number = self._tracking_number(order_id)
        shipping = ShippingDetails(
            method=option.method.value,
            carrier=option.carrier,
            tracking_number=tracking_number,
            tracking_url=rates.tracking_url(option.carrier, tracking_number),
            estimated_delivery=timezone.localdate() + timedelta(days=option.estimated_days),
        )
        # Catalog prices include VAT
        tax_amount = round_cents(subtotal - subtotal / (1 + rates.VAT_RATE))

        order, created = Order.create(
            items,
            option.cost,
            id=order_id,
            user_id=request.user_id,
            customer_email=request.customer_email,
            customer_name=request.customer_name,
            customer_company=request.customer_company,
            tax_amount=tax_amount,
            shipping=shipping,
            shipping_address=request.shipping_address,
        )
        with transaction.atomic():
            self.order_repo.save(order)
            self.event_repo.save_event(created)

        logger.info(
            "order_created",
            extra={
                "order_id": str(order.id),
                "status": order.status.value,
                "total_amount": str(order.total_amount),
                "items_count": len(items),
            },
        )
        return order

    @staticmethod
    def _tracking_number(order_id: UUID) -> str:
        return f"PW{order_id.hex[:12].upper()}"

    def _session_params(self, order: Order, origin: str) -> dict:
        line_items = [
            {
                "price_data": {
                    "currency": "eur",
                    "product_data": {"name": item.name or item.sku or item.product_id},
                    "unit_amount": to_cents(item.unit_price),
                },
                "quantity": item.quantity,
            }
            for item in order.items
        ]
        if order.shipping_cost > 0:
            carrier = order.shipping.carrier if order.shipping else ""
            line_items.append({
                "price_data": {
                    "currency": "eur",
                    "product_data": {"name": f"Envío ({carrier})" if carrier else "Envío"},
                    "unit_amount": to_cents(order.shipping_cost),
                },
                "quantity": 1,
            })

        metadata = {"orderId": str(order.id), "userId": order.user_id}
        return {
            "payment_method_types": ["card"],
            "mode": "payment",
            "customer_email": order.customer_email if order.customer_email != GUEST_EMAIL else None,
            "line_items": line_items,
            "success_url": f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{origin}/cart",
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
