"""
Infrastructure repositories for domain entities.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from django.db import transaction
from django.db.models import F

from shop.domain.order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ShippingDetails,
)
from shop.infra.models import OrderORM, ProductORM

logger = logging.getLogger(__name__)


class ProductRepository:
    """Repository for catalog products."""

    def get_by_id(self, product_id: str) -> ProductORM | None:
        """Get product by ID."""
        return ProductORM.objects.filter(id=product_id).first()

    def get_many(self, product_ids: list[str]) -> dict[str, ProductORM]:
        """Get products by ID in one query, keyed by ID."""
        return {
            product.id: product
            for product in ProductORM.objects.filter(id__in=set(product_ids))
        }

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """
        Subtract ``quantity`` from the product stock.

        The subtraction runs in the database (``stock - quantity``) without
        checking the current value first. Returns False when the product does
        not exist.
        """
        updated = ProductORM.objects.filter(id=product_id).update(
            stock=F("stock") - quantity,
        )
        return updated == 1

    @transaction.atomic
    def upsert_by_sku(self, sku: str, defaults: dict) -> tuple[ProductORM, bool]:
        """Create or update a product identified by SKU."""
        return ProductORM.objects.update_or_create(sku=sku, defaults=defaults)


class OrderRepository:
    """Repository for Order aggregate."""

    def get_by_id(self, order_id: UUID | str) -> Order | None:
        """Get order by ID."""
        try:
            order_uuid = order_id if isinstance(order_id, UUID) else UUID(str(order_id))
        except ValueError:
            return None
        try:
            order_orm = OrderORM.objects.get(id=order_uuid)
        except OrderORM.DoesNotExist:
            return None
        return self._to_domain(order_orm)

    def get_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Order]:
        """Get orders of a user, newest first, with pagination."""
        orders_orm = (
            OrderORM.objects
            .filter(user_id=user_id)
            .order_by("-created_at")[offset:offset + limit]
        )
        return [self._to_domain(order_orm) for order_orm in orders_orm]

    @transaction.atomic
    def save(self, order: Order) -> UUID:
        """Save order aggregate."""
        shipping = order.shipping
        order_orm, created = OrderORM.objects.update_or_create(
            id=order.id,
            defaults={
                "user_id": order.user_id,
                "owner": order.owner,
                "customer_email": order.customer_email,
                "customer_name": order.customer_name,
                "customer_company": order.customer_company,
                "items": [item.as_dict() for item in order.items],
                "subtotal": order.subtotal,
                "shipping_cost": order.shipping_cost,
                "tax_amount": order.tax_amount,
                "discount_amount": order.discount_amount,
                "total_amount": order.total_amount,
                "status": order.status.value,
                "payment_status": order.payment_status.value,
                "shipping_address": order.shipping_address,
                "shipping_method": shipping.method if shipping else "",
                "carrier": shipping.carrier if shipping else "",
                "tracking_number": shipping.tracking_number if shipping else None,
                "tracking_url": shipping.tracking_url if shipping else None,
                "estimated_delivery": shipping.estimated_delivery if shipping else None,
                "checkout_session_id": order.checkout_session_id,
                "payment_intent_id": order.payment_intent_id,
                "confirmed_at": order.confirmed_at,
                "shipped_at": order.shipped_at,
                "delivered_at": order.delivered_at,
            }
        )
        if created:
            order.created_at = order_orm.created_at
        order.updated_at = order_orm.updated_at
        return order_orm.id

    def set_checkout_session(self, order_id: UUID, session_id: str) -> None:
        """Attach the provider checkout session to an order."""
        OrderORM.objects.filter(id=order_id).update(checkout_session_id=session_id)

    def _to_domain(self, order_orm: OrderORM) -> Order:
        """Convert ORM model to domain entity."""
        items = [OrderItem.from_dict(item) for item in order_orm.items]
        shipping = ShippingDetails(
            method=order_orm.shipping_method,
            carrier=order_orm.carrier,
            tracking_number=order_orm.tracking_number,
            tracking_url=order_orm.tracking_url,
            estimated_delivery=order_orm.estimated_delivery,
        )
        return Order(
            items,
            Decimal(order_orm.shipping_cost),
            id=order_orm.id,
            user_id=order_orm.user_id,
            customer_email=order_orm.customer_email,
            customer_name=order_orm.customer_name,
            customer_company=order_orm.customer_company,
            subtotal=Decimal(order_orm.subtotal),
            tax_amount=Decimal(order_orm.tax_amount),
            discount_amount=Decimal(order_orm.discount_amount),
            total_amount=Decimal(order_orm.total_amount),
            shipping=shipping,
            shipping_address=order_orm.shipping_address,
            status=OrderStatus(order_orm.status),
            payment_status=PaymentStatus(order_orm.payment_status),
            checkout_session_id=order_orm.checkout_session_id,
            payment_intent_id=order_orm.payment_intent_id,
            created_at=order_orm.created_at,
            updated_at=order_orm.updated_at,
            confirmed_at=order_orm.confirmed_at,
            shipped_at=order_orm.shipped_at,
            delivered_at=order_orm.delivered_at,
        )
