"""
Application services for order reads and back-office fulfilment.
"""
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction

from shop.domain.errors import NotFoundError, ValidationError
from shop.domain.order import Order, OrderStatus
from shop.infra.event_store import OrderEventRepository
from shop.infra.repositories import OrderRepository, ProductRepository

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class OrderService:
    """Service for order operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        event_repo: OrderEventRepository | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.event_repo = event_repo or OrderEventRepository()

    def get_order(self, order_id: UUID | str) -> Order:
        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def get_orders_by_user(self, user_id: str, limit: int = 20, offset: int = 0) -> list[Order]:
        """Orders of a user, newest first."""
        if not user_id:
            raise ValidationError("userId is required")
        if limit < 1 or offset < 0:
            raise ValidationError("Invalid pagination")
        return self.order_repo.get_by_user(user_id, limit=min(limit, MAX_PAGE_SIZE), offset=offset)

    def get_timeline(self, order_id: UUID) -> list[dict]:
        return self.event_repo.get_events(order_id)

    @transaction.atomic
    def advance_order(
        self,
        order_id: UUID | str,
        status: str,
        tracking_number: str | None = None,
        source: str = "admin",
    ) -> Order:
        """
        Move an order through fulfilment on behalf of a back-office user.

        Only the fulfilment events are reachable from here; payment states
        are driven by the provider webhooks.
        """
        try:
            target = OrderStatus(status)
        except ValueError:
            raise ValidationError("Invalid order status")

        order = self.get_order(order_id)
        if target == OrderStatus.PROCESSING:
            change = order.mark_processing(source=source)
        elif target == OrderStatus.SHIPPED:
            change = order.mark_shipped(tracking_number, source=source)
        elif target == OrderStatus.DELIVERED:
            change = order.mark_delivered(source=source)
        elif target == OrderStatus.CANCELLED:
            change = order.cancel(source=source)
        elif target == OrderStatus.REFUNDED:
            change = order.mark_refunded(source=source)
        else:
            raise ValidationError(f"Status {target.value} cannot be set manually")

        self.order_repo.save(order)
        self.event_repo.save_event(change)
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order.id),
                "status": f"{change.from_status}->{change.to_status}",
                "source": source,
            },
        )
        return order


class ProductService:
    """Read access to the catalog."""

    def __init__(self, product_repo: ProductRepository | None = None):
        self.product_repo = product_repo or ProductRepository()

    def get_product(self, product_id: str):
        product = self.product_repo.get_by_id(product_id)
        if product is None or not product.is_active:
            raise NotFoundError(f"Product {product_id} not found")
        return product
