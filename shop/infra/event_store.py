"""
Order timeline store: every creation and status change of an order.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from django.db import transaction

from shop.domain.events import DomainEvent, OrderCreated, OrderStatusChanged
from shop.infra.models import OrderEventORM

logger = logging.getLogger(__name__)


class OrderEventRepository:
    """Repository for the order timeline."""

    @transaction.atomic
    def save_event(self, event: DomainEvent) -> None:
        """Append a domain event to the order's timeline."""
        last_event = (
            OrderEventORM.objects
            .select_for_update()
            .filter(order_id=event.aggregate_id)
            .order_by("-sequence_number")
            .first()
        )
        sequence_number = (last_event.sequence_number + 1) if last_event else 1

        if isinstance(event, OrderCreated):
            from_status, to_status, payment_status = "", event.status, event.payment_status
        elif isinstance(event, OrderStatusChanged):
            from_status, to_status, payment_status = (
                event.from_status,
                event.to_status,
                event.payment_status,
            )
        else:
            raise TypeError(f"Unsupported order event: {event.event_type}")

        OrderEventORM.objects.create(
            order_id=event.aggregate_id,
            sequence_number=sequence_number,
            event_type=event.event_type,
            from_status=from_status,
            to_status=to_status,
            payment_status=payment_status,
            source=event.source,
            event_data=self._serialize_event(event),
        )

    def get_events(self, order_id: UUID) -> list[dict]:
        """Get the timeline of an order, oldest first."""
        events = OrderEventORM.objects.filter(order_id=order_id).order_by("sequence_number")
        return [self._deserialize_event(e) for e in events]

    def _serialize_event(self, event: DomainEvent) -> dict:
        """Serialize event to dict."""
        data = {
            "event_id": str(event.event_id),
            "aggregate_id": str(event.aggregate_id),
            "event_type": event.event_type,
            "version": event.version.value,
            "occurred_at": event.occurred_at.isoformat(),
        }
        for key, value in event.__dict__.items():
            if key in data or key == "version":
                continue
            if isinstance(value, (UUID, Decimal)):
                data[key] = str(value)
            else:
                data[key] = value
        return data

    def _deserialize_event(self, event_orm: OrderEventORM) -> dict:
        """Deserialize event from store."""
        return {
            "id": str(event_orm.id),
            "sequence_number": event_orm.sequence_number,
            "event_type": event_orm.event_type,
            "from_status": event_orm.from_status or None,
            "to_status": event_orm.to_status,
            "payment_status": event_orm.payment_status,
            "source": event_orm.source,
            "data": event_orm.event_data,
            "occurred_at": event_orm.created_at.isoformat(),
        }
