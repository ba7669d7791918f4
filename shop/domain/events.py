"""
Domain events for the order timeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4


class EventVersion(str, Enum):
    """Event version for upcasting."""
    V1 = "1.0"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent:
    """Base domain event."""
    aggregate_id: UUID
    event_type: str
    # version, source and occurred_at are set in subclasses to avoid dataclass field ordering issues


@dataclass
class OrderCreated(DomainEvent):
    """Order created by the checkout step."""
    user_id: str
    total_amount: Decimal
    items_count: int
    status: str = "PENDING"
    payment_status: str = "PENDING"
    source: str = "checkout"
    version: EventVersion = EventVersion.V1
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)


@dataclass
class OrderStatusChanged(DomainEvent):
    """Order status or payment status changed."""
    from_status: str
    to_status: str
    payment_status: str
    previous_payment_status: str
    source: str = ""
    version: EventVersion = EventVersion.V1
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def newly_paid(self) -> bool:
        """Whether this change moved the payment status into PAID."""
        return self.payment_status == "PAID" and self.previous_payment_status != "PAID"
