"""
Payment webhook dispatcher.

Verifies the provider signature, drops duplicate deliveries and routes each
event to exactly one handler. Once the signature is verified the provider
always gets a 200: errors raised while reacting to the event are logged and
returned inside the result, because redelivering would not fix them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction

from shop.domain.errors import AuthenticationError, NotFoundError, ShopError, ValidationError
from shop.domain.order import Order, OrderStatus
from shop.infra.event_store import OrderEventRepository
from shop.infra.models import ProcessedWebhookEvent
from shop.infra.payments import StripeClient, construct_event
from shop.infra.repositories import OrderRepository, ProductRepository

logger = logging.getLogger(__name__)

NO_ORDER_ID = {"message": "No orderId in metadata"}


@dataclass
class WebhookOutcome:
    """Result of handling one verified provider event."""
    event_id: str
    event_type: str
    result: dict = field(default_factory=dict)
    duplicate: bool = False

    def as_dict(self) -> dict:
        data = {
            "received": True,
            "eventId": self.event_id,
            "eventType": self.event_type,
            "result": self.result,
        }
        if self.duplicate:
            data["duplicate"] = True
        return data


def _metadata_order_id(obj: dict) -> str | None:
    metadata = obj.get("metadata") or {}
    order_id = metadata.get("orderId")
    return order_id or None


def _object_id(value) -> str | None:
    """Provider references are either an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


class WebhookDispatcher:
    """Routes verified payment events to the order lifecycle."""

    def __init__(
        self,
        payment_client: StripeClient,
        webhook_secret: str,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        event_repo: OrderEventRepository | None = None,
        tolerance: int | None = None,
    ):
        self.payment_client = payment_client
        self.webhook_secret = webhook_secret
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.event_repo = event_repo or OrderEventRepository()
        self.tolerance = settings.WEBHOOK_TOLERANCE_SECONDS if tolerance is None else tolerance
        self.handlers = {
            "checkout.session.completed": self._handle_checkout_completed,
            "payment_intent.succeeded": self._handle_payment_succeeded,
            "payment_intent.payment_failed": self._handle_payment_failed,
            "charge.dispute.created": self._handle_charge_dispute,
            "invoice.payment_succeeded": self._handle_invoice_payment_succeeded,
            "customer.subscription.created": self._handle_subscription_event,
            "customer.subscription.updated": self._handle_subscription_event,
            "customer.subscription.deleted": self._handle_subscription_event,
        }

    def verify(self, payload: bytes | None, signature: str | None) -> dict:
        """Authenticate the raw request. Nothing is written before this passes."""
        if not signature:
            raise AuthenticationError("Missing Stripe signature")
        if not payload:
            raise ValidationError("Missing request body")
        return construct_event(payload, signature, self.webhook_secret, tolerance=self.tolerance)

    def handle(self, payload: bytes | None, signature: str | None) -> WebhookOutcome:
        """Verify, deduplicate and dispatch one webhook delivery."""
        try:
            event = self.verify(payload, signature)
        except AuthenticationError as e:
            logger.warning("webhook_signature_rejected", extra={"error": e.message})
            raise

        event_id = event["id"]
        event_type = event["type"]
        logger.info("webhook_verified", extra={"event_id": event_id, "event_type": event_type})

        with transaction.atomic():
            existing = self._claim_event(event_id, event_type)
            if existing is not None:
                logger.info(
                    "webhook_duplicate",
                    extra={"event_id": event_id, "event_type": event_type},
                )
                return WebhookOutcome(event_id, event_type, existing.result or {}, duplicate=True)

            result = self._dispatch(event)
            ProcessedWebhookEvent.objects.filter(event_id=event_id).update(result=result)

        return WebhookOutcome(event_id, event_type, result)

    def _claim_event(self, event_id: str, event_type: str) -> ProcessedWebhookEvent | None:
        """Insert the event id, or return the row of an earlier delivery."""
        try:
            with transaction.atomic():
                ProcessedWebhookEvent.objects.create(event_id=event_id, event_type=event_type)
        except IntegrityError:
            return ProcessedWebhookEvent.objects.get(event_id=event_id)
        return None

    def _dispatch(self, event: dict) -> dict:
        event_type = event["type"]
        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("webhook_unhandled_type", extra={"event_type": event_type})
            return {"message": f"Event type {event_type} not handled"}

        obj = (event.get("data") or {}).get("object") or {}
        try:
            with transaction.atomic():
                return handler(event, obj)
        except NotFoundError as e:
            logger.warning(
                "webhook_target_not_found",
                extra={"event_id": event["id"], "error": e.message},
            )
            return {"success": False, "error": e.code, "message": e.message}
        except ShopError as e:
            logger.warning(
                "webhook_handler_rejected",
                extra={"event_id": event["id"], "event_type": event_type, "error": e.message},
            )
            return {"success": False, "error": e.code, "message": e.message}
        except Exception as e:
            logger.error(
                "webhook_handler_failed",
                extra={"event_id": event["id"], "event_type": event_type, "error": str(e)},
                exc_info=True,
            )
            return {"success": False, "error": "INTERNAL_ERROR", "message": "Internal error"}

    def _handle_checkout_completed(self, event: dict, session: dict) -> dict:
        """Payment collected through a hosted checkout session."""
        order_id = _metadata_order_id(session)
        if not order_id:
            logger.warning("webhook_missing_order_id", extra={"event_id": event["id"]})
            return dict(NO_ORDER_ID)
        return self._apply_payment(
            event,
            order_id,
            OrderStatus.CONFIRMED,
            _object_id(session.get("payment_intent")),
        )

    def _handle_payment_succeeded(self, event: dict, payment_intent: dict) -> dict:
        order_id = _metadata_order_id(payment_intent)
        if not order_id:
            logger.warning("webhook_missing_order_id", extra={"event_id": event["id"]})
            return dict(NO_ORDER_ID)
        return self._apply_payment(event, order_id, OrderStatus.PROCESSING, payment_intent.get("id"))

    def _handle_payment_failed(self, event: dict, payment_intent: dict) -> dict:
        order_id = _metadata_order_id(payment_intent)
        if not order_id:
            logger.warning("webhook_missing_order_id", extra={"event_id": event["id"]})
            return dict(NO_ORDER_ID)

        order = self._load_order(order_id)
        error = payment_intent.get("last_payment_error") or {}
        change = order.mark_payment_failed(payment_intent.get("id"), source=self._source(event))
        self._persist(order, change)
        logger.info(
            "order_payment_failed",
            extra={"order_id": order_id, "error": error.get("message")},
        )
        return self._result(order)

    def _handle_charge_dispute(self, event: dict, dispute: dict) -> dict:
        """Resolve dispute -> charge -> payment intent -> order."""
        charge_id = _object_id(dispute.get("charge"))
        if not charge_id:
            return {"message": "No charge for dispute"}
        charge = self.payment_client.retrieve_charge(charge_id)
        payment_intent_id = _object_id(charge.get("payment_intent"))
        if not payment_intent_id:
            logger.warning("dispute_without_payment_intent", extra={"event_id": event["id"]})
            return {"message": "No payment intent for dispute"}

        payment_intent = self.payment_client.retrieve_payment_intent(payment_intent_id)
        order_id = _metadata_order_id(payment_intent)
        if not order_id:
            logger.warning("webhook_missing_order_id", extra={"event_id": event["id"]})
            return dict(NO_ORDER_ID)

        order = self._load_order(order_id)
        change = order.mark_disputed(payment_intent_id, source=self._source(event))
        self._persist(order, change)
        logger.warning(
            "order_disputed",
            extra={"order_id": order_id, "reason": dispute.get("reason")},
        )
        return self._result(order)

    def _handle_invoice_payment_succeeded(self, event: dict, invoice: dict) -> dict:
        logger.info("invoice_payment_succeeded", extra={"event_id": event["id"]})
        return {"message": "Invoice payment processed"}

    def _handle_subscription_event(self, event: dict, subscription: dict) -> dict:
        logger.info("subscription_event", extra={"event_id": event["id"], "event_type": event["type"]})
        return {"message": f"Subscription event {event['type']} processed"}

    def _apply_payment(
        self,
        event: dict,
        order_id: str,
        target: OrderStatus,
        payment_intent_id: str | None,
    ) -> dict:
        order = self._load_order(order_id)
        change = order.mark_paid(target, payment_intent_id, source=self._source(event))
        self._persist(order, change)

        result = self._result(order)
        if change.newly_paid:
            updated, failed = self._decrement_stock(order)
            result["stockUpdated"] = updated
            result["stockErrors"] = failed
        return result

    def _decrement_stock(self, order: Order) -> tuple[list[str], list[str]]:
        """Decrement stock item by item; one failing item does not undo the others."""
        updated, failed = [], []
        for item in order.items:
            try:
                with transaction.atomic():
                    found = self.product_repo.decrement_stock(item.product_id, item.quantity)
            except DatabaseError as e:
                logger.error(
                    "stock_decrement_failed",
                    extra={"order_id": str(order.id), "product_id": item.product_id, "error": str(e)},
                )
                failed.append(item.product_id)
                continue
            if not found:
                logger.warning(
                    "stock_product_not_found",
                    extra={"order_id": str(order.id), "product_id": item.product_id},
                )
                failed.append(item.product_id)
                continue
            updated.append(item.product_id)
        return updated, failed

    def _load_order(self, order_id: str) -> Order:
        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def _persist(self, order: Order, change) -> None:
        self.order_repo.save(order)
        self.event_repo.save_event(change)
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order.id),
                "status": f"{change.from_status}->{change.to_status}",
                "payment_status": change.payment_status,
                "source": change.source,
            },
        )

    @staticmethod
    def _source(event: dict) -> str:
        return f"webhook:{event['type']}:{event['id']}"

    @staticmethod
    def _result(order: Order) -> dict:
        return {
            "success": True,
            "orderId": str(order.id),
            "newStatus": order.status.value,
            "paymentStatus": order.payment_status.value,
            "message": "Order status updated successfully",
        }
