"""
Stripe client and webhook signature verification.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import stripe
from django.conf import settings

from shop.domain.errors import AuthenticationError, PaymentProviderError, ValidationError

logger = logging.getLogger(__name__)


def construct_event(
    payload: bytes,
    signature_header: str,
    secret: str,
    tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
) -> dict:
    """
    Verify a webhook payload against its ``Stripe-Signature`` header and decode it.

    Raises AuthenticationError when the header is malformed, no signature
    matches, or the timestamp is older than ``tolerance`` seconds.
    """
    if not secret:
        logger.error("webhook_secret_not_configured")
        raise AuthenticationError("Invalid signature")

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.info("webhook_signature_mismatch", extra={"reason": str(e)})
        raise AuthenticationError("Invalid signature")
    except UnicodeDecodeError:
        raise ValidationError("Invalid JSON payload")

    # Handlers work on plain dicts, not on stripe.Event
    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError("Invalid JSON payload")
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise ValidationError("Invalid event payload")
    return event


class StripeClient:
    """Thin wrapper over ``stripe.StripeClient`` returning plain dicts."""

    def __init__(
        self,
        secret_key: str,
        api_base: str | None = None,
        timeout: float = 10.0,
        client: stripe.StripeClient | None = None,
    ):
        self.client = client or stripe.StripeClient(
            secret_key,
            base_addresses={"api": api_base} if api_base else None,
            http_client=stripe.RequestsClient(timeout=timeout),
        )

    @classmethod
    def from_settings(cls) -> "StripeClient":
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            api_base=settings.STRIPE_API_BASE,
            timeout=settings.STRIPE_TIMEOUT,
        )

    def create_checkout_session(self, params: Mapping[str, Any]) -> dict:
        """Create a hosted checkout session."""
        return self._call(
            "checkout.sessions.create",
            lambda: self.client.v1.checkout.sessions.create(params=dict(params)),
        )

    def retrieve_charge(self, charge_id: str) -> dict:
        return self._call("charges.retrieve", lambda: self.client.v1.charges.retrieve(charge_id))

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        return self._call(
            "payment_intents.retrieve",
            lambda: self.client.v1.payment_intents.retrieve(payment_intent_id),
        )

    def _call(self, operation: str, request) -> dict:
        try:
            result = request()
        except stripe.APIConnectionError as e:
            logger.error(
                "payment_provider_unreachable",
                extra={"operation": operation, "error": str(e)},
            )
            raise PaymentProviderError("Payment provider unavailable") from e
        except stripe.StripeError as e:
            logger.error(
                "payment_provider_error",
                extra={
                    "operation": operation,
                    "status": e.http_status,
                    "error": e.user_message or str(e),
                },
            )
            raise PaymentProviderError(
                f"Payment provider returned {e.http_status}: {type(e).__name__}"
            ) from e
        return result.to_dict()
