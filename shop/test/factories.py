"""
Test helpers: catalog fixtures, a fake payment provider and signed webhooks.
"""
import json
from decimal import Decimal
from itertools import count

import stripe

from shop.domain.errors import PaymentProviderError
from shop.infra.models import ProductORM

WEBHOOK_SECRET = "whsec_test_secret"

_sequence = count(1)


def make_product(**overrides) -> ProductORM:
    n = next(_sequence)
    data = {
        "id": f"prod-{n}",
        "sku": f"SKU-{n}",
        "name": f"Guante nitrilo {n}",
        "price": Decimal("12.10"),
        "stock": 10,
        "weight": Decimal("0.500"),
    }
    data.update(overrides)
    return ProductORM.objects.create(**data)


class FakePaymentClient:
    """In-memory stand-in for StripeClient."""

    def __init__(self, charges=None, payment_intents=None, fail=False):
        self.sessions = []
        self.charges = charges or {}
        self.payment_intents = payment_intents or {}
        self.fail = fail

    def create_checkout_session(self, params):
        if self.fail:
            raise PaymentProviderError("Payment provider returned 500: api_error")
        self.sessions.append(params)
        session_id = f"cs_test_{len(self.sessions)}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def retrieve_charge(self, charge_id):
        if charge_id not in self.charges:
            raise PaymentProviderError("Payment provider returned 404: invalid_request_error")
        return self.charges[charge_id]

    def retrieve_payment_intent(self, payment_intent_id):
        if payment_intent_id not in self.payment_intents:
            raise PaymentProviderError("Payment provider returned 404: invalid_request_error")
        return self.payment_intents[payment_intent_id]


def provider_event(event_type, obj, event_id=None) -> dict:
    return {
        "id": event_id or f"evt_{next(_sequence)}",
        "type": event_type,
        "data": {"object": obj},
    }


def signed_payload(event: dict, secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
    """Serialize an event and build its ``Stripe-Signature`` header."""
    body = json.dumps(event)
    header = stripe.WebhookSignature.generate_signature_header(body, secret, timestamp=timestamp)
    return body.encode("utf-8"), header
