"""
HTTP views: shipping quote, checkout session, payment webhook and GraphQL.
"""
import hashlib
import json
import logging
from uuid import uuid4

from ariadne import graphql_sync
from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from shop.api.middleware import ErrorHandler
from shop.api.schema import format_error, schema
from shop.domain.errors import ValidationError
from shop.domain.order import GUEST_USER_ID
from shop.domain.shipping import ShippingRequest, compute_shipping_options
from shop.infra.models import IdempotencyKey
from shop.infra.payments import StripeClient
from shop.infra.pii_masker import mask_pii_in_dict
from shop.services.checkout import CheckoutRequest, CheckoutService
from shop.services.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)

CHECKOUT_OPERATION = "CREATE_CHECKOUT_SESSION"


def get_payment_client() -> StripeClient:
    """Payment provider client for the current settings."""
    return StripeClient.from_settings()


def _request_id(request) -> str:
    return request.headers.get("X-Request-ID") or str(uuid4())


def _read_json(request):
    try:
        return json.loads(request.body or b"null")
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Invalid JSON")


def _request_hash(payload) -> str:
    """Hash of the request body for idempotency checks."""
    content = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest()


@csrf_exempt
@require_http_methods(["POST"])
def shipping_quote_view(request):
    """Price every shipping method (or the requested one) for a package."""
    request_id = _request_id(request)
    try:
        shipping_request = ShippingRequest.from_payload(_read_json(request))
        quote = compute_shipping_options(shipping_request)
    except Exception as e:
        return ErrorHandler.handle_error(e, request_id, success=False)

    logger.info(
        "shipping_quote_served",
        extra={
            "request_id": request_id,
            "country": shipping_request.destination.country,
            "options": len(quote.options),
        },
    )
    return JsonResponse(quote.as_dict())


class CheckoutSessionView:
    """Checkout session creation with optional Idempotency-Key support."""

    def dispatch(self, request):
        request_id = _request_id(request)
        idempotency_key = request.headers.get("Idempotency-Key")

        try:
            payload = _read_json(request)
            checkout_request = CheckoutRequest.from_payload(payload)
        except Exception as e:
            return ErrorHandler.handle_error(e, request_id)

        user_id = request.headers.get("X-User-ID") or checkout_request.user_id or GUEST_USER_ID
        logger.info(
            "checkout_request",
            extra=mask_pii_in_dict({
                "request_id": request_id,
                "user_id": user_id,
                "customer_email": checkout_request.customer_email,
                "items_count": len(checkout_request.items),
                "idempotency_key": idempotency_key[:8] + "..." if idempotency_key else None,
            }),
        )

        request_hash = None
        if idempotency_key:
            request_hash = _request_hash(payload)
            existing = IdempotencyKey.objects.filter(
                key=idempotency_key,
                user_id=user_id,
                operation=CHECKOUT_OPERATION,
            ).first()
            if existing:
                if existing.request_hash == request_hash:
                    logger.info(
                        "idempotent_request_cached",
                        extra={"request_id": request_id, "operation": CHECKOUT_OPERATION},
                    )
                    return JsonResponse(existing.response_payload)
                logger.warning(
                    "idempotency_key_conflict",
                    extra={"request_id": request_id, "operation": CHECKOUT_OPERATION},
                )
                return ErrorHandler.duplicate_request()

        try:
            service = CheckoutService(payment_client=get_payment_client())
            result = service.create_checkout_session(
                checkout_request,
                origin=request.headers.get("Origin"),
            )
        except Exception as e:
            return ErrorHandler.handle_error(e, request_id)

        if idempotency_key:
            self._store_response(idempotency_key, user_id, request_hash, result, request_id)

        logger.info(
            "checkout_response",
            extra={"request_id": request_id, "order_id": result["orderId"], "status": 200},
        )
        return JsonResponse(result)

    def _store_response(self, key, user_id, request_hash, result, request_id):
        try:
            with transaction.atomic():
                IdempotencyKey.objects.create(
                    key=key,
                    user_id=user_id,
                    operation=CHECKOUT_OPERATION,
                    request_hash=request_hash,
                    response_payload=result,
                )
        except IntegrityError as e:
            # A concurrent request with the same key stored its response first
            logger.warning(
                "failed_to_save_idempotency",
                extra={"request_id": request_id, "error": str(e)},
            )


@csrf_exempt
@require_http_methods(["POST"])
def checkout_session_view(request):
    """Create an order and its hosted checkout session."""
    return CheckoutSessionView().dispatch(request)


@csrf_exempt
@require_http_methods(["POST"])
def stripe_webhook_view(request):
    """Payment provider webhook endpoint."""
    request_id = _request_id(request)
    # request.headers is case-insensitive
    signature = request.headers.get("Stripe-Signature")
    logger.info(
        "webhook_received",
        extra={"request_id": request_id, "has_signature": bool(signature)},
    )

    dispatcher = WebhookDispatcher(
        payment_client=get_payment_client(),
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
    try:
        outcome = dispatcher.handle(request.body, signature)
    except Exception as e:
        return ErrorHandler.handle_error(e, request_id)

    logger.info(
        "webhook_processed",
        extra={
            "request_id": request_id,
            "event_id": outcome.event_id,
            "event_type": outcome.event_type,
            "duplicate": outcome.duplicate,
        },
    )
    return JsonResponse(outcome.as_dict())


class ShopGraphQLView:
    """GraphQL view with structured logging."""

    def dispatch(self, request):
        request_id = _request_id(request)
        user_id = request.headers.get("X-User-ID")
        logger.info(
            "graphql_request",
            extra=mask_pii_in_dict({
                "request_id": request_id,
                "user_id": user_id,
                "operation": "graphql",
            }),
        )

        if request.method == "GET":
            return JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})

        try:
            data = _read_json(request)
        except ValidationError as e:
            return ErrorHandler.handle_error(e, request_id)

        success, result = graphql_sync(
            schema,
            data,
            context_value={"request": request, "request_id": request_id, "user_id": user_id},
            error_formatter=format_error,
            debug=settings.DEBUG,
        )
        status_code = 200 if success else 400
        logger.info(
            "graphql_response",
            extra={"request_id": request_id, "status": status_code},
        )
        return JsonResponse(result, status=status_code)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def graphql_view(request):
    """GraphQL endpoint."""
    return ShopGraphQLView().dispatch(request)
