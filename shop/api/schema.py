"""
GraphQL schema definition using Ariadne.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from ariadne import (
    MutationType,
    ObjectType,
    QueryType,
    ScalarType,
    format_error as default_format_error,
    load_schema_from_path,
    make_executable_schema,
    unwrap_graphql_error,
)

from shop.api.middleware import ErrorHandler
from shop.domain.errors import NotFoundError, PermissionDeniedError, ShopError
from shop.domain.order import GUEST_USER_ID
from shop.domain.shipping import ShippingRequest, compute_shipping_options
from shop.services.orders import OrderService, ProductService

logger = logging.getLogger(__name__)

ADMIN_GROUP = "ADMIN"

# Load schema from .graphql files
SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common.graphql"),
    load_schema_from_path(SCHEMAS_DIR / "query.graphql"),
    load_schema_from_path(SCHEMAS_DIR / "mutation.graphql"),
])

query = QueryType()
mutation = MutationType()
order_type = ObjectType("Order")
order_item_type = ObjectType("OrderItem")
product_type = ObjectType("Product")


def caller_groups(info) -> set[str]:
    """Groups asserted by the authenticating gateway in ``X-User-Groups``."""
    request = info.context["request"]
    header = request.headers.get("X-User-Groups", "")
    return {group.strip() for group in header.split(",") if group.strip()}


def require_admin(info) -> None:
    if ADMIN_GROUP not in caller_groups(info):
        logger.warning(
            "admin_access_denied",
            extra={"request_id": info.context.get("request_id"), "operation": info.field_name},
        )
        raise PermissionDeniedError()


def caller_id(info) -> str | None:
    """User id asserted by the gateway in ``X-User-ID``."""
    user_id = info.context.get("user_id") or info.context["request"].headers.get("X-User-ID")
    return (user_id or "").strip() or None


def require_owner_or_admin(info, owner_id: str) -> None:
    """Order data is readable by its owner and by admins only. Guest orders have no owner."""
    if ADMIN_GROUP in caller_groups(info):
        return
    user_id = caller_id(info)
    if user_id and user_id != GUEST_USER_ID and user_id == owner_id:
        return
    logger.warning(
        "order_access_denied",
        extra={"request_id": info.context.get("request_id"), "operation": info.field_name},
    )
    raise PermissionDeniedError()


@query.field("order")
def resolve_order(_, info, id):
    """Resolve order query."""
    try:
        order = OrderService().get_order(id)
    except NotFoundError:
        return None
    require_owner_or_admin(info, order.owner)
    return order


@query.field("ordersByUser")
def resolve_orders_by_user(_, info, userId, limit=20, offset=0):
    """Resolve orders of a user, newest first."""
    require_owner_or_admin(info, userId)
    return OrderService().get_orders_by_user(userId, limit=limit, offset=offset)


@query.field("product")
def resolve_product(_, info, id):
    try:
        return ProductService().get_product(id)
    except NotFoundError:
        return None


@query.field("shippingOptions")
def resolve_shipping_options(_, info, input: dict):
    """Resolve a shipping quote; same rules as the REST endpoint."""
    return compute_shipping_options(ShippingRequest.from_payload(input)).as_dict()


@mutation.field("advanceOrder")
def resolve_advance_order(_, info, orderId, status, trackingNumber=None):
    """Back-office fulfilment step. Requires the admin group."""
    require_admin(info)
    return OrderService().advance_order(orderId, status, trackingNumber)


def _attr(name):
    def resolver(obj, info, **kwargs):
        return getattr(obj, name)
    return resolver


def _shipping_attr(name):
    def resolver(order, info, **kwargs):
        return getattr(order.shipping, name) if order.shipping else None
    return resolver


for field_name, attr in {
    "userId": "user_id",
    "customerEmail": "customer_email",
    "customerName": "customer_name",
    "customerCompany": "customer_company",
    "shippingCost": "shipping_cost",
    "taxAmount": "tax_amount",
    "discountAmount": "discount_amount",
    "totalAmount": "total_amount",
    "shippingAddress": "shipping_address",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "confirmedAt": "confirmed_at",
    "shippedAt": "shipped_at",
    "deliveredAt": "delivered_at",
}.items():
    order_type.set_field(field_name, _attr(attr))

for field_name, attr in {
    "shippingMethod": "method",
    "carrier": "carrier",
    "trackingNumber": "tracking_number",
    "trackingUrl": "tracking_url",
    "estimatedDelivery": "estimated_delivery",
}.items():
    order_type.set_field(field_name, _shipping_attr(attr))


@order_type.field("id")
def resolve_order_id(order, info):
    return str(order.id)


@order_type.field("status")
def resolve_order_status(order, info):
    return order.status.value


@order_type.field("paymentStatus")
def resolve_order_payment_status(order, info):
    return order.payment_status.value


@order_type.field("timeline")
def resolve_order_timeline(order, info):
    """Status history of the order, oldest first."""
    return [
        {
            "sequenceNumber": event["sequence_number"],
            "eventType": event["event_type"],
            "fromStatus": event["from_status"],
            "toStatus": event["to_status"],
            "paymentStatus": event["payment_status"],
            "source": event["source"],
            "occurredAt": event["occurred_at"],
        }
        for event in OrderService().get_timeline(order.id)
    ]


order_item_type.set_field("productId", _attr("product_id"))
order_item_type.set_field("price", _attr("unit_price"))
product_type.set_field("isActive", _attr("is_active"))


# Define custom scalars
decimal_scalar = ScalarType("Decimal")
datetime_scalar = ScalarType("DateTime")
date_scalar = ScalarType("Date")
json_scalar = ScalarType("JSON")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    return Decimal(str(value))


@datetime_scalar.serializer
def serialize_datetime(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@date_scalar.serializer
def serialize_date(value):
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@json_scalar.serializer
def serialize_json(value):
    return value


def format_error(error, debug: bool = False) -> dict:
    """
    Format GraphQL errors with the shop error code in ``extensions``.

    Unexpected exceptions keep only a generic message.
    """
    formatted = default_format_error(error, debug)
    original = unwrap_graphql_error(error)
    if isinstance(original, ShopError):
        formatted["message"] = ErrorHandler.public_message(original)
        formatted.setdefault("extensions", {})["code"] = original.code
    elif isinstance(original, Exception) and original is not error:
        logger.error(
            "graphql_resolver_failed",
            extra={"error_type": type(original).__name__, "error": str(original)},
        )
        if not debug:
            formatted["message"] = ErrorHandler.public_message(original)
        formatted.setdefault("extensions", {})["code"] = "INTERNAL_ERROR"
    return formatted


schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    order_type,
    order_item_type,
    product_type,
    decimal_scalar,
    datetime_scalar,
    date_scalar,
    json_scalar,
)
