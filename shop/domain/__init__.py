from shop.domain.order import Order, OrderItem, OrderStatus, PaymentStatus
from shop.domain.shipping import ShippingQuote, ShippingRequest, compute_shipping_options

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "ShippingQuote",
    "ShippingRequest",
    "compute_shipping_options",
]
