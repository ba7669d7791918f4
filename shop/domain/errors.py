"""
Domain error taxonomy.

Every error carries a machine readable ``code``; the API boundary
(``shop.api.middleware.ErrorHandler``) maps codes to HTTP status.
"""


class ShopError(Exception):
    """Base error for the order core."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(ShopError):
    """Bad client input. The message names the offending field."""

    code = "VALIDATION_ERROR"


class AuthenticationError(ShopError):
    """Missing or invalid webhook signature."""

    code = "AUTHENTICATION_ERROR"


class NotFoundError(ShopError):
    """Referenced order or product does not exist."""

    code = "NOT_FOUND"


class InsufficientStockError(ShopError):
    """Requested quantity exceeds the current stock."""

    code = "OUT_OF_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidTransitionError(ShopError):
    """Order status transition not allowed by the lifecycle."""

    code = "INVALID_STATE"

    def __init__(self, order_id, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")


class PermissionDeniedError(ShopError):
    """Caller lacks the group required for an admin operation."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Acceso Denegado"):
        super().__init__(message)


class PaymentProviderError(ShopError):
    """The payment provider API failed or returned an error."""

    code = "PAYMENT_PROVIDER_ERROR"
