"""
Error mapping for API responses.
"""
import logging

from django.http import JsonResponse

from shop.domain.errors import ShopError

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "An internal error occurred"


class ErrorHandler:
    """Maps shop errors to HTTP responses."""

    ERROR_CODES = {
        "VALIDATION_ERROR": 400,
        "AUTHENTICATION_ERROR": 400,
        "NOT_FOUND": 404,
        "OUT_OF_STOCK": 400,
        "INVALID_STATE": 400,
        "FORBIDDEN": 403,
        "DUPLICATE_REQUEST": 409,
        "PAYMENT_PROVIDER_ERROR": 500,
        "INTERNAL_ERROR": 500,
    }

    @classmethod
    def status_for(cls, error: Exception) -> int:
        if isinstance(error, ShopError):
            return cls.ERROR_CODES.get(error.code, 400)
        return 500

    @classmethod
    def public_message(cls, error: Exception) -> str:
        """Client-facing message. Server-side failures never leak detail."""
        if isinstance(error, ShopError) and cls.status_for(error) < 500:
            return error.message
        return GENERIC_MESSAGE

    @classmethod
    def handle_error(cls, error: Exception, request_id: str | None = None, **body) -> JsonResponse:
        """Handle error and return JSON response."""
        status_code = cls.status_for(error)
        code = error.code if isinstance(error, ShopError) else "INTERNAL_ERROR"

        if status_code >= 500:
            logger.error(
                "unexpected_error" if code == "INTERNAL_ERROR" else "request_failed",
                extra={
                    "request_id": request_id,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
                exc_info=code == "INTERNAL_ERROR",
            )
        else:
            logger.warning(
                "request_rejected",
                extra={"request_id": request_id, "error": code},
            )

        return JsonResponse(
            {**body, "error": cls.public_message(error), "code": code},
            status=status_code,
        )

    @classmethod
    def duplicate_request(cls) -> JsonResponse:
        return JsonResponse(
            {
                "error": "Idempotency key already used with different request",
                "code": "DUPLICATE_REQUEST",
            },
            status=cls.ERROR_CODES["DUPLICATE_REQUEST"],
        )
