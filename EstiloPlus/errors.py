# errors.py
"""
Error taxonomy for EstiloPlus.

Every error is an `HTTPException` carrying its own status code, so service
functions can raise them directly and routers let them propagate.
`server.py` renders them as `{"error": <message>}`.
"""

from typing import Optional

from fastapi import HTTPException, status


class TryOnError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "error"
    default_message = "Internal server error."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(
            status_code=status_code or self.status_code,
            detail=message or self.default_message,
        )

    @property
    def message(self) -> str:
        return self.detail

    def to_dict(self) -> dict:
        return {"error": self.detail, "code": self.code}


class Unauthenticated(TryOnError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Authentication token not provided or invalid."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.headers = {"WWW-Authenticate": "Bearer"}


class Unauthorized(TryOnError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"
    default_message = "Access not authorized."


class NotFound(TryOnError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found."


class AccountNotFound(NotFound):
    default_message = "User not found."


class ProductNotFound(NotFound):
    default_message = "Product not found."


class StoreNotFound(NotFound):
    default_message = "Store not found."


class PackageNotFound(NotFound):
    default_message = "Credit package not found."


class PromptNotFound(NotFound):
    default_message = "Prompt not found."


class InsufficientCredits(TryOnError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "insufficient_credits"
    default_message = "Insufficient credits. Buy more credits to continue."

    def __init__(self, required: int = 1, current: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message)
        self.required = required
        self.current = current

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["required"] = self.required
        if self.current is not None:
            body["current"] = self.current
        return body


class InvalidInput(TryOnError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"
    default_message = "Invalid input."


class UpstreamFailure(TryOnError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_failure"
    default_message = "External service failed."

    @classmethod
    def not_configured(cls, service: str) -> "UpstreamFailure":
        return cls(f"{service} is not configured.", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class CompositionFailed(UpstreamFailure):
    default_message = "Failed to generate image."


class StorageFailed(UpstreamFailure):
    default_message = "Failed to store image."


class PaymentProviderError(UpstreamFailure):
    default_message = "Payment provider error."
