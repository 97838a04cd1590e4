"""Error taxonomy for the quote, checkout, and reconciliation flows."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping

from fastapi import Request, status
from fastapi.responses import JSONResponse


@dataclass(eq=False)
class PaymentError(Exception):
    """Base class for payment errors surfaced to API callers."""

    message: str
    detail: Mapping[str, Any] = field(default_factory=dict)

    code: ClassVar[str] = "payment_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def payload(self) -> Dict[str, Any]:
        """Serialized representation suitable for JSON responses."""

        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.retryable:
            body["retryable"] = True
        if self.detail:
            body.update(self.detail)
        return body


class Unauthorized(PaymentError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(PaymentError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(PaymentError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(PaymentError):
    code = "invalid_state"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidSignature(PaymentError):
    code = "invalid_signature"
    status_code = status.HTTP_400_BAD_REQUEST


class PaymentNotCompleted(PaymentError):
    code = "payment_not_completed"
    status_code = status.HTTP_400_BAD_REQUEST


class ProviderError(PaymentError):
    """Transient failure talking to the payment provider."""

    code = "provider_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True


class StorageError(PaymentError):
    """Transient failure talking to the database."""

    code = "storage_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True


async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    """Render a :class:`PaymentError` as ``{"error": ...}`` with its status code."""

    return JSONResponse(status_code=exc.status_code, content=exc.payload)


__all__ = [
    "Forbidden",
    "InvalidSignature",
    "InvalidState",
    "NotFound",
    "PaymentError",
    "PaymentNotCompleted",
    "ProviderError",
    "StorageError",
    "Unauthorized",
    "payment_error_handler",
]
