"""
Domain-specific exceptions for the Bookflow engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Discount problems are deliberately absent: promo and gift card
validation report failures as structured results instead.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised for malformed identifiers, times or party sizes."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class AvailabilityConflictException(ConflictException):
    """Raised when the chosen slot is no longer free at commit time."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available",
            code="SLOT_UNAVAILABLE",
            details=details or {},
        )


class InvalidStatusTransitionException(ValidationException):
    """Raised when a reservation is moved along an edge the lifecycle forbids."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot move reservation from {current} to {requested}",
            code="INVALID_STATUS_TRANSITION",
            details={"current_status": current, "requested_status": requested},
        )


class PaymentGatewayException(ServiceException):
    """
    Raised when the payment provider rejects or fails a request.

    The reservation that triggered the call is left untouched so the
    caller can retry payment against it.
    """

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        reservation_id: Optional[str] = None,
        provider_code: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if reservation_id:
            details["reservation_id"] = reservation_id
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message=message, code="PAYMENT_GATEWAY_ERROR", details=details)
        self.reservation_id = reservation_id


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class UniqueViolationException(RepositoryException):
    """Raised when an insert collides with a uniqueness or exclusion constraint."""
