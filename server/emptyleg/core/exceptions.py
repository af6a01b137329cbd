"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Machine-readable problem code, when one was attached."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://pexjet.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://pexjet.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {"resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://pexjet.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://pexjet.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Business logic exceptions

class InsufficientSeatsError(ConflictError):
    """Raised when a booking asks for more seats than the deal has left."""

    def __init__(self, deal_id: str, requested_seats: int, available_seats: int):
        super().__init__(
            detail=(
                f"Deal {deal_id} has only {available_seats} seat(s) available; "
                f"{requested_seats} requested"
            ),
            conflicting_resource={
                "deal_id": deal_id,
                "requested_seats": requested_seats,
                "available_seats": available_seats,
            }
        )
        self.problem_details.update({
            "code": "INSUFFICIENT_SEATS",
            "retryable": False
        })


class InvalidTransitionError(ConflictError):
    """Raised when a booking or deal is asked to move to a state it cannot reach."""

    def __init__(self, resource_type: str, resource_id: str, current_status: str, target_status: str):
        super().__init__(
            detail=(
                f"Cannot move {resource_type} {resource_id} from {current_status} to {target_status}"
            )
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
            "current_status": current_status,
            "target_status": target_status,
        })


class PaymentDeadlinePassedError(ConflictError):
    """Raised when payment is confirmed after the booking's deadline."""

    def __init__(self, booking_id: str, payment_deadline: datetime):
        super().__init__(
            detail=f"Payment deadline for booking {booking_id} passed at {payment_deadline.isoformat()}Z"
        )
        self.problem_details.update({
            "code": "PAYMENT_DEADLINE_PASSED",
            "retryable": False,
            "payment_deadline": payment_deadline.isoformat() + "Z",
        })


class EvidenceRequiredError(ConflictError):
    """Raised when payment is confirmed before any receipt was attached."""

    def __init__(self, booking_id: str):
        super().__init__(
            detail=f"Booking {booking_id} has no payment evidence attached"
        )
        self.problem_details.update({
            "code": "EVIDENCE_REQUIRED",
            "retryable": False
        })


class DealNotBookableError(ConflictError):
    """Raised when a deal is not in a live state."""

    def __init__(self, deal_id: str, status: str):
        super().__init__(
            detail=f"Deal {deal_id} is not open for booking (status: {status})"
        )
        self.problem_details.update({
            "code": "DEAL_NOT_BOOKABLE",
            "retryable": False,
            "deal_status": status,
        })


class SyncInProgressError(ConflictError):
    """Raised to manual callers when another sync run is still fresh."""

    def __init__(self, run_id: Optional[str] = None):
        super().__init__(detail="Sync already in progress")
        self.problem_details.update({
            "code": "SYNC_IN_PROGRESS",
            "retryable": True
        })
        if run_id:
            self.problem_details["run_id"] = run_id


class AmbiguousContactError(ConflictError):
    """Raised when a contact maps to more than one APPROVED booking."""

    def __init__(self, contact: str, booking_references: list[str]):
        super().__init__(
            detail=(
                f"Contact {contact} has {len(booking_references)} approved bookings; "
                "evidence must be attached explicitly"
            )
        )
        self.booking_references = booking_references
        self.problem_details.update({
            "code": "AMBIGUOUS_CONTACT",
            "retryable": False,
            "booking_references": booking_references,
        })


class ContactNotMatchedError(NotFoundError):
    """Raised when no APPROVED booking exists for an inbound contact."""

    def __init__(self, contact: str):
        super().__init__(
            resource_type="booking",
            detail=f"No approved booking found for contact {contact}",
        )
        self.problem_details.update({
            "code": "CONTACT_NOT_MATCHED",
            "retryable": False
        })


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Convert unhandled exceptions to a Problem Details 500 response.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path}
    )

    problem_details = {
        "type": "https://pexjet.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
