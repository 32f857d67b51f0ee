"""Fulfillment error taxonomy.

Errors subclass FastAPI's HTTPException so service functions can raise them
directly, as the other services do, while still carrying a machine-readable
``code`` and, for precondition failures, the transaction's current state so
clients can resync.
"""

from enum import Enum
from typing import Optional, Union

from fastapi import HTTPException, status


class FulfillmentError(HTTPException):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "FULFILLMENT_ERROR"
    default_detail = "Fulfillment request failed"

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        current_state: Union[Enum, str, None] = None,
    ) -> None:
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail,
        )
        if isinstance(current_state, Enum):
            current_state = current_state.value
        self.current_state = current_state

    def to_payload(self) -> dict:
        payload = {"detail": self.detail, "code": self.code}
        if self.current_state is not None:
            payload["current_state"] = self.current_state
        return payload


# ---------------------------------------------------------------------------
# Precondition violations (wrong current state)
# ---------------------------------------------------------------------------


class PreconditionViolation(FulfillmentError):
    status_code_default = status.HTTP_409_CONFLICT
    code = "PRECONDITION_VIOLATION"
    default_detail = "Transition not allowed from the current state"


class AlreadyCompleted(PreconditionViolation):
    code = "ALREADY_COMPLETED"
    default_detail = "Transaction is already completed"


class InvalidDeliveryState(PreconditionViolation):
    code = "INVALID_DELIVERY_STATE"
    default_detail = "Delivery is not in a state that allows this action"


# ---------------------------------------------------------------------------
# Authorization violations (actor not entitled)
# ---------------------------------------------------------------------------


class AuthorizationViolation(FulfillmentError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code = "AUTHORIZATION_VIOLATION"
    default_detail = "You are not allowed to act on this transaction"


class NotAssignedPersonnel(AuthorizationViolation):
    code = "NOT_ASSIGNED_PERSONNEL"
    default_detail = "You are not assigned to this delivery"


# ---------------------------------------------------------------------------
# Resource conflicts (lost a concurrent race)
# ---------------------------------------------------------------------------


class ResourceConflict(FulfillmentError):
    status_code_default = status.HTTP_409_CONFLICT
    code = "RESOURCE_CONFLICT"
    default_detail = "The resource was modified concurrently; refresh and retry"


class ListingNotAvailable(ResourceConflict):
    code = "LISTING_NOT_AVAILABLE"
    default_detail = "This item was just taken or is no longer available"


ListingUnavailable = ListingNotAvailable


class StaleDeliveryState(ResourceConflict):
    code = "STALE_DELIVERY_STATE"
    default_detail = "Delivery state changed; refresh and retry"


# ---------------------------------------------------------------------------
# Validation failures (malformed input)
# ---------------------------------------------------------------------------


class ValidationFailure(FulfillmentError):
    status_code_default = 422
    code = "VALIDATION_FAILURE"
    default_detail = "Invalid request"


class CodeMismatch(ValidationFailure):
    code = "CODE_MISMATCH"
    default_detail = "Invalid pickup code"


class InvalidDeliveryType(ValidationFailure):
    code = "INVALID_DELIVERY_TYPE"
    default_detail = "Unsupported delivery type"


class InvalidPrice(ValidationFailure):
    code = "INVALID_PRICE"
    default_detail = "Invalid price for this listing"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFound(FulfillmentError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_detail = "Resource not found"
