"""Domain exceptions.

All domain-level errors that represent business rule violations.
These exceptions are raised by entities and state machines when
invariants are violated or invalid operations are attempted.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Order Errors
# ============================================================================


class OrderOwnershipError(DomainError):
    """Raised when an order does not have exactly one owner.

    An order belongs either to a registered user or to a guest email,
    never both and never neither.
    """

    def __init__(self, user_id: str | None, guest_email: str | None) -> None:
        super().__init__(
            "Order must have exactly one of user_id or guest_email",
            details={
                "has_user_id": user_id is not None,
                "has_guest_email": guest_email is not None,
            },
        )


# ============================================================================
# External Service Errors
# ============================================================================


class PaymentProviderError(DomainError):
    """Raised when the payment provider rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class StoreError(DomainError):
    """Raised when the backing data store fails an operation."""

    pass
