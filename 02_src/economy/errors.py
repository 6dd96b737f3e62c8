"""Domain exceptions for the agent economy."""

from typing import Any, Iterable


class EconomyError(Exception):
    """Base class for agent economy errors."""

    def __init__(self, message: str, code: str, details: Any | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class NotFoundError(EconomyError):
    """Raised when a payment or agent id is unknown."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(
            message=f"{kind.capitalize()} {entity_id} not found",
            code="NOT_FOUND",
            details={"kind": kind, "id": entity_id},
        )


class InvalidTransitionError(EconomyError):
    """Raised when a payment status change is not allowed by the state machine."""

    def __init__(
        self,
        payment_id: str,
        current: str,
        requested: str,
        allowed: Iterable[str],
    ):
        self.payment_id = payment_id
        self.current = current
        self.requested = requested
        self.allowed = sorted(str(getattr(s, "value", s)) for s in allowed)
        current_value = getattr(current, "value", current)
        requested_value = getattr(requested, "value", requested)
        allowed_text = ", ".join(self.allowed) if self.allowed else "none (terminal)"
        super().__init__(
            message=(
                f"Invalid state transition for payment {payment_id}: "
                f"{current_value} → {requested_value}. "
                f"Valid transitions from {current_value}: {allowed_text}"
            ),
            code="INVALID_TRANSITION",
            details={
                "payment_id": payment_id,
                "current": current_value,
                "requested": requested_value,
                "allowed": self.allowed,
            },
        )


class RefundWindowClosedError(EconomyError):
    """Raised when a dispute is opened for a payment that is no longer refundable."""

    def __init__(self, payment_id: str, status: str):
        status_value = getattr(status, "value", status)
        super().__init__(
            message=(
                f"Payment {payment_id} cannot be disputed: status is "
                f"{status_value} or the refund window has closed"
            ),
            code="REFUND_WINDOW_CLOSED",
            details={"payment_id": payment_id, "status": status_value},
        )


class NotInitializedError(EconomyError):
    """Raised when agents are used before initialize_agents() succeeded."""

    def __init__(self, operation: str = "operation"):
        super().__init__(
            message=f"Agents not initialized, cannot run {operation}. Initialize agents first.",
            code="NOT_INITIALIZED",
            details={"operation": operation},
        )


class NoProviderError(EconomyError):
    """Raised when no registered agent offers the requested service."""

    def __init__(self, service_type: str):
        super().__init__(
            message=f"No provider found for service: {service_type}",
            code="NO_PROVIDER",
            details={"service_type": service_type},
        )


class ProviderCallError(EconomyError):
    """Raised when the external payment provider call fails."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Payment provider {operation} failed: {reason}",
            code="PROVIDER_CALL_FAILED",
            details={"operation": operation, "reason": reason},
        )
