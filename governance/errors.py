"""Structured error kinds raised by the governance engine."""

from enum import Enum
from typing import Any, Optional, TypeVar

E = TypeVar("E", bound=Enum)


class GovernanceError(Exception):
    """Base class for every error the engine surfaces to callers."""

    kind = "governance_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(GovernanceError):
    """Malformed input to a public operation; nothing was mutated."""

    kind = "validation_error"


class PolicyViolation(GovernanceError):
    """An operation was refused by policy or by the current state of a resource.

    Attributes:
        reason: Human-readable reason from the policy
        details: Extra structured context (failure reasons, deltas, status)
    """

    kind = "policy_violation"

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


class NotFoundError(GovernanceError):
    """A referenced resource does not exist in the project."""

    kind = "not_found"

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        super().__init__(f"{resource_type} {resource_id} not found")


class PersistenceFailure(GovernanceError):
    """The underlying store failed or timed out."""

    kind = "persistence_failure"


class AuditWriteFailure(GovernanceError):
    """An audit entry could not be written after the primary mutation committed."""

    kind = "audit_write_failure"

    def __init__(self, action: str, resource_id: Any, cause: Exception):
        self.action = action
        self.resource_id = str(resource_id) if resource_id is not None else None
        self.cause = cause
        super().__init__(f"Failed to record audit entry for {action}: {cause}")


def coerce_enum(enum_type: type[E], value: Any, field: str) -> E:
    """Parse ``value`` into ``enum_type``, raising ValidationError for unknown values."""
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValidationError(f"Invalid {field} '{value}' (expected one of: {allowed})") from None
