"""Shared exceptions for the adaptation engine.

This module defines a consistent exception hierarchy used across all modules
to standardize error handling. Every exception carries a stable ``code`` so
the service boundary can turn it into a structured failure.
"""

from typing import Any
from uuid import UUID


class LearnerException(Exception):
    """Base exception for all application errors.

    All domain-specific exceptions should inherit from this class
    to enable consistent error handling at the service boundary.
    """

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a structured failure payload."""
        return {
            "code": self.code,
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ===================
# Validation Errors
# ===================

class ValidationError(LearnerException):
    """Raised when input validation fails."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(
            f"Validation error for '{field}': {message}",
            {"field": field}
        )


class EmptySignalBatchError(ValidationError):
    """Raised when a signal batch contains no signals."""

    def __init__(self, learner_id: str) -> None:
        super().__init__("signals", "At least one signal is required")
        self.details["learner_id"] = learner_id


class InvalidConditionError(ValidationError):
    """Raised when a rule condition is malformed."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(f"conditions[{index}]", message)


class UnknownRuleFieldError(ValidationError):
    """Raised when a rule update names a field that cannot be changed."""

    def __init__(self, fields: list[str]) -> None:
        super().__init__("updates", f"Unknown or immutable rule fields: {', '.join(fields)}")
        self.details["fields"] = fields


# ===================
# Resource Errors
# ===================

class ResourceNotFoundError(LearnerException):
    """Raised when a requested resource is not found."""

    code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: UUID | str,
    ) -> None:
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            {"resource_type": resource_type, "resource_id": str(resource_id)}
        )


class ProfileNotFoundError(ResourceNotFoundError):
    """Raised when an adaptation profile is not found."""

    def __init__(self, learner_id: str) -> None:
        super().__init__("AdaptationProfile", learner_id)


class CompetencyNotFoundError(ResourceNotFoundError):
    """Raised when a learner has no recorded state for a competency."""

    def __init__(self, learner_id: str, competency_id: str) -> None:
        super().__init__("CompetencyState", competency_id)
        self.details["learner_id"] = learner_id


class RuleNotFoundError(ResourceNotFoundError):
    """Raised when an adaptation rule is not found for the tenant."""

    def __init__(self, rule_id: UUID | str) -> None:
        super().__init__("AdaptationRule", rule_id)


# ===================
# State Errors
# ===================

class TenantMismatchError(LearnerException):
    """Raised when a learner's profile belongs to a different tenant."""

    code = "TENANT_MISMATCH"

    def __init__(self, learner_id: str, tenant_id: str) -> None:
        super().__init__(
            "Learner profile belongs to a different tenant",
            {"learner_id": learner_id, "tenant_id": tenant_id}
        )


class NoDataError(LearnerException):
    """Raised when a derived view has nothing to be derived from."""

    code = "NO_DATA"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)


class NoDomainDataError(NoDataError):
    """Raised when ZPD is requested for a domain with no competency states."""

    def __init__(self, learner_id: str, domain: str) -> None:
        super().__init__(
            "No competency data available for domain",
            {"learner_id": learner_id, "domain": domain}
        )


class ConcurrencyError(LearnerException):
    """Raised when a learner's profile lock cannot be acquired."""

    code = "CONCURRENCY_ERROR"

    def __init__(self, learner_id: str, attempts: int) -> None:
        super().__init__(
            f"Could not acquire profile lock after {attempts} attempts",
            {"learner_id": learner_id, "attempts": attempts}
        )


# ===================
# Integration Errors
# ===================

class StorageError(LearnerException):
    """Raised when a persistence collaborator fails."""

    code = "STORAGE_ERROR"

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(
            f"Storage error during {operation}: {message}",
            {"operation": operation}
        )
