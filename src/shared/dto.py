"""Domain Data Transfer Objects (DTOs).

This module defines the result envelope every engine operation returns,
so callers never see an exception cross the component boundary.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from src.shared.exceptions import LearnerException
from src.shared.models import ErrorResponse

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Either a success payload or a structured failure."""

    success: bool
    data: T | None = None
    error: ErrorResponse | None = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: LearnerException) -> "ServiceResult[T]":
        """Create a failed result from a domain exception."""
        return cls(
            success=False,
            error=ErrorResponse(code=exc.code, message=exc.message, details=exc.details),
        )

    def unwrap(self) -> T:
        """Return the payload or raise if the result is a failure."""
        if not self.success:
            raise ValueError(f"{self.error.code}: {self.error.message}")
        return self.data
