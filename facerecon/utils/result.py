"""
Explicit result-or-error values for isolated component failures.

Pipeline-fatal problems are raised as exceptions; failures that only
affect one independent artifact (a single mesh variant or overlay layer)
are returned as an ``Outcome`` so callers decide what to do with them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the exception that prevented producing it."""

    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value

    def value_or_none(self) -> Optional[T]:
        return self.value if self.error is None else None
