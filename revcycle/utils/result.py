"""
Explicit success / failure values for service operations.

Services return a :class:`Result` for every failure the caller is expected to
handle (validation, missing records, state conflicts, clearinghouse
rejections). Storage faults and programming errors are still raised.
"""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from revcycle.utils.errors import AppError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[AppError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, or raise the carried error (rendered by the API error handler)."""
        if self.error is not None:
            raise self.error
        return self.value
