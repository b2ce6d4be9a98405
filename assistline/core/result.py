"""
Result type used by repositories.

Repository reads never raise for expected outcomes (missing rows, driver
errors); they hand back ``Success`` or ``Failure`` and the domain layer
decides which exception, if any, the caller sees.

Example:
    result = await uow.requests.get(request_id)
    match result:
        case Success(request):
            ...
        case Failure(RecordNotFound()):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union, cast

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, _default: T) -> T:
        return self.value

    def map(self, func: Callable[[T], U]) -> "Result[U, E]":
        return Success(func(self.value))

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self):
        """Raise the wrapped error."""
        if isinstance(self.error, Exception):
            raise self.error
        original = getattr(self.error, "original_exception", None)
        if isinstance(original, Exception):
            raise original
        raise RuntimeError(f"Operation failed: {self.error}")

    def unwrap_or(self, default):
        return default

    def map(self, _func) -> "Result":
        return cast(Result, self)

    def __repr__(self) -> str:
        return f"Failure({self.error!r})"


Result = Union[Success[T], Failure[E]]


def success(value: T) -> Success[T]:
    return Success(value)


def failure(error: E) -> Failure[E]:
    return Failure(error)


@dataclass(frozen=True, slots=True)
class RecordNotFound:
    entity_type: str
    entity_id: str | int
    message: str | None = None

    def __str__(self) -> str:
        if self.message:
            return self.message
        return f"{self.entity_type} with id={self.entity_id} not found"


@dataclass(frozen=True, slots=True)
class DatabaseError:
    operation: str
    message: str
    original_exception: Exception | None = None

    def __str__(self) -> str:
        return f"Database error during {self.operation}: {self.message}"


__all__ = [
    "Success",
    "Failure",
    "Result",
    "success",
    "failure",
    "RecordNotFound",
    "DatabaseError",
]
