"""
Result monad — explicit error values for every stage of the run.

A Result[T] is either Success(content: T) or Failure(description). Adapters
never let exceptions escape: they return a Result, and stages are chained
with .flat_map() so the first failure short-circuits the rest.

    load ──Success──▶ encrypt ──Success──▶ write ──▶ Result[int]
      │                  │                   │
      └──Failure─────────┴───────────────────┴─────▶ Result[int]

Each track is its own class; Result only declares the shared surface and
the factories.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from cms_encrypt.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


class Result(ABC, Generic[T]):
    """
    Railway-Oriented Programming Result.

        >>> Result.success(b"pem").map(len).value()
        3
        >>> Result.failure(ErrorCode.IO_ERROR, "cannot read").map(len).is_failure()
        True
    """

    __slots__ = ()

    @abstractmethod
    def is_success(self) -> bool: ...

    def is_failure(self) -> bool:
        return not self.is_success()

    @abstractmethod
    def value(self) -> T:
        """The success value. Raises ValueError on a Failure; prefer either() or match."""

    @abstractmethod
    def error(self) -> FailureDescription:
        """The failure description. Raises ValueError on a Success."""

    @abstractmethod
    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        """Fold both tracks into one value, e.g. a process exit code."""

    @abstractmethod
    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """
        Chain a Result-returning stage. Short-circuits on failure.

            loader.load(path).flat_map(lambda cert: encryptor.encrypt(data, cert))
        """

    @abstractmethod
    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]: ...

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        return self.flat_map(lambda content: Success(mapper(content)))

    def ensure(
        self,
        predicate: Callable[[T], bool],
        error: FailureDescription | ErrorCode,
        message: str = "",
    ) -> Result[T]:
        """Turn a Success into a Failure when `predicate` rejects its value."""
        description = (
            FailureDescription(code=error, message=message)
            if isinstance(error, ErrorCode)
            else error
        )
        return self.flat_map(
            lambda content: Success(content) if predicate(content) else Failure(description)
        )

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run a side effect (typically logging) on the success value."""
        if self.is_success():
            action(self.value())
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        if self.is_failure():
            action(self.error())
        return self

    def __bool__(self) -> bool:
        return self.is_success()

    # ──────────────────────── Factories ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        return Failure(error)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Run `computation` at an adapter boundary.

        Any exception becomes a Failure under `error_code`, keeping the
        exception so the library's own error text reaches the operator.
        A computation that returns None is a failure too.

            Result.from_computation(path.read_bytes, ErrorCode.IO_ERROR, "Failed to read")
        """
        try:
            return Success(computation())
        except Exception as e:
            return Failure(FailureDescription(code=error_code, message=error_message, exception=e))


@dataclass(frozen=True, slots=True, repr=False)
class Success(Result[T]):
    """The success track."""

    content: T

    def __post_init__(self) -> None:
        if self.content is None:
            raise TypeError("Success value must not be None")

    def is_success(self) -> bool:
        return True

    def value(self) -> T:
        return self.content

    def error(self) -> FailureDescription:
        raise ValueError(f"Cannot get error from a Success: {self.content!r}")

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        return on_success(self.content)

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        return mapper(self.content)

    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        return self

    def __repr__(self) -> str:
        return f"Success({self.content!r})"


@dataclass(frozen=True, slots=True, repr=False, eq=False)
class Failure(Result[T]):
    """The failure track. Two failures are equal when code and message match."""

    description: FailureDescription

    def __post_init__(self) -> None:
        if self.description is None:
            raise TypeError("Failure error must not be None")

    def is_success(self) -> bool:
        return False

    def value(self) -> T:
        raise ValueError(f"Cannot get value from a Failure: {self.description.message}")

    def error(self) -> FailureDescription:
        return self.description

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        return on_failure(self.description)

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        return Failure(self.description)

    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        return Failure(mapper(self.description))

    def __repr__(self) -> str:
        return f"Failure({self.description.code.value}: {self.description.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        if not isinstance(other, Failure):
            return False
        return (self.description.code, self.description.message) == (
            other.description.code,
            other.description.message,
        )

    def __hash__(self) -> int:
        return hash((self.description.code, self.description.message))
