"""
Result track — Railway-Oriented Programming for the sync engine.

A Result[T] is either Success(value: T) or Failure(error: FailureDescription).
Adapters catch exceptions at their boundary (Result.from_computation) and the
engine chains stages with flat_map, so a failing stage short-circuits the rest:

    fetch(locator)
      → scan → decode(pem) → derive_identity → upsert(record)
                                                  │
    Failure ──────────────────────────────────────┴──→ Result[T]

Error codes follow the error taxonomy of the sync engine: input errors,
transport errors, safety-threshold violations, destination errors and
store errors each have their own code.
"""

from __future__ import annotations

import traceback
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@unique
class ErrorCode(Enum):
    """Structured error codes for the failure track."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed PEM, empty identity, slug collision, unknown option value."""

    NOT_FOUND = "NOT_FOUND"
    """Unknown source id."""

    BUSINESS_RULE_ERROR = "BUSINESS_RULE_ERROR"
    """Obsolescence sweep would remove more records than the safety threshold allows."""

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    """Bundle could not be fetched (network, file or stdin)."""

    DESTINATION_ERROR = "DESTINATION_ERROR"
    """Export target could not be written."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Store connectivity, query failure, or store held by another pass."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Everything else (e.g. failing post-export command)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional exception, timestamp.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, 'no source found with id "x"')
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def with_context(self, context: str) -> FailureDescription:
        """Same failure with `context` prefixed to the message."""
        return FailureDescription(
            code=self.code,
            message=f"{context}: {self.message}",
            exception=self.exception,
            timestamp=self.timestamp,
        )

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(type(self.exception), self.exception, self.exception.__traceback__)
        )
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        if self.exception is None:
            return f"{self.code.value}: {self.message}"
        return f"{self.code.value}: {self.message} ({self.exception})"


class Result(Generic[T]):
    """
    Either Success(value) or Failure(error).

    All transformations short-circuit on failure, so only the success path
    is written out and errors propagate automatically.

        >>> Result.success(21).map(lambda x: x * 2).value()
        42
        >>> Result.failure(ErrorCode.VALIDATION_ERROR, "bad").map(lambda x: x * 2).is_failure()
        True
    """

    # ──────────────────────── Introspection ────────────────────────

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """Extract the success value. Raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """Extract the failure description. Raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v}")
        raise TypeError("unreachable")  # pragma: no cover

    # ──────────────────────── Transformations ────────────────────────

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        """Transform the failure description (e.g. to add context). Success passes through."""
        match self:
            case Success(_):
                return self
            case Failure(err):
                return Failure(mapper(err))
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """Chain a Result-returning function. This is what connects the railway segments."""
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def ensure(
        self,
        predicate: Callable[[T], bool],
        code: ErrorCode,
        message: str,
    ) -> Result[T]:
        """Turn a Success into a Failure when the predicate rejects its value."""
        return self.flat_map(
            lambda v: Result.success(v) if predicate(v) else Result.failure(code, message)
        )

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run a side effect (usually logging) on the success value."""
        match self:
            case Success(v):
                action(v)
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        match self:
            case Failure(err):
                action(err)
        return self

    # ──────────────────────── Static Factories ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

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
        Run a computation that may raise and capture any exception as a Failure.

        This is the adapter boundary: nothing behind it raises into the engine.
        """
        try:
            return Result.success(computation())
        except Exception as e:
            return Result.failure(error_code, error_message, e)

    @staticmethod
    def from_optional(
        value: T | None,
        error_message: str,
        error_code: ErrorCode = ErrorCode.NOT_FOUND,
    ) -> Result[T]:
        if value is not None:
            return Result.success(value)
        return Result.failure(error_code, error_message)

    @staticmethod
    def all_of(results: Iterable[Result[T]]) -> Result[list[T]]:
        """
        Collect Results into a Result of list, stopping at the first Failure.

        The iterable is consumed lazily, so later computations are never
        started once one has failed.
        """
        values: list[T] = []
        for r in results:
            match r:
                case Success(v):
                    values.append(v)
                case Failure(err):
                    return Failure(err)
        return Success(values)

    # ──────────────────────── Dunder methods ────────────────────────

    def __bool__(self) -> bool:
        return self.is_success()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        match (self, other):
            case (Success(a), Success(b)):
                return a == b
            case (Failure(a), Failure(b)):
                return a.code == b.code and a.message == b.message
            case _:
                return False


@dataclass(frozen=True, slots=True, eq=False)
class Success(Result[T]):
    """The success track — wraps a value of type T."""

    _value: T

    def __init__(self, value: T) -> None:
        if value is None:
            raise TypeError("Success value must not be None")
        object.__setattr__(self, "_value", value)

    def __repr__(self) -> str:
        return f"Success({self._value!r})"

    def __hash__(self) -> int:
        return hash(("Success", self._value))


Success.__match_args__ = ("_value",)


@dataclass(frozen=True, slots=True, eq=False)
class Failure(Result[T]):
    """The failure track — wraps a FailureDescription."""

    _error: FailureDescription

    def __init__(self, error: FailureDescription) -> None:
        if error is None:
            raise TypeError("Failure error must not be None")
        object.__setattr__(self, "_error", error)

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"

    def __hash__(self) -> int:
        return hash(("Failure", self._error.code, self._error.message))


Failure.__match_args__ = ("_error",)
