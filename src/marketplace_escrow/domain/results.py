"""Typed command results.

Service commands never raise for expected business failures. They return a
CommandResult carrying either the updated subject or an ErrorInfo with the
stable error code. Infrastructure failures are not caught here and still
propagate.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, ParamSpec, TypeVar

from marketplace_escrow.domain.exceptions import MarketplaceError

T = TypeVar("T")
P = ParamSpec("P")

# Idempotency guards and expired deadlines mean "someone already acted".
ALREADY_PROCESSED_CODES = frozenset({"ALREADY_SETTLED", "ALREADY_COMPLETED", "EXPIRED"})


@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: MarketplaceError) -> ErrorInfo:
        return cls(code=exc.code, message=exc.message)


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    """Outcome of one command: a value on success, an ErrorInfo otherwise."""

    value: T | None = None
    error: ErrorInfo | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def already_processed(self) -> bool:
        return self.error is not None and self.error.code in ALREADY_PROCESSED_CODES

    def unwrap(self) -> T:
        """Return the value or raise the error as a MarketplaceError."""
        if self.error is not None:
            raise MarketplaceError(self.error.message, self.error.code)
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> CommandResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, exc: MarketplaceError) -> CommandResult[Any]:
        return cls(error=ErrorInfo.from_exception(exc))


def command(
    func: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[CommandResult[T]]]:
    """Wrap an async service method so business errors become results."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> CommandResult[T]:
        try:
            return CommandResult.success(await func(*args, **kwargs))
        except MarketplaceError as exc:
            return CommandResult.failure(exc)

    return wrapper
