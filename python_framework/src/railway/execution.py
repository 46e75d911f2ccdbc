"""
Execution contexts — separate WHAT (pure logic) from HOW (side effects).

A computation describes what should happen and returns Result[T]. An
execution context decides how it runs: with timing logs, inside a lock,
inside a transaction. The two are never mixed; the caller picks the context:

    ctx = LoggingExecutionContext(operation="ApproveRequest")
    result = ctx.execute(lambda: approve(request_id))

Contexts compose by wrapping: LoggingExecutionContext accepts an inner
context and delegates to it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol, TypeVar, runtime_checkable

from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result

T = TypeVar("T")
logger = logging.getLogger("railway.execution")


@runtime_checkable
class ExecutionContext(Protocol):
    """
    Protocol for execution contexts.

    Any class implementing execute(computation) satisfies this protocol
    via structural typing — no explicit inheritance needed.
    """

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        """Execute a Result-returning computation within this context."""
        ...


class NoOpExecutionContext:
    """
    Passthrough execution context — runs the computation as-is.

    Used in unit tests and wherever no cross-cutting behavior is wanted.
    """

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Execution context that logs entry, exit, duration, and result state.

    An exception escaping the computation is converted into a
    TECHNICAL_ERROR failure so the caller always receives a Result.

        ctx = LoggingExecutionContext(operation="SubmitRequest")
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
        log_level: int = logging.INFO,
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation
        self._log_level = log_level

    @property
    def operation(self) -> str:
        return self._operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        logger.log(self._log_level, "[%s] Starting execution", self._operation)
        start = time.monotonic()

        try:
            result = self._inner.execute(computation)
        except Exception as e:
            elapsed = time.monotonic() - start
            logger.error(
                "[%s] Execution failed after %.3fs: %s",
                self._operation,
                elapsed,
                e,
            )
            return Failure(
                FailureDescription(
                    ErrorCode.TECHNICAL_ERROR,
                    f"Execution failed: {e}",
                    e,
                )
            )

        elapsed = time.monotonic() - start
        if result.is_success():
            state = "SUCCESS"
        else:
            state = f"FAILURE ({result.error().code.value})"
        logger.log(
            self._log_level,
            "[%s] Completed in %.3fs — %s",
            self._operation,
            elapsed,
            state,
        )
        return result
