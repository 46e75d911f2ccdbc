"""
Railway-Oriented Programming (ROP) Framework for Python.

Explicit, composable error handling — failures are values, not exceptions.

    from railway import Result, ErrorCode

    def require_common_name(name: str) -> Result[str]:
        if not name.strip():
            return Result.failure(ErrorCode.VALIDATION_ERROR, "common_name is required")
        return Result.success(name.strip())

    result = (
        Result.success({"common_name": "www.example.com"})
        .flat_map(lambda d: require_common_name(d["common_name"]))
        .map(lambda cn: f"CN={cn}")
    )
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
)
from railway.result_failures import ResultFailures
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultFailures",
    "ResultAssertions",
]

__version__ = "1.1.0"
