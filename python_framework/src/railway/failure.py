"""
Failure description — structured error information for the failure track.

An ErrorCode classifies the failure; a FailureDescription carries the code,
a human-readable message, the optional causing exception and a timestamp.

Enum members are singletons, so callers compare codes with `==` or `is`
and route on them (e.g. map NOT_FOUND to 404 in a front end).
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Grouped by who is at fault:
    - Caller errors: VALIDATION, NOT_FOUND, INVALID_STATE, CONFLICT
    - Collaborator errors: CRYPTO, DATABASE, CONFIGURATION
    - Internal invariant violations: SERIAL_COLLISION, TECHNICAL, UNKNOWN
    """

    # --- Caller errors ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed input: bad PEM, unknown type tag, missing subject field (→ 400)."""

    NOT_FOUND = "NOT_FOUND"
    """Unknown request identifier or serial (→ 404)."""

    INVALID_STATE = "INVALID_STATE"
    """Operation not allowed in the record's current state (→ 409)."""

    CONFLICT = "CONFLICT"
    """Identifier already in use (→ 409)."""

    # --- Collaborator errors ---
    CRYPTO_ERROR = "CRYPTO_ERROR"
    """Key generation, signing or parsing capability failed (→ 502)."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Database connectivity or query failures (→ 500)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration (→ 500)."""

    # --- Internal invariant violations ---
    SERIAL_COLLISION = "SERIAL_COLLISION"
    """A freshly minted serial is already on record (→ 500)."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected exception escaping a computation (→ 500)."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unclassified failures (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, "Request not found: req_1")
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    >>> desc.message
    'Request not found: req_1'
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        exception: Optional[BaseException] = None,
    ) -> FailureDescription:
        return FailureDescription(code=code, message=message, exception=exception)

    def cause(self) -> str | None:
        """Short `Type: message` rendering of the causing exception, if any."""
        if self.exception is None:
            return None
        return f"{type(self.exception).__name__}: {self.exception}"

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, when one is attached."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"
