"""
Convenience factory methods for common Result failures.

Keeps call sites short and the message wording consistent:

    # Instead of:
    Result.failure(ErrorCode.NOT_FOUND, "Request not found with identifier: req_1")

    # Write:
    ResultFailures.not_found("Request", "req_1")
"""

from __future__ import annotations

from railway.failure import ErrorCode
from railway.result import Result


class ResultFailures:
    """Factory methods for the failure codes used across the code base."""

    @staticmethod
    def validation_error(message: str) -> Result:
        """Invalid input — missing fields, wrong format, unknown tag."""
        return Result.failure(ErrorCode.VALIDATION_ERROR, message)

    @staticmethod
    def not_found(resource_type: str, identifier: str) -> Result:
        """Resource doesn't exist."""
        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"{resource_type} not found with identifier: {identifier}",
        )

    @staticmethod
    def invalid_state(resource_type: str, identifier: str, state: str) -> Result:
        """Resource exists but its current state forbids the operation."""
        return Result.failure(
            ErrorCode.INVALID_STATE,
            f"{resource_type} {identifier} is {state}",
        )

    @staticmethod
    def conflict(resource_type: str, identifier: str) -> Result:
        """Identifier already taken."""
        return Result.failure(
            ErrorCode.CONFLICT,
            f"{resource_type} already exists with identifier: {identifier}",
        )

    @staticmethod
    def serial_collision(serial: str) -> Result:
        """A minted serial number is already on record."""
        return Result.failure(
            ErrorCode.SERIAL_COLLISION,
            f"Serial {serial} is already issued",
        )

    @staticmethod
    def crypto_error(message: str, exception: BaseException | None = None) -> Result:
        """Cryptographic capability failure."""
        return Result.failure(ErrorCode.CRYPTO_ERROR, message, exception)

    @staticmethod
    def database_error(message: str, exception: BaseException | None = None) -> Result:
        """Database connectivity or query failure."""
        return Result.failure(ErrorCode.DATABASE_ERROR, message, exception)

    @staticmethod
    def configuration_error(message: str, exception: BaseException | None = None) -> Result:
        """System misconfiguration."""
        return Result.failure(ErrorCode.CONFIGURATION_ERROR, message, exception)
