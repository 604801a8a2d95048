"""
Ledger exception hierarchy for vestledger.

Every failure of a ledger operation raises one of these typed exceptions
before any balance is touched, so callers can catch a specific condition or
fall back to ``LedgerError`` for catch-all handling.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class LedgerError(Exception):
    """Base exception for all ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Authorization Errors ====================


class UnauthorizedError(LedgerError):
    """Raised when the caller does not hold the granter role."""
    pass


# ==================== Balance Errors ====================


class InsufficientBalanceError(LedgerError):
    """Raised when an account's total balance is lower than the debit."""
    pass


class InsufficientTransferableError(LedgerError):
    """Raised when the balance covers the debit but vesting locks part of it.

    Kept separate from ``InsufficientBalanceError`` so callers can tell a
    short balance from a locked one.
    """
    pass


class InsufficientAllowanceError(LedgerError):
    """Raised when transfer_from exceeds the approved allowance."""
    pass


# ==================== Grant Errors ====================


class GrantError(LedgerError):
    """Raised when a grant operation is rejected."""
    pass


class InvalidScheduleError(GrantError):
    """Raised when a schedule is not ordered start <= cliff <= vesting."""
    pass


class AlreadyRevokedError(GrantError):
    """Raised when revoking a grant that is already revoked."""
    pass


class NotRevocableError(GrantError):
    """Raised when revoking a grant issued as non-revocable."""
    pass


class GrantNotFoundError(GrantError):
    """Raised when a grant id does not belong to the given account."""
    pass


class TooManyGrantsError(GrantError):
    """Raised when an account already holds the maximum number of grants."""
    pass


# ==================== Validation Errors ====================


class ValidationError(LedgerError):
    """Raised when operation arguments fail validation."""
    pass


class InvalidAmountError(ValidationError):
    """Raised for negative, zero (where disallowed) or non-integer amounts."""
    pass


class InvalidAddressError(ValidationError):
    """Raised for empty or zero addresses."""
    pass


class InvalidTimestampError(ValidationError):
    """Raised when a state change is applied with a timestamp earlier than the last one."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(LedgerError):
    """Raised when ledger configuration is invalid."""
    pass


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, LedgerError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    return context
