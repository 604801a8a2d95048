"""
Granter role for vested token ledgers.

Each ledger is constructed with its own ``GranterRole`` instead of reading a
module-level authority, so independent ledgers never share an authority.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .exceptions import InvalidAddressError, UnauthorizedError
from .logging_config import short_address

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str) -> str:
    """Normalize address to lowercase."""
    return address.strip().lower()


def validate_address(address: str, field: str) -> None:
    """Validate address is not empty or zero."""
    if not address or address == ZERO_ADDRESS:
        raise InvalidAddressError(f"{field} is zero address", details={"field": field})


@dataclass(frozen=True)
class GranterRole:
    """
    Capability naming the single address allowed to grant and revoke.

    Usage:
        role = GranterRole("0xGranter")
        role.require(caller, "revoke")
    """

    address: str

    def __post_init__(self) -> None:
        normalized = normalize_address(self.address)
        validate_address(normalized, "granter")
        object.__setattr__(self, "address", normalized)

    def is_granter(self, caller: str) -> bool:
        return normalize_address(caller) == self.address

    def require(self, caller: str, operation: str) -> None:
        """
        Raise unless caller holds the role.

        Raises:
            UnauthorizedError: If caller is not the granter
        """
        if not self.is_granter(caller):
            logger.warning(
                "Unauthorized %s attempt",
                operation,
                extra={
                    "event": "access.denied",
                    "operation": operation,
                    "caller": short_address(normalize_address(caller)),
                },
            )
            raise UnauthorizedError(
                f"caller is not the granter for {operation}",
                details={"operation": operation, "caller": normalize_address(caller)},
            )
