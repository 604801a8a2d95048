"""
vestledger - time-locked token grant ledger.

A fungible token ledger whose balances can be encumbered by vesting grants
that release gradually between a cliff and a final vesting timestamp.
"""

from vestledger.core.access_control import GranterRole
from vestledger.core.config import LedgerConfig, load_config
from vestledger.core.vested_token import TokenEvent, VestedToken
from vestledger.core.vesting import GrantStatus, TokenGrant, VestingEngine

__version__ = "0.1.0"

__all__ = [
    "GranterRole",
    "GrantStatus",
    "LedgerConfig",
    "TokenEvent",
    "TokenGrant",
    "VestedToken",
    "VestingEngine",
    "load_config",
]
