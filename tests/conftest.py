"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

import pytest

from vestledger.core.access_control import GranterRole
from vestledger.core.config import LedgerConfig
from vestledger.core.vested_token import VestedToken

GRANTER = "0x00000000000000000000000000000000000000a1"
RECEIVER = "0x00000000000000000000000000000000000000b2"
OTHER = "0x00000000000000000000000000000000000000c3"
STRANGER = "0x00000000000000000000000000000000000000d4"
BURN_ADDRESS = "0x000000000000000000000000000000000000dead"

TOKEN_AMOUNT = 50
CLIFF = 10000
VESTING = 20000
LOCK_PERIOD = 12000
T0 = 1_700_000_000


@pytest.fixture
def token():
    """Fresh ledger with 100 tokens minted to the granter."""
    return VestedToken(granter=GranterRole(GRANTER), initial_supply=100, config=LedgerConfig())


@pytest.fixture
def granted_token(token):
    """Ledger where RECEIVER holds a revocable, non-burning grant of 50 issued at T0."""
    token.grant_vested_tokens(
        GRANTER,
        RECEIVER,
        TOKEN_AMOUNT,
        lock_until=T0 + LOCK_PERIOD,
        start=T0,
        cliff=T0 + CLIFF,
        vesting=T0 + VESTING,
        revocable=True,
        burns_on_revoke=False,
        now=T0,
    )
    return token
