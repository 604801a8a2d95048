"""
Unit tests for the vesting engine: vesting math, grant bookkeeping and
transferable amounts.
"""

import pytest

from vestledger.core.access_control import GranterRole
from vestledger.core.exceptions import (
    AlreadyRevokedError,
    GrantNotFoundError,
    InvalidAmountError,
    InvalidScheduleError,
    NotRevocableError,
    TooManyGrantsError,
    UnauthorizedError,
)
from vestledger.core.vesting import (
    TokenGrant,
    VestingEngine,
    calculate_vested_tokens,
    validate_schedule,
)

GRANTER = "0x00000000000000000000000000000000000000a1"
HOLDER = "0x00000000000000000000000000000000000000b2"


def make_grant(**overrides) -> TokenGrant:
    params = dict(
        grant_id=0,
        granter=GRANTER,
        value=50,
        start=0,
        cliff=10000,
        vesting=20000,
        lock_until=12000,
        revocable=True,
        burns_on_revoke=False,
    )
    params.update(overrides)
    return TokenGrant(**params)


def attach(engine: VestingEngine, account: str = HOLDER, **overrides) -> TokenGrant:
    params = dict(
        value=50, lock_until=12000, start=0, cliff=10000, vesting=20000,
        revocable=True, burns_on_revoke=False,
    )
    params.update(overrides)
    grant = engine.new_grant(account, **params)
    return engine.attach_grant(account, grant)


@pytest.fixture
def engine():
    return VestingEngine(GranterRole(GRANTER))


class TestCalculateVestedTokens:
    """Vested amount for a single schedule."""

    def test_zero_before_cliff(self):
        assert calculate_vested_tokens(50, 0, 0, 10000, 20000) == 0
        assert calculate_vested_tokens(50, 9999, 0, 10000, 20000) == 0

    def test_linear_from_start_at_cliff(self):
        # Accrual is measured from start, so the cliff releases a lump
        assert calculate_vested_tokens(50, 10000, 0, 10000, 20000) == 25

    def test_floor_division_between_cliff_and_vesting(self):
        assert calculate_vested_tokens(50, 12000, 0, 10000, 20000) == 30
        assert calculate_vested_tokens(50, 10001, 0, 10000, 20000) == 25
        assert calculate_vested_tokens(7, 13000, 0, 10000, 20000) == 4

    def test_full_value_at_and_after_vesting(self):
        assert calculate_vested_tokens(50, 20000, 0, 10000, 20000) == 50
        assert calculate_vested_tokens(50, 10**9, 0, 10000, 20000) == 50

    def test_instant_schedule(self):
        """start == cliff == vesting vests everything at start."""
        assert calculate_vested_tokens(50, 99, 100, 100, 100) == 0
        assert calculate_vested_tokens(50, 100, 100, 100, 100) == 50

    def test_offset_start(self):
        t0 = 1_700_000_000
        assert calculate_vested_tokens(50, t0 + 12000, t0, t0 + 10000, t0 + 20000) == 30


class TestValidateSchedule:
    def test_accepts_ordered_schedule(self):
        validate_schedule(0, 0, 0)
        validate_schedule(0, 10, 20)

    def test_rejects_cliff_before_start(self):
        with pytest.raises(InvalidScheduleError, match="cliff is before start"):
            validate_schedule(10, 5, 20)

    def test_rejects_vesting_before_cliff(self):
        with pytest.raises(InvalidScheduleError, match="vesting is before cliff"):
            validate_schedule(0, 20, 10)

    def test_rejects_non_integer_timestamps(self):
        with pytest.raises(InvalidScheduleError):
            validate_schedule(0, 1.5, 10)


class TestTokenGrant:
    def test_lock_gates_vested_tokens(self):
        grant = make_grant()
        assert grant.vested_amount(10000) == 25
        assert grant.unlocked_amount(10000) == 0
        assert grant.locked_amount(10000) == 50
        assert grant.unlocked_amount(12000) == 30
        assert grant.locked_amount(12000) == 20

    def test_lock_after_vesting_holds_full_value(self):
        grant = make_grant(lock_until=30000)
        assert grant.vested_amount(25000) == 50
        assert grant.locked_amount(25000) == 50
        assert grant.locked_amount(30000) == 0

    def test_revoked_grant_locks_nothing(self):
        grant = make_grant(revoked=True)
        assert grant.locked_amount(0) == 0

    def test_to_dict(self):
        data = make_grant(grant_id=3).to_dict()
        assert data["grant_id"] == 3
        assert data["lock_until"] == 12000
        assert data["revoked"] is False


class TestVestingEngine:
    def test_grant_ids_are_monotonic_across_accounts(self, engine):
        first = attach(engine, HOLDER)
        second = attach(engine, GRANTER)
        third = attach(engine, HOLDER)
        assert [first.grant_id, second.grant_id, third.grant_id] == [0, 1, 2]
        assert [g.grant_id for g in engine.grants_of(HOLDER)] == [0, 2]

    def test_new_grant_does_not_record_until_attached(self, engine):
        engine.new_grant(HOLDER, 50, 0, 0, 0, 10, False, False)
        assert engine.grant_count(HOLDER) == 0
        assert attach(engine).grant_id == 0

    def test_new_grant_records_granter(self, engine):
        assert attach(engine).granter == GRANTER

    def test_rejects_non_positive_value(self, engine):
        with pytest.raises(InvalidAmountError):
            engine.new_grant(HOLDER, 0, 0, 0, 0, 10, False, False)

    def test_rejects_bad_schedule(self, engine):
        with pytest.raises(InvalidScheduleError):
            engine.new_grant(HOLDER, 10, 0, 100, 50, 200, False, False)

    def test_max_grants_per_address(self):
        engine = VestingEngine(GranterRole(GRANTER), max_grants_per_address=2)
        attach(engine)
        attach(engine)
        with pytest.raises(TooManyGrantsError):
            attach(engine)

    def test_revoked_grants_free_their_slot(self):
        engine = VestingEngine(GranterRole(GRANTER), max_grants_per_address=1)
        first = attach(engine)
        engine.mark_revoked(first, first.value)

        second = attach(engine)
        assert second.grant_id == 1
        assert engine.grant_count(HOLDER) == 2
        assert engine.active_grant_count(HOLDER) == 1

    def test_get_grant_unknown_id(self, engine):
        attach(engine)
        with pytest.raises(GrantNotFoundError):
            engine.get_grant(HOLDER, 5)
        with pytest.raises(GrantNotFoundError):
            engine.get_grant(GRANTER, 0)

    def test_lookup_is_case_insensitive(self, engine):
        attach(engine, HOLDER.upper().replace("0X", "0x"))
        assert engine.grant_count(HOLDER) == 1

    def test_composed_grants_are_additive(self, engine):
        attach(engine, start=0, cliff=10000, vesting=20000, lock_until=12000)
        attach(engine, start=12000, cliff=22000, vesting=32000, lock_until=24000)
        # First grant 30 unlocked (20 locked); second grant fully locked (50)
        assert engine.locked_tokens(HOLDER, 12000) == 70
        assert engine.transferable_tokens(HOLDER, 86, 12000) == 16

    def test_transferable_floors_at_zero(self, engine):
        attach(engine)
        assert engine.transferable_tokens(HOLDER, 10, 0) == 0

    def test_transferable_without_grants_is_balance(self, engine):
        assert engine.transferable_tokens(HOLDER, 42, 0) == 42

    def test_grant_status(self, engine):
        attach(engine)
        status = engine.grant_status(HOLDER, 0, 12000)
        assert status.vested == 30
        assert status.locked == 20
        assert status.as_of == 12000

    def test_last_token_is_transferable(self, engine):
        assert engine.last_token_is_transferable(HOLDER) == 0
        attach(engine, lock_until=12000, vesting=20000)
        attach(engine, start=0, cliff=0, vesting=15000, lock_until=40000)
        assert engine.last_token_is_transferable(HOLDER) == 40000

    def test_last_token_ignores_revoked_grants(self, engine):
        attach(engine)
        late = attach(engine, lock_until=50000)
        late.revoked = True
        assert engine.last_token_is_transferable(HOLDER) == 20000


class TestCheckRevocation:
    def test_refund_is_non_vested_remainder(self, engine):
        attach(engine)
        grant, refund = engine.check_revocation(GRANTER, HOLDER, 0, 10000)
        assert grant.grant_id == 0
        assert refund == 25

    def test_refund_ignores_lock_period(self, engine):
        attach(engine, lock_until=40000)
        _, refund = engine.check_revocation(GRANTER, HOLDER, 0, 20000)
        assert refund == 0

    def test_check_does_not_mark_revoked(self, engine):
        attach(engine)
        grant, _ = engine.check_revocation(GRANTER, HOLDER, 0, 0)
        assert grant.revoked is False

    def test_unauthorized(self, engine):
        attach(engine)
        with pytest.raises(UnauthorizedError):
            engine.check_revocation(HOLDER, HOLDER, 0, 0)

    def test_not_revocable(self, engine):
        attach(engine, revocable=False)
        with pytest.raises(NotRevocableError):
            engine.check_revocation(GRANTER, HOLDER, 0, 0)

    def test_already_revoked(self, engine):
        grant = attach(engine)
        engine.mark_revoked(grant, 50)
        with pytest.raises(AlreadyRevokedError):
            engine.check_revocation(GRANTER, HOLDER, 0, 0)
