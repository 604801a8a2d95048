"""
Vesting Engine.

Tracks the token grants attached to each account and answers how much of an
account's balance is locked at a given timestamp.

Vesting math for one grant:
- before ``cliff`` nothing is vested
- at or after ``vesting`` the full value is vested
- in between, ``value * (now - start) // (vesting - start)`` is vested

A grant's vested tokens only count as unlocked once ``lock_until`` has
passed. Grants on one account compose additively: each locks
``value - unlocked`` of its own value and the locks are summed.

The engine never touches balances; the token ledger owns those and asks the
engine before every debit.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from .access_control import GranterRole, normalize_address
from .config import MAX_GRANTS_PER_ADDRESS
from .exceptions import (
    AlreadyRevokedError,
    GrantNotFoundError,
    InvalidAmountError,
    InvalidScheduleError,
    NotRevocableError,
    TooManyGrantsError,
)
from .logging_config import short_address

logger = logging.getLogger(__name__)


def calculate_vested_tokens(value: int, now: int, start: int, cliff: int, vesting: int) -> int:
    """
    Amount of ``value`` vested at ``now``.

    Uses floor division between cliff and vesting; returns ``value`` exactly
    from ``vesting`` on.
    """
    if now < cliff:
        return 0
    if now >= vesting:
        return value
    return value * (now - start) // (vesting - start)


def validate_schedule(start: int, cliff: int, vesting: int) -> None:
    """
    Raises:
        InvalidScheduleError: Unless start <= cliff <= vesting
    """
    for name, ts in (("start", start), ("cliff", cliff), ("vesting", vesting)):
        if not isinstance(ts, int) or isinstance(ts, bool):
            raise InvalidScheduleError(
                f"{name} must be an integer timestamp", details={name: ts}
            )
    if cliff < start:
        raise InvalidScheduleError(
            "cliff is before start", details={"start": start, "cliff": cliff}
        )
    if vesting < cliff:
        raise InvalidScheduleError(
            "vesting is before cliff", details={"cliff": cliff, "vesting": vesting}
        )


@dataclass
class TokenGrant:
    """One vesting commitment layered onto an account's balance."""

    grant_id: int
    granter: str
    value: int
    start: int
    cliff: int
    vesting: int
    lock_until: int
    revocable: bool
    burns_on_revoke: bool
    revoked: bool = False

    def vested_amount(self, now: int) -> int:
        return calculate_vested_tokens(self.value, now, self.start, self.cliff, self.vesting)

    def unlocked_amount(self, now: int) -> int:
        """Vested tokens that may move; zero until ``lock_until``."""
        if now < self.lock_until:
            return 0
        return self.vested_amount(now)

    def locked_amount(self, now: int) -> int:
        """Part of ``value`` this grant keeps locked; zero once revoked."""
        if self.revoked:
            return 0
        return self.value - self.unlocked_amount(now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GrantStatus:
    """Read-only view of a grant at a queried timestamp."""

    grant: TokenGrant
    vested: int
    locked: int
    as_of: int


class VestingEngine:
    """
    Per-account grant collections and the transferable-amount calculation.

    Grant ids come from a monotonic counter local to this engine and stay
    stable for the grant's lifetime. Each account's grants are kept in
    insertion order.
    """

    def __init__(
        self,
        role: GranterRole,
        max_grants_per_address: int = MAX_GRANTS_PER_ADDRESS,
    ) -> None:
        self.role = role
        self.max_grants_per_address = max_grants_per_address
        self.grants: dict[str, list[TokenGrant]] = {}
        self._grant_id_counter = 0

    # ==================== Queries ====================

    def grants_of(self, account: str) -> list[TokenGrant]:
        return list(self.grants.get(normalize_address(account), []))

    def grant_count(self, account: str) -> int:
        return len(self.grants.get(normalize_address(account), []))

    def active_grant_count(self, account: str) -> int:
        """Grants on the account that have not been revoked."""
        return sum(1 for g in self.grants.get(normalize_address(account), []) if not g.revoked)

    def get_grant(self, account: str, grant_id: int) -> TokenGrant:
        """
        Look up a grant by id on one account.

        Raises:
            GrantNotFoundError: If the account holds no grant with that id
        """
        for grant in self.grants.get(normalize_address(account), []):
            if grant.grant_id == grant_id:
                return grant
        raise GrantNotFoundError(
            f"grant {grant_id} not found for account",
            details={"account": normalize_address(account), "grant_id": grant_id},
        )

    def grant_status(self, account: str, grant_id: int, now: int) -> GrantStatus:
        grant = self.get_grant(account, grant_id)
        return GrantStatus(
            grant=grant,
            vested=grant.vested_amount(now),
            locked=grant.locked_amount(now),
            as_of=now,
        )

    def locked_tokens(self, account: str, now: int) -> int:
        """Sum of every non-revoked grant's locked remainder."""
        return sum(g.locked_amount(now) for g in self.grants.get(normalize_address(account), []))

    def transferable_tokens(self, account: str, balance: int, now: int) -> int:
        """
        Part of ``balance`` not locked by the account's grants.

        Args:
            account: Account holding the grants
            balance: The account's total balance
            now: Timestamp to evaluate the schedules at

        Returns:
            ``balance - locked``, floored at 0
        """
        return max(0, balance - self.locked_tokens(account, now))

    def last_token_is_transferable(self, account: str) -> int:
        """Timestamp from which every granted token is transferable, 0 with no active grants."""
        date = 0
        for grant in self.grants.get(normalize_address(account), []):
            if not grant.revoked:
                date = max(date, grant.vesting, grant.lock_until)
        return date

    # ==================== Grant creation ====================

    def new_grant(
        self,
        recipient: str,
        value: int,
        lock_until: int,
        start: int,
        cliff: int,
        vesting: int,
        revocable: bool,
        burns_on_revoke: bool,
    ) -> TokenGrant:
        """
        Validate grant parameters and build an unattached grant.

        Nothing is recorded until ``attach_grant`` is called, so the caller
        can run its own balance checks first.

        Raises:
            InvalidAmountError: If value is not a positive integer
            InvalidScheduleError: If the schedule is out of order
            TooManyGrantsError: If the recipient holds the maximum number of active grants
        """
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise InvalidAmountError("grant value must be a positive integer", details={"value": value})
        validate_schedule(start, cliff, vesting)
        if not isinstance(lock_until, int) or isinstance(lock_until, bool):
            raise InvalidScheduleError(
                "lock_until must be an integer timestamp", details={"lock_until": lock_until}
            )
        if self.active_grant_count(recipient) >= self.max_grants_per_address:
            raise TooManyGrantsError(
                "recipient holds the maximum number of grants",
                details={
                    "recipient": normalize_address(recipient),
                    "max_grants_per_address": self.max_grants_per_address,
                },
            )

        return TokenGrant(
            grant_id=self._grant_id_counter,
            granter=self.role.address,
            value=value,
            start=start,
            cliff=cliff,
            vesting=vesting,
            lock_until=lock_until,
            revocable=bool(revocable),
            burns_on_revoke=bool(burns_on_revoke),
        )

    def attach_grant(self, recipient: str, grant: TokenGrant) -> TokenGrant:
        recipient_norm = normalize_address(recipient)
        self.grants.setdefault(recipient_norm, []).append(grant)
        self._grant_id_counter = grant.grant_id + 1
        logger.info(
            "Token grant %s attached",
            grant.grant_id,
            extra={
                "event": "vesting.grant_created",
                "grant_id": grant.grant_id,
                "recipient": short_address(recipient_norm),
                "value": grant.value,
                "cliff": grant.cliff,
                "vesting": grant.vesting,
                "lock_until": grant.lock_until,
            },
        )
        return grant

    # ==================== Revocation ====================

    def check_revocation(
        self, authority: str, account: str, grant_id: int, now: int
    ) -> tuple[TokenGrant, int]:
        """
        Validate a revocation and compute the non-vested refund.

        The lock period does not shrink the holder's share: tokens vested at
        ``now`` stay with the holder even if ``lock_until`` has not passed.

        Returns:
            The grant and the refund amount (``value - vested``)

        Raises:
            UnauthorizedError: If authority is not the granter
            GrantNotFoundError: If the grant id is unknown for the account
            AlreadyRevokedError: If the grant was already revoked
            NotRevocableError: If the grant was issued as non-revocable
        """
        self.role.require(authority, "revoke")
        grant = self.get_grant(account, grant_id)
        if grant.revoked:
            raise AlreadyRevokedError(
                f"grant {grant_id} already revoked", details={"grant_id": grant_id}
            )
        if not grant.revocable:
            raise NotRevocableError(
                f"grant {grant_id} is not revocable", details={"grant_id": grant_id}
            )
        return grant, grant.value - grant.vested_amount(now)

    def mark_revoked(self, grant: TokenGrant, refund: int) -> None:
        grant.revoked = True
        logger.info(
            "Token grant %s revoked",
            grant.grant_id,
            extra={
                "event": "vesting.grant_revoked",
                "grant_id": grant.grant_id,
                "refund": refund,
                "burned": grant.burns_on_revoke,
            },
        )
