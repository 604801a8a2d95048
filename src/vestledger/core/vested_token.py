"""
Vested Token Ledger.

A fungible token ledger (balances, allowances, transfer/approve/transferFrom)
whose outbound transfers are gated by the vesting engine:
- Every debit of a sender is limited to its transferable tokens
- Receiving tokens is never restricted
- Approvals are not limited by vesting; the check runs at transfer_from
- The granter issues vesting grants and may revoke revocable ones,
  taking back or burning the non-vested remainder

All operations take the current time as an explicit ``now`` argument and
validate every precondition before mutating state, so a failed call leaves
the ledger unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .access_control import (
    ZERO_ADDRESS,
    GranterRole,
    normalize_address,
    validate_address,
)
from .config import LedgerConfig
from .exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InsufficientTransferableError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidTimestampError,
)
from .logging_config import short_address
from .vesting import GrantStatus, TokenGrant, VestingEngine

logger = logging.getLogger(__name__)


@dataclass
class TokenEvent:
    """Represents a ledger event."""

    event_type: str  # "Transfer", "Approval", "GrantCreated" or "GrantRevoked"
    from_address: str
    to_address: str
    value: int
    timestamp: int = 0
    grant_id: Optional[int] = None


@dataclass
class VestedToken:
    """
    Token ledger with vesting grants.

    Usage:
        token = VestedToken(granter=GranterRole("0xgranter"), initial_supply=100)
        token.grant_vested_tokens("0xgranter", "0xholder", 50, lock_until=now + 12000,
                                  start=now, cliff=now + 10000, vesting=now + 20000,
                                  revocable=True, burns_on_revoke=False, now=now)
        token.transferable_tokens("0xholder", now)  # 0
    """

    granter: GranterRole
    name: str = "Vested Token"
    symbol: str = "VEST"
    decimals: int = 18
    initial_supply: int = 0
    config: LedgerConfig = field(default_factory=LedgerConfig)

    # State
    total_supply: int = field(default=0, init=False)
    balances: dict[str, int] = field(default_factory=dict, init=False)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict, init=False)
    events: list[TokenEvent] = field(default_factory=list, init=False)
    last_timestamp: Optional[int] = field(default=None, init=False)
    engine: VestingEngine = field(init=False)

    def __post_init__(self) -> None:
        self.engine = VestingEngine(self.granter, self.config.max_grants_per_address)
        self.burn_address = normalize_address(self.config.burn_address)
        if self.initial_supply:
            self._validate_amount(self.initial_supply)
            self.total_supply = self.initial_supply
            self.balances[self.granter.address] = self.initial_supply
            self._emit("Transfer", ZERO_ADDRESS, self.granter.address, self.initial_supply)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(normalize_address(owner), {}).get(normalize_address(spender), 0)

    def transferable_tokens(self, account: str, now: int) -> int:
        """
        Tokens the account may move at ``now``.

        Args:
            account: Address to check
            now: Timestamp to evaluate vesting at

        Returns:
            Total balance minus every active grant's locked remainder, floored at 0.
            Always 0 for the burn address.
        """
        if normalize_address(account) == self.burn_address:
            return 0
        return self.engine.transferable_tokens(account, self.balance_of(account), now)

    def token_grants_count(self, account: str) -> int:
        return self.engine.grant_count(account)

    def token_grant(self, account: str, grant_id: int, now: int) -> GrantStatus:
        return self.engine.grant_status(account, grant_id, now)

    def token_grants(self, account: str) -> list[TokenGrant]:
        return self.engine.grants_of(account)

    def last_token_is_transferable(self, account: str) -> int:
        return self.engine.last_token_is_transferable(account)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int, now: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Returns:
            True if successful

        Raises:
            InsufficientBalanceError: If the sender's balance is too low
            InsufficientTransferableError: If vesting locks the tokens
            InvalidAddressError: If the sender is the burn address
        """
        self._check_clock(now)
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)

        validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)
        self._require_transferable(sender_norm, amount, now)

        self._move(sender_norm, recipient_norm, amount)
        self.last_timestamp = now
        self._emit("Transfer", sender_norm, recipient_norm, amount)

        logger.debug(
            "Vested token transfer",
            extra={
                "event": "token.transfer",
                "token": self.symbol,
                "from": short_address(sender_norm),
                "to": short_address(recipient_norm),
                "amount": amount,
            },
        )
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """
        Approve spender to move up to ``amount`` of owner's tokens.

        The approval may exceed what the owner can currently transfer.
        """
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)

        validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit("Approval", owner_norm, spender_norm, amount)
        return True

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int, now: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Raises:
            InsufficientAllowanceError: If the allowance is too low
            InsufficientBalanceError: If the owner's balance is too low
            InsufficientTransferableError: If vesting locks the owner's tokens
            InvalidAddressError: If the owner is the burn address
        """
        self._check_clock(now)
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)

        validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise InsufficientAllowanceError(
                f"insufficient allowance ({current_allowance} < {amount})",
                details={"allowance": current_allowance, "amount": amount},
            )
        self._require_transferable(from_norm, amount, now)

        self.allowances[from_norm][spender_norm] = current_allowance - amount
        self._move(from_norm, to_norm, amount)
        self.last_timestamp = now
        self._emit("Transfer", from_norm, to_norm, amount)
        return True

    def increase_allowance(self, owner: str, spender: str, added_value: int) -> bool:
        self._validate_amount(added_value)
        return self.approve(owner, spender, self.allowance(owner, spender) + added_value)

    def decrease_allowance(self, owner: str, spender: str, subtracted_value: int) -> bool:
        """
        Raises:
            InsufficientAllowanceError: If the decrease exceeds the current allowance
        """
        self._validate_amount(subtracted_value)
        current = self.allowance(owner, spender)
        if subtracted_value > current:
            raise InsufficientAllowanceError(
                "decreased allowance below zero",
                details={"allowance": current, "amount": subtracted_value},
            )
        return self.approve(owner, spender, current - subtracted_value)

    # ==================== Grants ====================

    def grant_vested_tokens(
        self,
        granter: str,
        recipient: str,
        value: int,
        lock_until: int,
        start: int,
        cliff: int,
        vesting: int,
        revocable: bool,
        burns_on_revoke: bool,
        now: int,
    ) -> TokenGrant:
        """
        Move ``value`` from the granter to recipient under a vesting schedule.

        Args:
            granter: Caller, must hold the granter role
            recipient: Account receiving the grant
            value: Amount granted
            lock_until: Timestamp before which none of the grant may move
            start: Timestamp vesting accrues from
            cliff: Timestamp before which nothing is vested
            vesting: Timestamp at which the grant is fully vested
            revocable: Whether the granter may revoke the grant later
            burns_on_revoke: Whether revoked tokens go to the burn address
            now: Current time

        Returns:
            The attached TokenGrant

        Raises:
            UnauthorizedError: If granter does not hold the role
            InvalidScheduleError: If the schedule is out of order
            InsufficientBalanceError: If the granter's balance is too low
            InsufficientTransferableError: If the granter's own grants lock the tokens
        """
        self._check_clock(now)
        self.granter.require(granter, "grant")
        granter_norm = self.granter.address
        recipient_norm = normalize_address(recipient)
        validate_address(recipient_norm, "recipient")

        grant = self.engine.new_grant(
            recipient_norm, value, lock_until, start, cliff, vesting, revocable, burns_on_revoke
        )
        self._require_transferable(granter_norm, value, now)

        self.last_timestamp = now
        self._move(granter_norm, recipient_norm, value)
        self.engine.attach_grant(recipient_norm, grant)
        self._emit("Transfer", granter_norm, recipient_norm, value)
        self._emit("GrantCreated", granter_norm, recipient_norm, value, grant_id=grant.grant_id)
        return grant

    def revoke_token_grant(self, authority: str, account: str, grant_id: int, now: int) -> int:
        """
        Revoke a grant, moving its non-vested remainder out of the holder's balance.

        The remainder goes to the burn address when the grant burns on
        revoke, otherwise back to the granter. The holder keeps what has
        vested at ``now``.

        Returns:
            The amount taken from the holder

        Raises:
            UnauthorizedError: If authority does not hold the role
            GrantNotFoundError: If the account has no grant with that id
            AlreadyRevokedError: If the grant is already revoked
            NotRevocableError: If the grant is not revocable
        """
        self._check_clock(now)
        account_norm = normalize_address(account)
        grant, refund = self.engine.check_revocation(authority, account_norm, grant_id, now)

        holder_balance = self.balance_of(account_norm)
        if holder_balance < refund:
            raise InsufficientBalanceError(
                f"holder balance below revocation refund ({holder_balance} < {refund})",
                details={"balance": holder_balance, "refund": refund, "grant_id": grant_id},
            )

        destination = self.burn_address if grant.burns_on_revoke else self.granter.address
        self.last_timestamp = now
        if refund:
            self._move(account_norm, destination, refund)
            self._emit("Transfer", account_norm, destination, refund)
        self.engine.mark_revoked(grant, refund)
        self._emit("GrantRevoked", account_norm, destination, refund, grant_id=grant_id)
        return refund

    # ==================== Helpers ====================

    def _check_clock(self, now: int) -> None:
        """Require ``now`` to be an integer not earlier than the last state change."""
        if not isinstance(now, int) or isinstance(now, bool):
            raise InvalidTimestampError("now must be an integer timestamp", details={"now": now})
        if (
            self.config.enforce_monotonic_time
            and self.last_timestamp is not None
            and now < self.last_timestamp
        ):
            raise InvalidTimestampError(
                f"timestamp {now} is earlier than last operation at {self.last_timestamp}",
                details={"now": now, "last_timestamp": self.last_timestamp},
            )

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidAmountError("amount must be an integer", details={"amount": amount})
        if amount < 0:
            raise InvalidAmountError("amount cannot be negative", details={"amount": amount})

    def _require_transferable(self, sender: str, amount: int, now: int) -> None:
        if sender == self.burn_address:
            raise InvalidAddressError(
                "burned tokens cannot be moved", details={"field": "sender", "account": sender}
            )
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(
                f"transfer amount exceeds balance ({amount} > {balance})",
                details={"account": sender, "balance": balance, "amount": amount},
            )
        transferable = self.engine.transferable_tokens(sender, balance, now)
        if transferable < amount:
            raise InsufficientTransferableError(
                f"transfer amount exceeds transferable tokens ({amount} > {transferable})",
                details={
                    "account": sender,
                    "balance": balance,
                    "transferable": transferable,
                    "amount": amount,
                },
            )

    def _move(self, from_addr: str, to_addr: str, amount: int) -> None:
        self.balances[from_addr] = self.balances.get(from_addr, 0) - amount
        self.balances[to_addr] = self.balances.get(to_addr, 0) + amount

    def _emit(
        self,
        event_type: str,
        from_addr: str,
        to_addr: str,
        amount: int,
        grant_id: Optional[int] = None,
    ) -> None:
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
                timestamp=self.last_timestamp or 0,
                grant_id=grant_id,
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        """Snapshot token state as a dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "granter": self.granter.address,
            "burn_address": self.burn_address,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "grants": {
                account: [g.to_dict() for g in grants]
                for account, grants in self.engine.grants.items()
            },
        }
