"""
Scenario replay for the vestledger CLI.

A scenario is a YAML mapping describing a fresh ledger and an ordered list
of operations to apply to it:

    granter: "0xgranter"
    initial_supply: 100
    config:
      max_grants_per_address: 5
    operations:
      - op: grant
        at: 0
        recipient: "0xholder"
        value: 50
        lock_until: 12000
        start: 0
        cliff: 10000
        vesting: 20000
        revocable: true
      - op: transfer
        at: 20000
        from: "0xholder"
        to: "0xother"
        amount: 50

``granter``/``authority`` default to the scenario's granter for grant and
revoke operations.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vestledger.core.access_control import GranterRole
from vestledger.core.config import LedgerConfig, coerce_config_values
from vestledger.core.exceptions import ConfigurationError, LedgerError, get_error_context
from vestledger.core.vested_token import VestedToken

logger = logging.getLogger(__name__)

OPERATIONS = ("grant", "revoke", "transfer", "approve", "transfer_from", "query")


@dataclass
class StepResult:
    """Outcome of one scenario operation."""

    index: int
    op: str
    ok: bool
    result: Any = None
    error: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"index": self.index, "op": self.op, "ok": self.ok}
        if self.ok:
            data["result"] = self.result
        else:
            data["error"] = self.error
        return data


def load_scenario(path: str | Path) -> dict[str, Any]:
    """
    Raises:
        ConfigurationError: If the file cannot be read or is not a scenario mapping
    """
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read scenario {path}: {exc}") from exc
    if not isinstance(data, dict) or "granter" not in data:
        raise ConfigurationError(f"Scenario {path} must be a mapping with a 'granter' key")
    return data


def build_token(scenario: dict[str, Any], base_config: LedgerConfig | None = None) -> VestedToken:
    """
    Raises:
        ConfigurationError: If the scenario config or initial supply is invalid
    """
    overrides = scenario.get("config") or {}
    if not isinstance(overrides, dict):
        raise ConfigurationError("Scenario 'config' must be a mapping")
    config_values = asdict(base_config or LedgerConfig())
    config_values.update(coerce_config_values(overrides))
    config = LedgerConfig(**config_values)

    initial_supply = scenario.get("initial_supply", 0)
    if not isinstance(initial_supply, int) or isinstance(initial_supply, bool) or initial_supply < 0:
        raise ConfigurationError(
            f"Scenario initial_supply must be a non-negative integer, got {initial_supply!r}",
            details={"initial_supply": initial_supply},
        )
    return VestedToken(
        granter=GranterRole(str(scenario["granter"])),
        name=scenario.get("name", "Vested Token"),
        symbol=scenario.get("symbol", "VEST"),
        initial_supply=initial_supply,
        config=config,
    )


def apply_operation(token: VestedToken, step: dict[str, Any]) -> Any:
    """Apply one scenario step to the token and return its result."""
    op = step.get("op")
    if op not in OPERATIONS:
        raise ConfigurationError(f"Unknown scenario operation: {op!r}", details={"op": op})
    at = step.get("at", token.last_timestamp or 0)

    if op == "grant":
        grant = token.grant_vested_tokens(
            step.get("granter", token.granter.address),
            step["recipient"],
            step["value"],
            lock_until=step.get("lock_until", step["start"]),
            start=step["start"],
            cliff=step.get("cliff", step["start"]),
            vesting=step["vesting"],
            revocable=step.get("revocable", False),
            burns_on_revoke=step.get("burns_on_revoke", False),
            now=at,
        )
        return {"grant_id": grant.grant_id}
    if op == "revoke":
        refund = token.revoke_token_grant(
            step.get("authority", token.granter.address), step["account"], step["grant_id"], at
        )
        return {"refund": refund}
    if op == "transfer":
        return token.transfer(step["from"], step["to"], step["amount"], at)
    if op == "approve":
        return token.approve(step["owner"], step["spender"], step["amount"])
    if op == "transfer_from":
        return token.transfer_from(step["spender"], step["from"], step["to"], step["amount"], at)
    return {
        "balance": token.balance_of(step["account"]),
        "transferable": token.transferable_tokens(step["account"], at),
    }


def replay_scenario(
    scenario: dict[str, Any],
    strict: bool = False,
    base_config: LedgerConfig | None = None,
) -> tuple[VestedToken, list[StepResult]]:
    """
    Replay every operation of a scenario against a fresh ledger.

    Ledger errors are recorded per step. With ``strict`` the first failure
    is re-raised instead.
    """
    token = build_token(scenario, base_config)
    results: list[StepResult] = []

    operations = scenario.get("operations") or []
    if not isinstance(operations, list):
        raise ConfigurationError("Scenario 'operations' must be a list")

    for index, step in enumerate(operations):
        if not isinstance(step, dict):
            raise ConfigurationError(
                f"Step {index} must be a mapping, got {step!r}", details={"index": index}
            )
        op = str(step.get("op"))
        try:
            result = apply_operation(token, step)
        except KeyError as exc:
            raise ConfigurationError(
                f"Step {index} ({op}) is missing field {exc}", details={"index": index}
            ) from exc
        except LedgerError as exc:
            if strict or isinstance(exc, ConfigurationError):
                raise
            logger.info(
                "Scenario step %d failed: %s",
                index,
                exc,
                extra={"event": "scenario.step_failed", "index": index, "op": op},
            )
            results.append(StepResult(index, op, False, error=get_error_context(exc)))
            continue
        results.append(StepResult(index, op, True, result=result))

    return token, results
