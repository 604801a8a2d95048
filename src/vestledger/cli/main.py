#!/usr/bin/env python3
"""
vestledger CLI

Commands:
- run: replay a YAML scenario against a fresh ledger and show the result
- schedule: print the vesting curve of a single grant
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from vestledger.cli.scenario import load_scenario, replay_scenario
from vestledger.core.config import load_config
from vestledger.core.exceptions import LedgerError
from vestledger.core.logging_config import setup_logging
from vestledger.core.vesting import TokenGrant, validate_schedule

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="YAML file with ledger configuration")
@click.option("--log-level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
              help="Override VESTLEDGER_LOG_LEVEL")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None):
    """Time-locked token grant ledger."""
    try:
        config = load_config(config_path)
    except LedgerError as exc:
        _handle_cli_error(exc)
    setup_logging(name="vestledger", level=log_level or config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("run")
@click.argument("scenario_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "json_output", is_flag=True, help="Print results as JSON")
@click.option("--strict", is_flag=True, help="Stop at the first failed operation")
@click.option("--at", "at", type=int, default=None,
              help="Timestamp for transferable amounts (defaults to the last operation)")
@click.pass_context
def run_scenario(ctx: click.Context, scenario_path: str, json_output: bool, strict: bool, at: int | None):
    """
    Replay a scenario file and show balances and grants.

    Example:
        vestledger run examples/scenario.yaml --json
    """
    try:
        scenario = load_scenario(scenario_path)
        token, results = replay_scenario(scenario, strict=strict, base_config=ctx.obj["config"])
    except LedgerError as exc:
        _handle_cli_error(exc)
        return

    as_of = at if at is not None else (token.last_timestamp or 0)
    accounts = sorted(set(token.balances) | set(token.engine.grants))

    if json_output:
        payload = {
            "as_of": as_of,
            "steps": [r.to_dict() for r in results],
            "accounts": {
                account: {
                    "balance": token.balance_of(account),
                    "transferable": token.transferable_tokens(account, as_of),
                }
                for account in accounts
            },
            "state": token.to_dict(),
        }
        click.echo(json.dumps(payload, indent=2))
        return

    steps = Table(title="Operations", box=box.SIMPLE)
    steps.add_column("#", justify="right")
    steps.add_column("Op")
    steps.add_column("Result")
    for r in results:
        if r.ok:
            outcome = f"[green]{escape(str(r.result))}"
        else:
            outcome = f"[red]{r.error['error_type']}: {escape(r.error['error_message'])}"
        steps.add_row(str(r.index), r.op, outcome)
    console.print(steps)

    balances = Table(box=box.ROUNDED)
    balances.add_column("Account", style="cyan")
    balances.add_column("Balance", justify="right")
    balances.add_column("Transferable", justify="right", style="green")
    balances.add_column("Grants", justify="right")
    for account in accounts:
        balances.add_row(
            account,
            str(token.balance_of(account)),
            str(token.transferable_tokens(account, as_of)),
            str(token.token_grants_count(account)),
        )
    console.print(Panel(balances, title=f"[bold green]Ledger at t={as_of}", border_style="green"))


def _curve_points(start: int, cliff: int, vesting: int, lock_until: int, step: int | None) -> list[int]:
    end = max(vesting, lock_until)
    if step is None:
        step = max(1, (end - start) // 10)
    points = set(range(start, end + 1, step))
    points.update({start, cliff, vesting, lock_until, end})
    return sorted(p for p in points if start <= p <= end)


@cli.command("schedule")
@click.option("--value", type=int, required=True, help="Granted amount")
@click.option("--start", type=int, required=True, help="Vesting start timestamp")
@click.option("--cliff", type=int, required=True, help="Cliff timestamp")
@click.option("--vesting", type=int, required=True, help="Full vesting timestamp")
@click.option("--lock-until", type=int, default=None, help="Transfer lock timestamp (defaults to start)")
@click.option("--step", type=click.IntRange(min=1), default=None, help="Sampling interval")
@click.option("--json", "json_output", is_flag=True, help="Print the curve as JSON")
def schedule(value: int, start: int, cliff: int, vesting: int, lock_until: int | None,
             step: int | None, json_output: bool):
    """Print vested and unlocked amounts of one grant over time."""
    lock_until = start if lock_until is None else lock_until
    try:
        validate_schedule(start, cliff, vesting)
    except LedgerError as exc:
        _handle_cli_error(exc)
        return

    grant = TokenGrant(
        grant_id=0, granter="", value=value, start=start, cliff=cliff, vesting=vesting,
        lock_until=lock_until, revocable=False, burns_on_revoke=False,
    )
    rows: list[dict[str, Any]] = [
        {
            "t": t,
            "vested": grant.vested_amount(t),
            "unlocked": grant.unlocked_amount(t),
            "locked": grant.locked_amount(t),
        }
        for t in _curve_points(start, cliff, vesting, lock_until, step)
    ]

    if json_output:
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(title=f"Grant of {value}", box=box.SIMPLE)
    for column in ("t", "vested", "unlocked", "locked"):
        table.add_column(column, justify="right")
    for row in rows:
        table.add_row(*(str(row[c]) for c in ("t", "vested", "unlocked", "locked")))
    console.print(table)


def main():
    """Console script entry point."""
    return cli(obj={})


if __name__ == "__main__":
    sys.exit(main() or 0)
