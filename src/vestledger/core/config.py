"""
vestledger configuration.

Values come from ``VESTLEDGER_*`` environment variables and may be overlaid
by a YAML file. Environment variables win over the file so a deployment can
override a checked-in scenario setup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .access_control import ZERO_ADDRESS
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BURN_ADDRESS = "0x000000000000000000000000000000000000dead"
MAX_GRANTS_PER_ADDRESS = 20

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_VARS = {
    "burn_address": "VESTLEDGER_BURN_ADDRESS",
    "max_grants_per_address": "VESTLEDGER_MAX_GRANTS_PER_ADDRESS",
    "log_level": "VESTLEDGER_LOG_LEVEL",
    "enforce_monotonic_time": "VESTLEDGER_ENFORCE_MONOTONIC_TIME",
}


@dataclass(frozen=True)
class LedgerConfig:
    """Tunables for one ledger instance."""

    burn_address: str = DEFAULT_BURN_ADDRESS
    max_grants_per_address: int = MAX_GRANTS_PER_ADDRESS
    log_level: str = "INFO"
    enforce_monotonic_time: bool = True

    def __post_init__(self) -> None:
        if not self.burn_address or self.burn_address.lower() == ZERO_ADDRESS:
            raise ConfigurationError(
                "burn_address must be a non-zero address",
                details={"burn_address": self.burn_address},
            )
        if self.max_grants_per_address < 1:
            raise ConfigurationError(
                "max_grants_per_address must be at least 1",
                details={"max_grants_per_address": self.max_grants_per_address},
            )
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                details={"log_level": self.log_level},
            )


def _parse_int(name: str, raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _parse_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def coerce_config_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """Convert raw env or YAML values to LedgerConfig field types."""
    known = {f.name for f in fields(LedgerConfig)}
    unknown = set(values) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}"
        )

    coerced: dict[str, Any] = {}
    for key, raw in values.items():
        if key == "max_grants_per_address":
            coerced[key] = _parse_int(key, raw)
        elif key == "enforce_monotonic_time":
            coerced[key] = _parse_bool(key, raw)
        else:
            coerced[key] = str(raw).strip()
    return coerced


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """
    Build a LedgerConfig from an optional YAML file and the environment.

    Args:
        path: YAML file with a mapping of LedgerConfig fields (optional)
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        Validated LedgerConfig

    Raises:
        ConfigurationError: If the file or any value is invalid
    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    if path is not None:
        try:
            with open(path, encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        values.update(data)

    for field_name, env_var in ENV_VARS.items():
        raw = environ.get(env_var, "").strip()
        if raw:
            values[field_name] = raw

    config = LedgerConfig(**coerce_config_values(values))
    logger.debug(
        "Ledger configuration loaded",
        extra={
            "event": "config.loaded",
            "config_source": str(path) if path else "env",
            "max_grants_per_address": config.max_grants_per_address,
        },
    )
    return config
