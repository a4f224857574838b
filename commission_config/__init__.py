"""
commission_config -- single public entrypoint for commission configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``CommissionConfig``.  YAML
    loading is internal.

Architecture position:
    Configuration -- sits above ``commission_kernel`` and below
    ``commission_services``.  The kernel MUST NEVER import from
    ``commission_config``; orchestrators pass the values the kernel needs
    (currency, rate defaults, minimum payout) as arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or range validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``COMMISSION_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying ledger activity to the configuration that governed it.
"""

from __future__ import annotations

from pathlib import Path

from commission_config.loader import load_yaml_file, parse_commission_config
from commission_config.schema import (
    CommissionConfig,
    MoneyConfig,
    PayoutConfig,
    ReferralConfig,
    ReportingConfig,
    RetryConfig,
)
from commission_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> CommissionConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.
            Defaults to commission_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_commission_config(load_yaml_file(path))

    _logger.info(
        "COMMISSION_CONFIG_TRACE",
        extra={
            "trace_type": "COMMISSION_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "currency": config.money.currency,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "CommissionConfig",
    "MoneyConfig",
    "PayoutConfig",
    "ReferralConfig",
    "ReportingConfig",
    "RetryConfig",
    "get_active_config",
]
