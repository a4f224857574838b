"""
Configuration Loader (``commission_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a frozen
``CommissionConfig``.  The single public entry point for runtime config
is ``commission_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` naming the offending key; no
  silent defaults for malformed values.
* Unknown keys are rejected so that a typo cannot silently fall back to a
  default.
* Money values are written as decimal major-unit strings ("25.00") and
  converted to minor units here, never as floats.
* ``compute_checksum`` is a deterministic SHA-256 over the canonical JSON
  of the parsed YAML.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid or unknown values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from commission_config.schema import (
    CommissionConfig,
    MoneyConfig,
    PayoutConfig,
    ReferralConfig,
    ReportingConfig,
    RetryConfig,
)
from commission_kernel.db.types import to_minor_units, validate_currency
from commission_kernel.domain.commission import validate_commission_rate
from commission_kernel.exceptions import CommissionKernelError

_SECTIONS = {
    "money": MoneyConfig,
    "referral": ReferralConfig,
    "payout": PayoutConfig,
    "retry": RetryConfig,
    "reporting": ReportingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_commission_config(data: dict[str, Any]) -> CommissionConfig:
    """Parse and validate a configuration mapping."""
    unknown = set(data) - set(_SECTIONS) - {"config_id", "version"}
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    config_id = data.get("config_id")
    if not isinstance(config_id, str) or not config_id.strip():
        raise ValueError("config_id must be a non-empty string")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"version must be a positive integer, got {version!r}")

    money = _parse_section("money", data.get("money"))
    currency = _checked("money.currency", validate_currency, money.get("currency", "EUR"))

    referral = _parse_section("referral", data.get("referral"))
    if "default_commission_rate" in referral:
        referral["default_commission_rate"] = _checked(
            "referral.default_commission_rate",
            validate_commission_rate,
            str(referral["default_commission_rate"]),
        )
    prefix = referral.get("referral_code_prefix", "HKP")
    if not isinstance(prefix, str) or not prefix.isalnum():
        raise ValueError(f"referral.referral_code_prefix must be alphanumeric, got {prefix!r}")
    referral["referral_code_prefix"] = prefix.upper()

    payout = _parse_section("payout", data.get("payout"))
    if "minimum_payout" in payout:
        payout["minimum_payout"] = _checked(
            "payout.minimum_payout",
            lambda v: to_minor_units(v, currency),
            str(payout["minimum_payout"]),
        )

    retry = _parse_section("retry", data.get("retry"))
    reporting = _parse_section("reporting", data.get("reporting"))

    config = CommissionConfig(
        config_id=config_id.strip(),
        version=version,
        money=MoneyConfig(currency=currency),
        referral=ReferralConfig(**referral),
        payout=PayoutConfig(**payout),
        retry=RetryConfig(**retry),
        reporting=ReportingConfig(**reporting),
        checksum=compute_checksum(data),
    )
    _validate_ranges(config)
    return config


def _parse_section(name: str, raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{name} must be a mapping, got {type(raw).__name__}")
    allowed = {f.name for f in fields(_SECTIONS[name])}
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in {name}: {sorted(unknown)}")
    return dict(raw)


def _checked(key: str, fn, value: Any) -> Any:
    try:
        return fn(value)
    except CommissionKernelError as exc:
        raise ValueError(f"{key}: {exc}") from exc


def _validate_ranges(config: CommissionConfig) -> None:
    errors: list[str] = []
    if not isinstance(config.referral.default_commission_rate, Decimal):
        errors.append("referral.default_commission_rate must be a decimal")
    if _bad_int(config.referral.referral_window_days, minimum=1):
        errors.append("referral.referral_window_days must be an integer >= 1")
    if _bad_int(config.payout.minimum_payout, minimum=0):
        errors.append("payout.minimum_payout must be >= 0")
    if _bad_int(config.retry.max_attempts, minimum=1):
        errors.append("retry.max_attempts must be an integer >= 1")
    for key in (
        "backoff_base_seconds",
        "backoff_max_seconds",
        "lock_timeout_seconds",
        "statement_timeout_seconds",
    ):
        value = getattr(config.retry, key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            errors.append(f"retry.{key} must be a non-negative number")
    if _bad_int(config.reporting.summary_window_days, minimum=1):
        errors.append("reporting.summary_window_days must be an integer >= 1")
    if _bad_int(config.reporting.recent_transactions, minimum=1):
        errors.append("reporting.recent_transactions must be an integer >= 1")
    if _bad_int(config.reporting.default_page_size, minimum=1):
        errors.append("reporting.default_page_size must be an integer >= 1")
    if _bad_int(config.reporting.max_page_size, minimum=1):
        errors.append("reporting.max_page_size must be an integer >= 1")
    elif not _bad_int(config.reporting.default_page_size, minimum=1) and (
        config.reporting.default_page_size > config.reporting.max_page_size
    ):
        errors.append("reporting.default_page_size must not exceed max_page_size")
    if errors:
        raise ValueError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


def _bad_int(value: Any, minimum: int) -> bool:
    return isinstance(value, bool) or not isinstance(value, int) or value < minimum
