"""
CommissionConfig schema.

Frozen dataclasses for the commission ledger's runtime settings.  YAML is
parsed into these types by the loader; nothing outside
``commission_config`` sees raw YAML.

Key distinction:
  default.yaml      = source artifact (human-authored, versioned)
  CommissionConfig  = runtime artifact (validated, frozen, checksummed)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MoneyConfig:
    """Currency of the ledger.  Amounts inside the kernel are minor units."""

    currency: str = "EUR"


@dataclass(frozen=True)
class ReferralConfig:
    """Partner defaults and referral-link behaviour."""

    default_commission_rate: Decimal = Decimal("10")
    referral_code_prefix: str = "HKP"
    referral_window_days: int = 30
    activate_on_registration: bool = False


@dataclass(frozen=True)
class PayoutConfig:
    """Payout limits, in minor units."""

    minimum_payout: int = 0


@dataclass(frozen=True)
class RetryConfig:
    """Transaction runner retry and timeout policy."""

    max_attempts: int = 5
    backoff_base_seconds: float = 0.05
    backoff_max_seconds: float = 1.0
    lock_timeout_seconds: float = 10.0
    statement_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class ReportingConfig:
    """Reporting view defaults."""

    summary_window_days: int = 30
    recent_transactions: int = 10
    default_page_size: int = 20
    max_page_size: int = 100


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommissionConfig:
    """The complete, validated configuration."""

    config_id: str
    version: int
    money: MoneyConfig = field(default_factory=MoneyConfig)
    referral: ReferralConfig = field(default_factory=ReferralConfig)
    payout: PayoutConfig = field(default_factory=PayoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    checksum: str = ""
