"""
Commission Kernel

The referral-commission ledger core:
- Integer minor-unit balances owned by a single ledger engine
- Append-only, immutable-once-settled commission transactions
- Idempotent commission accrual per order
- Row locks plus optimistic versioning against concurrent overdraw
- Read-only reporting and reconciliation over the ledger
"""

__version__ = "0.1.0"
