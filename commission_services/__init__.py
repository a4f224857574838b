"""
commission_services -- orchestration over the commission kernel.

Owns transaction boundaries (TransactionRunner), translates inbound events
and admin requests into kernel calls, dispatches post-commit
notifications and serves the reporting views.
"""

from commission_services.commission_orchestrator import CommissionOrchestrator, PaymentOutcome
from commission_services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
)
from commission_services.payout_orchestrator import PayoutOrchestrator, PayoutResponse
from commission_services.reporting_service import ReportingService
from commission_services.transaction_runner import TransactionRunner

__all__ = [
    "CommissionOrchestrator",
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "NotificationSink",
    "PaymentOutcome",
    "PayoutOrchestrator",
    "PayoutResponse",
    "ReportingService",
    "TransactionRunner",
]
