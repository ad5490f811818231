"""
Domain Services
"""
from creditflow.domain.services.audit_service import AuditService
from creditflow.domain.services.credit_request_service import CreditRequestInput, CreditRequestService
from creditflow.domain.services.currency_policy import CurrencyPolicy, currency_for
from creditflow.domain.services.notification_service import NotificationSender
from creditflow.domain.services.redemption_processor import RedemptionProcessor
from creditflow.domain.services.timeline_recorder import TimelineRecorder
from creditflow.domain.services.wallet_ledger import WalletLedger

__all__ = [
    "AuditService",
    "CreditRequestInput",
    "CreditRequestService",
    "CurrencyPolicy",
    "currency_for",
    "NotificationSender",
    "RedemptionProcessor",
    "TimelineRecorder",
    "WalletLedger",
]
