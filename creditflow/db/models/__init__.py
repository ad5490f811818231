"""
Database Models
"""
from creditflow.db.models.user import User, UserRole, EmployeeType, Currency
from creditflow.db.models.policy import Policy, EmployeePolicy, PolicyInitiator, EmployeeInitiator
from creditflow.db.models.credit_request import CreditRequest
from creditflow.db.models.wallet import Wallet, WalletTransaction, TransactionType
from creditflow.db.models.redemption_request import RedemptionRequest
from creditflow.db.models.timeline_entry import TimelineEntry, TimelineEntityType
from creditflow.db.models.notification import Notification
from creditflow.db.models.audit_log import AuditLog, AuditActionType

__all__ = [
    "User",
    "UserRole",
    "EmployeeType",
    "Currency",
    "Policy",
    "EmployeePolicy",
    "PolicyInitiator",
    "EmployeeInitiator",
    "CreditRequest",
    "Wallet",
    "WalletTransaction",
    "TransactionType",
    "RedemptionRequest",
    "TimelineEntry",
    "TimelineEntityType",
    "Notification",
    "AuditLog",
    "AuditActionType",
]
