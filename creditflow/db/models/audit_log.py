"""
Audit Log Model

Irreversible record of every state-changing operation: who did what to which entity.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.types import JSON

from creditflow.db.database import Base, enum_values


class AuditActionType(str, enum.Enum):
    CREDIT_REQUEST_CREATED = "credit_request_created"
    CREDIT_REQUEST_SIGNED = "credit_request_signed"
    CREDIT_REQUEST_REJECTED_BY_USER = "credit_request_rejected_by_user"
    CREDIT_REQUEST_HOD_APPROVED = "credit_request_hod_approved"
    CREDIT_REQUEST_APPROVED = "credit_request_approved"
    CREDIT_REQUEST_REJECTED_BY_HOD = "credit_request_rejected_by_hod"
    CREDIT_REQUEST_APPROVED_BY_EMPLOYEE = "credit_request_approved_by_employee"
    CREDIT_REQUEST_REJECTED_BY_EMPLOYEE = "credit_request_rejected_by_employee"
    REDEMPTION_REQUESTED = "redemption_requested"
    REDEMPTION_PROCESSING = "redemption_processing"
    REDEMPTION_PROCESSED = "redemption_processed"
    REDEMPTION_REJECTED = "redemption_rejected"
    CURRENCY_RECONCILED = "currency_reconciled"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    # NULL for system actions (signature webhook, scheduled reconciliation)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(
        SQLEnum(AuditActionType, name="audit_action_type", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    target_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
