"""
Credit Request Model - Incentive claims moving through the approval workflow
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.types import JSON

from creditflow.db.database import Base, enum_values
from creditflow.db.models.user import Currency
from creditflow.state_machine.states import CreditRequestStatus, CreditRequestType


class CreditRequest(Base):
    """Never deleted; status only changes through the transition table"""

    __tablename__ = "credit_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    initiator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    hod_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    type = Column(
        SQLEnum(CreditRequestType, name="credit_request_type", values_callable=enum_values),
        nullable=False,
    )
    policy_id = Column(Integer, ForeignKey("policies.id"), nullable=True)

    base_amount = Column(Numeric(12, 2), nullable=False)
    bonus = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    deductions = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(
        SQLEnum(Currency, name="currency_code", values_callable=enum_values),
        nullable=False,
    )

    status = Column(
        SQLEnum(CreditRequestStatus, name="credit_request_status", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    notes = Column(Text, nullable=True)
    # Free-form breakdown supplied by the initiator (e.g. per-line incentive items)
    calculation_breakdown = Column(JSON, nullable=True)

    # Signature metadata (policy requests)
    signature_document_id = Column(String(128), nullable=True)
    user_signature = Column(Text, nullable=True)
    user_signed_at = Column(DateTime, nullable=True)
    user_rejection_reason = Column(Text, nullable=True)

    hod_approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    hod_approved_at = Column(DateTime, nullable=True)
    hod_rejection_reason = Column(Text, nullable=True)
    hod_rejected_at = Column(DateTime, nullable=True)

    employee_approved_at = Column(DateTime, nullable=True)
    employee_rejection_reason = Column(Text, nullable=True)
    employee_rejected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # amount = base + bonus - deductions, tolerant of binary rounding on SQLite
        CheckConstraint(
            "abs(amount - (base_amount + bonus - deductions)) < 0.005",
            name="ck_credit_requests_amount_derived",
        ),
        CheckConstraint(
            "base_amount >= 0 AND bonus >= 0 AND deductions >= 0",
            name="ck_credit_requests_components_non_negative",
        ),
        CheckConstraint("amount > 0", name="ck_credit_requests_amount_positive"),
    )
