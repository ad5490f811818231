"""
Redemption Request Model - Payout requests handled by the accounts team
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text

from creditflow.db.database import Base, enum_values
from creditflow.db.models.user import Currency
from creditflow.state_machine.states import RedemptionStatus


class RedemptionRequest(Base):
    __tablename__ = "redemption_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    credit_transaction_id = Column(
        Integer,
        ForeignKey("wallet_transactions.id", use_alter=True, name="fk_redemption_credit_txn"),
        unique=True,
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(
        SQLEnum(Currency, name="currency_code", values_callable=enum_values),
        nullable=False,
    )
    status = Column(
        SQLEnum(RedemptionStatus, name="redemption_status", values_callable=enum_values),
        nullable=False,
        default=RedemptionStatus.PENDING,
        index=True,
    )
    notes = Column(Text, nullable=True)

    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    transaction_reference = Column(String(255), nullable=True)
    payment_currency = Column(
        SQLEnum(Currency, name="currency_code", values_callable=enum_values),
        nullable=True,
    )
    payment_notes = Column(Text, nullable=True)

    rejected_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    proof_document_path = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
