"""
Wallet Models - Append-only transaction ledger and the per-user balance cache
"""
import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)

from creditflow.db.database import Base, enum_values
from creditflow.db.models.user import Currency


class TransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class Wallet(Base):
    """
    Cached tail of a user's ledger.

    ``balance`` always equals the signed sum of the user's transactions; it is
    only written together with a ledger insert, guarded by ``version``.
    """

    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(
        SQLEnum(Currency, name="currency_code", values_callable=enum_values),
        nullable=False,
    )
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WalletTransaction(Base):
    """Immutable ledger entry; only the redemption fields of a credit are ever set later"""

    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(
        SQLEnum(TransactionType, name="transaction_type", values_callable=enum_values),
        nullable=False,
    )
    # Always positive; the sign comes from ``type``
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(
        SQLEnum(Currency, name="currency_code", values_callable=enum_values),
        nullable=False,
    )
    # Balance immediately after this entry
    balance = Column(Numeric(12, 2), nullable=False)

    # One credit per approved request
    credit_request_id = Column(Integer, ForeignKey("credit_requests.id"), unique=True, nullable=True)
    redemption_request_id = Column(Integer, ForeignKey("redemption_requests.id"), nullable=True, index=True)
    # At most one debit consumes a given credit
    linked_credit_txn_id = Column(Integer, ForeignKey("wallet_transactions.id"), unique=True, nullable=True)

    redeemed = Column(Boolean, nullable=False, default=False)
    redeemed_at = Column(DateTime, nullable=True)
    description = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_transactions_amount_positive"),
    )

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == TransactionType.CREDIT else -self.amount
