"""
Timeline Entry Model - Append-only audit trail keyed by entity
"""
import enum
from datetime import datetime
from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.types import JSON

from creditflow.db.database import Base, enum_values


class TimelineEntityType(str, enum.Enum):
    CREDIT_REQUEST = "credit_request"
    REDEMPTION_REQUEST = "redemption_request"
    WALLET_TRANSACTION = "wallet_transaction"


class TimelineEntry(Base):
    """Rows are inserted, never updated or deleted"""

    __tablename__ = "timeline_entries"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(
        SQLEnum(TimelineEntityType, name="timeline_entity_type", values_callable=enum_values),
        nullable=False,
    )
    entity_id = Column(Integer, nullable=False)
    # 1-based position within the entity's trail
    sequence = Column(Integer, nullable=False)

    step = Column(String(64), nullable=False)
    role = Column(String(32), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_name = Column(String(150), nullable=True)
    actor_email = Column(String(255), nullable=True)
    signature_id = Column(String(128), nullable=True)
    message = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "sequence", name="uq_timeline_entity_sequence"),
    )
