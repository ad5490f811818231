"""
Request/response models shared by the API routes
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from creditflow.db.models.user import Currency
from creditflow.db.models.wallet import TransactionType
from creditflow.state_machine.states import CreditRequestStatus, CreditRequestType, RedemptionStatus


# ==================== credit requests ====================

class CreditRequestCreate(BaseModel):
    user_id: int
    type: CreditRequestType
    base_amount: Decimal = Field(..., ge=0)
    bonus: Decimal = Field(default=Decimal("0"), ge=0)
    deductions: Decimal = Field(default=Decimal("0"), ge=0)
    # Optional; must equal base_amount + bonus - deductions when given
    amount: Optional[Decimal] = None
    policy_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    calculation_breakdown: Optional[dict[str, Any]] = None


class SignRequest(BaseModel):
    signature: str = Field(..., min_length=1)


class ReasonRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason cannot be blank")
        return v


class TimelineEntryResponse(BaseModel):
    sequence: int
    step: str
    role: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    signature_id: Optional[str] = None
    message: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="metadata_")
    created_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class CreditRequestResponse(BaseModel):
    id: int
    user_id: int
    initiator_id: int
    hod_id: Optional[int]
    type: CreditRequestType
    policy_id: Optional[int]
    base_amount: Decimal
    bonus: Decimal
    deductions: Decimal
    amount: Decimal
    currency: Currency
    status: CreditRequestStatus
    notes: Optional[str]
    calculation_breakdown: Optional[dict[str, Any]] = None
    signature_document_id: Optional[str] = None
    user_signed_at: Optional[datetime] = None
    user_rejection_reason: Optional[str] = None
    hod_approved_by: Optional[int] = None
    hod_approved_at: Optional[datetime] = None
    hod_rejection_reason: Optional[str] = None
    employee_approved_at: Optional[datetime] = None
    employee_rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreditRequestDetailResponse(CreditRequestResponse):
    timeline: list[TimelineEntryResponse] = []


# ==================== wallet ====================

class WalletTransactionResponse(BaseModel):
    id: int
    type: TransactionType
    amount: Decimal
    currency: Currency
    balance: Decimal
    credit_request_id: Optional[int] = None
    redemption_request_id: Optional[int] = None
    linked_credit_txn_id: Optional[int] = None
    redeemed: bool
    redeemed_at: Optional[datetime] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ApprovalResponse(BaseModel):
    request: CreditRequestResponse
    credit: Optional[WalletTransactionResponse] = None


class WalletBalanceResponse(BaseModel):
    user_id: int
    currency: Currency
    balance: Decimal
    earned: Decimal
    redeemed: Decimal
    pending: Decimal
    available: Decimal


# ==================== redemptions ====================

class RedemptionCreate(BaseModel):
    credit_transaction_id: int
    # Defaults to the full credit amount
    amount: Optional[Decimal] = Field(default=None, gt=0)
    notes: Optional[str] = Field(default=None, max_length=2000)


class RedemptionProcess(BaseModel):
    transaction_reference: str = Field(..., min_length=1, max_length=255)
    # Defaults to the employee's currency; any other value is rejected
    payment_currency: Optional[str] = None
    payment_notes: Optional[str] = Field(default=None, max_length=2000)


class RedemptionResponse(BaseModel):
    id: int
    user_id: int
    credit_transaction_id: int
    amount: Decimal
    currency: Currency
    status: RedemptionStatus
    notes: Optional[str] = None
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    transaction_reference: Optional[str] = None
    payment_currency: Optional[Currency] = None
    payment_notes: Optional[str] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RedemptionReceiptResponse(BaseModel):
    redemption: RedemptionResponse
    debit: WalletTransactionResponse
    balance: Decimal


# ==================== currency ====================

class ReconcileResponse(BaseModel):
    user_id: int
    previous: Optional[Currency]
    currency: Currency
    changed: bool


class ReconcileSummaryResponse(BaseModel):
    users: int
    changed: int
    results: list[ReconcileResponse]


# ==================== notifications ====================

class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    action_url: Optional[str] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    count: int


class MarkReadRequest(BaseModel):
    id: Optional[int] = Field(default=None, description="Omit to mark every notification as read")


class MarkReadResponse(BaseModel):
    updated: int
