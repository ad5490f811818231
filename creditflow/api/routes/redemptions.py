"""
Redemption API Routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.dependencies.auth import get_current_actor
from creditflow.api.routes.schemas import (
    ReasonRequest,
    RedemptionCreate,
    RedemptionProcess,
    RedemptionReceiptResponse,
    RedemptionResponse,
    TimelineEntryResponse,
    WalletTransactionResponse,
)
from creditflow.db.database import get_db
from creditflow.domain.roles import Actor
from creditflow.domain.services.redemption_processor import RedemptionProcessor
from creditflow.state_machine.states import RedemptionStatus

router = APIRouter()


@router.post(
    "/",
    response_model=RedemptionReceiptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Redeem a credit",
    description=(
        "Debits the wallet and consumes the chosen credit transaction. "
        "Each credit can be redeemed once."
    ),
)
async def request_redemption(
    payload: RedemptionCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    receipt = await processor.request_redemption(
        actor,
        payload.credit_transaction_id,
        notes=payload.notes,
        amount=payload.amount,
    )
    return RedemptionReceiptResponse(
        redemption=RedemptionResponse.model_validate(receipt.redemption),
        debit=WalletTransactionResponse.model_validate(receipt.debit),
        balance=receipt.balance,
    )


@router.get(
    "/my",
    response_model=List[RedemptionResponse],
    summary="List my redemptions",
)
async def list_my_redemptions(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.list_for_user(actor.user_id)


@router.get(
    "/queue",
    response_model=List[RedemptionResponse],
    summary="Accounts payout queue",
    description="Pending and processing redemptions, oldest first. Accounts roles only.",
)
async def list_queue(
    statuses: Optional[List[RedemptionStatus]] = Query(default=None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.list_queue(actor, tuple(statuses) if statuses else None)


@router.get(
    "/{redemption_id}",
    response_model=RedemptionResponse,
    summary="Get a redemption",
)
async def get_redemption(
    redemption_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.get(actor, redemption_id)


@router.get(
    "/{redemption_id}/timeline",
    response_model=List[TimelineEntryResponse],
    summary="Redemption timeline",
)
async def get_redemption_timeline(
    redemption_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.timeline_for(actor, redemption_id)


@router.post(
    "/{redemption_id}/processing",
    response_model=RedemptionResponse,
    summary="Mark a redemption as being processed",
)
async def mark_processing(
    redemption_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.mark_processing(actor, redemption_id)


@router.post(
    "/{redemption_id}/process",
    response_model=RedemptionResponse,
    summary="Complete a payout",
    description=(
        "Records the payment reference. The employee's currency is re-derived first; "
        "a payment currency that disagrees is rejected and the redemption stays as it was."
    ),
)
async def process_redemption(
    redemption_id: int,
    payload: RedemptionProcess,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.process_redemption(
        actor,
        redemption_id,
        payload.transaction_reference,
        payment_currency=payload.payment_currency,
        payment_notes=payload.payment_notes,
    )


@router.post(
    "/{redemption_id}/reject",
    response_model=RedemptionResponse,
    summary="Reject a redemption",
    description="The redeemed amount is credited back to the wallet.",
)
async def reject_redemption(
    redemption_id: int,
    payload: ReasonRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    processor = RedemptionProcessor(db)
    return await processor.reject_redemption(actor, redemption_id, payload.reason)
