"""
Wallet API Routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.dependencies.auth import get_current_actor
from creditflow.api.routes.schemas import WalletBalanceResponse, WalletTransactionResponse
from creditflow.core.exceptions import ErrorCode, NotFoundException
from creditflow.db.database import get_db
from creditflow.db.models.user import User
from creditflow.domain.roles import Actor
from creditflow.domain.services.currency_policy import currency_for
from creditflow.domain.services.wallet_ledger import WalletLedger

router = APIRouter()


@router.get(
    "/balance",
    response_model=WalletBalanceResponse,
    summary="Wallet summary",
    description=(
        "Current balance plus earned, redeemed and pending totals, "
        "in the caller's canonical currency."
    ),
)
async def get_balance(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await db.get(User, actor.user_id)
    if not user:
        raise NotFoundException("User", actor.user_id, ErrorCode.USER_NOT_FOUND)
    ledger = WalletLedger(db)
    summary = await ledger.get_summary(user.id, currency_for(user))
    return WalletBalanceResponse(
        user_id=summary.user_id,
        currency=summary.currency,
        balance=summary.available,
        earned=summary.earned,
        redeemed=summary.redeemed,
        pending=summary.pending,
        available=summary.available,
    )


@router.get(
    "/transactions",
    response_model=List[WalletTransactionResponse],
    summary="Ledger history",
    description="The caller's wallet transactions, newest first.",
)
async def list_transactions(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    ledger = WalletLedger(db)
    return await ledger.list_transactions(actor.user_id, limit)


@router.get(
    "/redeemable",
    response_model=List[WalletTransactionResponse],
    summary="Credits that can still be redeemed",
)
async def list_redeemable(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    ledger = WalletLedger(db)
    return await ledger.list_redeemable_credits(actor.user_id)
