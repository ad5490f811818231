"""
Helpers for end-to-end workflow scenarios.

Provides:
- short HTTP calls for each workflow step
- database assertions (request status, balance, ledger rows, timeline steps)
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.db.models.credit_request import CreditRequest
from creditflow.db.models.redemption_request import RedemptionRequest
from creditflow.db.models.timeline_entry import TimelineEntityType, TimelineEntry
from creditflow.db.models.wallet import TransactionType, WalletTransaction
from creditflow.domain.roles import Actor
from creditflow.domain.services.wallet_ledger import WalletLedger
from creditflow.state_machine.states import CreditRequestStatus, RedemptionStatus


# ============================================================================
# HTTP steps
# ============================================================================

async def file_request(client, headers: dict, body: dict) -> dict:
    response = await client.post("/api/credit-requests/", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def post_action(client, headers: dict, request_id: int, action: str, reason: Optional[str] = None):
    """POST /api/credit-requests/{id}/{action}; returns the raw response"""
    return await client.post(
        f"/api/credit-requests/{request_id}/{action}",
        json={"reason": reason} if reason is not None else None,
        headers=headers,
    )


async def redeem(client, headers: dict, credit_id: int, amount: Optional[str] = None):
    body = {"credit_transaction_id": credit_id}
    if amount is not None:
        body["amount"] = amount
    return await client.post("/api/redemptions/", json=body, headers=headers)


# ============================================================================
# Database assertions
# ============================================================================

async def assert_request_status(db: AsyncSession, request_id: int, expected: CreditRequestStatus) -> CreditRequest:
    request = await db.get(CreditRequest, request_id)
    await db.refresh(request)
    assert request.status == expected, f"request {request_id}: {request.status} != {expected}"
    return request


async def assert_redemption_status(
    db: AsyncSession, redemption_id: int, expected: RedemptionStatus
) -> RedemptionRequest:
    redemption = await db.get(RedemptionRequest, redemption_id)
    await db.refresh(redemption)
    assert redemption.status == expected
    return redemption


async def assert_wallet_balance(db: AsyncSession, actor: Actor, expected: str) -> None:
    balance = await WalletLedger(db).get_balance(actor.user_id)
    assert balance == Decimal(expected), f"balance {balance} != {expected}"


async def assert_ledger_count(
    db: AsyncSession,
    actor: Actor,
    expected: int,
    txn_type: Optional[TransactionType] = None,
) -> None:
    query = select(func.count()).select_from(WalletTransaction).where(WalletTransaction.user_id == actor.user_id)
    if txn_type is not None:
        query = query.where(WalletTransaction.type == txn_type)
    count = (await db.execute(query)).scalar_one()
    assert count == expected, f"ledger rows {count} != {expected}"


async def timeline_steps(db: AsyncSession, request_id: int) -> list[str]:
    result = await db.execute(
        select(TimelineEntry.step)
        .where(
            TimelineEntry.entity_type == TimelineEntityType.CREDIT_REQUEST,
            TimelineEntry.entity_id == request_id,
        )
        .order_by(TimelineEntry.sequence)
    )
    return list(result.scalars().all())
