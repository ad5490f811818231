"""
Currency reconciliation routes (admin only)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.dependencies.auth import get_current_actor
from creditflow.api.routes.schemas import ReconcileResponse, ReconcileSummaryResponse
from creditflow.core.exceptions import AuthorizationException
from creditflow.core.logging import get_logger
from creditflow.db.database import get_db
from creditflow.domain.roles import Actor
from creditflow.domain.services.currency_policy import CurrencyPolicy, ReconcileResult

logger = get_logger(__name__)

router = APIRouter()


def _require_admin(actor: Actor) -> None:
    if not actor.capabilities.can_administer:
        raise AuthorizationException("Only administrators can reconcile currencies")


def _to_response(outcome: ReconcileResult) -> ReconcileResponse:
    return ReconcileResponse(
        user_id=outcome.user_id,
        previous=outcome.previous,
        currency=outcome.currency,
        changed=outcome.changed,
    )


@router.post(
    "/reconcile",
    response_model=ReconcileSummaryResponse,
    summary="Reconcile every user's currency",
    description=(
        "Re-derives each user's currency from their employee type and fixes users "
        "and wallets that disagree. Historical records are left as written."
    ),
)
async def reconcile_all(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(actor)
    policy = CurrencyPolicy(db)
    outcomes = await policy.reconcile_all(actor_id=actor.user_id)
    return ReconcileSummaryResponse(
        users=len(outcomes),
        changed=sum(1 for outcome in outcomes if outcome.changed),
        results=[_to_response(outcome) for outcome in outcomes],
    )


@router.post(
    "/reconcile/{user_id}",
    response_model=ReconcileResponse,
    summary="Reconcile one user's currency",
)
async def reconcile_user(
    user_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(actor)
    policy = CurrencyPolicy(db)
    try:
        outcome = await policy.reconcile(user_id, actor_id=actor.user_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return _to_response(outcome)
