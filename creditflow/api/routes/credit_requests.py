"""
Credit Request API Routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.dependencies.auth import get_current_actor
from creditflow.api.routes.schemas import (
    ApprovalResponse,
    CreditRequestCreate,
    CreditRequestDetailResponse,
    CreditRequestResponse,
    ReasonRequest,
    SignRequest,
    TimelineEntryResponse,
)
from creditflow.db.database import get_db
from creditflow.domain.roles import Actor
from creditflow.domain.services.credit_request_service import CreditRequestInput, CreditRequestService
from creditflow.state_machine.states import CreditRequestStatus

router = APIRouter()


@router.post(
    "/",
    response_model=CreditRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a credit request",
    description=(
        "Initiators file policy or freelancer incentive requests for an employee. "
        "Policy requests start pending signature; freelancer requests go straight to the HOD."
    ),
)
async def create_credit_request(
    payload: CreditRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.create(actor, CreditRequestInput(**payload.model_dump()))


@router.get(
    "/my",
    response_model=List[CreditRequestResponse],
    summary="List my credit requests",
    description="Requests filed for the caller, newest first. Optionally filtered by status.",
)
async def list_my_requests(
    status_filter: Optional[CreditRequestStatus] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.list_for_user(actor.user_id, status_filter)


@router.get(
    "/pending-approvals",
    response_model=List[CreditRequestResponse],
    summary="Requests waiting for HOD approval",
    description="HODs see requests of their own reports; admins see every pending request.",
)
async def list_pending_approvals(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.list_pending_approvals(actor)


@router.get(
    "/submissions",
    response_model=List[CreditRequestResponse],
    summary="Requests I initiated",
)
async def list_submissions(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.list_submissions(actor)


@router.get(
    "/{request_id}",
    response_model=CreditRequestDetailResponse,
    summary="Get a credit request with its timeline",
)
async def get_credit_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    request = await service.get(actor, request_id)
    entries = await service.timeline_entries(request.id)
    detail = CreditRequestDetailResponse.model_validate(request)
    detail.timeline = [TimelineEntryResponse.model_validate(entry) for entry in entries]
    return detail


@router.post(
    "/{request_id}/sign",
    response_model=CreditRequestResponse,
    summary="Sign a policy request",
    description="The employee signs; the request moves to pending approval.",
)
async def sign_credit_request(
    request_id: int,
    payload: SignRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.sign(actor, request_id, payload.signature)


@router.post(
    "/{request_id}/reject",
    response_model=CreditRequestResponse,
    summary="Decline to sign a policy request",
)
async def reject_credit_request(
    request_id: int,
    payload: ReasonRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.reject_by_user(actor, request_id, payload.reason)


@router.post(
    "/{request_id}/approve",
    response_model=ApprovalResponse,
    summary="HOD approval",
    description=(
        "Policy requests are approved and the wallet is credited in the same transaction. "
        "Freelancer requests move on to the employee."
    ),
)
async def approve_credit_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    request, credit = await service.approve_by_hod(actor, request_id)
    return ApprovalResponse(
        request=CreditRequestResponse.model_validate(request),
        credit=credit,
    )


@router.post(
    "/{request_id}/reject-by-hod",
    response_model=CreditRequestResponse,
    summary="HOD rejection",
)
async def reject_credit_request_by_hod(
    request_id: int,
    payload: ReasonRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.reject_by_hod(actor, request_id, payload.reason)


@router.post(
    "/{request_id}/approve-by-employee",
    response_model=ApprovalResponse,
    summary="Freelancer accepts the approved amount",
)
async def approve_credit_request_by_employee(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    request, credit = await service.approve_by_employee(actor, request_id)
    return ApprovalResponse(
        request=CreditRequestResponse.model_validate(request),
        credit=credit,
    )


@router.post(
    "/{request_id}/reject-by-employee",
    response_model=CreditRequestResponse,
    summary="Freelancer rejects the approved amount",
)
async def reject_credit_request_by_employee(
    request_id: int,
    payload: ReasonRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = CreditRequestService(db)
    return await service.reject_by_employee(actor, request_id, payload.reason)
