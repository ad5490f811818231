"""
Credit Request Service - creates requests and fires workflow events

Every event runs the same sequence inside one database transaction:

1. lock the request row
2. resolve the event against the transition table (pure)
3. check the actor may fire it
4. apply the status change as a conditional update (WHERE status = source)
5. append the timeline entry and audit row, post the wallet credit if the row says so
6. commit

Notifications, email and e-signature requests run after the commit and never
undo it.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.exceptions import (
    AmountMismatchError,
    AuthorizationException,
    ErrorCode,
    InvalidStateTransitionError,
    NotFoundException,
    PreconditionException,
    ValidationException,
)
from creditflow.core.logging import get_logger, log_async_operation
from creditflow.db.models.audit_log import AuditActionType
from creditflow.db.models.credit_request import CreditRequest
from creditflow.db.models.policy import EmployeeInitiator, EmployeePolicy, PolicyInitiator
from creditflow.db.models.timeline_entry import TimelineEntry
from creditflow.db.models.user import User
from creditflow.db.models.wallet import WalletTransaction
from creditflow.domain.roles import Actor
from creditflow.domain.services.audit_service import AuditService
from creditflow.domain.services.currency_policy import currency_for, format_amount
from creditflow.domain.services.email_service import (
    EmailService,
    pending_approval_email,
    request_rejected_email,
)
from creditflow.domain.services.notification_service import NotificationSender
from creditflow.domain.services.signature_service import SignatureService
from creditflow.domain.services.timeline_recorder import EntityRef, TimelineEvent, TimelineRecorder
from creditflow.domain.services.wallet_ledger import WalletLedger
from creditflow.state_machine.credit_request_machine import (
    ActorKind,
    CreditRequestEvent,
    Transition,
    TransitionFailure,
    event_actor,
    initial_status,
    resolve_transition,
    wrong_state_message,
)
from creditflow.state_machine.states import CreditRequestStatus, CreditRequestType, TimelineStep

logger = get_logger(__name__)

_CENT = Decimal("0.01")

CREDIT_DESCRIPTIONS = {
    CreditRequestType.POLICY: "Policy Credit",
    CreditRequestType.FREELANCER: "Freelancer Amount",
}

_AUDIT_ACTIONS: dict[tuple[CreditRequestEvent, CreditRequestStatus], AuditActionType] = {
    (CreditRequestEvent.SIGN, CreditRequestStatus.PENDING_APPROVAL): AuditActionType.CREDIT_REQUEST_SIGNED,
    (CreditRequestEvent.SIGNATURE_COMPLETED, CreditRequestStatus.PENDING_APPROVAL): AuditActionType.CREDIT_REQUEST_SIGNED,
    (CreditRequestEvent.EMPLOYEE_REJECT, CreditRequestStatus.REJECTED_BY_USER): AuditActionType.CREDIT_REQUEST_REJECTED_BY_USER,
    (CreditRequestEvent.HOD_APPROVE, CreditRequestStatus.PENDING_EMPLOYEE_APPROVAL): AuditActionType.CREDIT_REQUEST_HOD_APPROVED,
    (CreditRequestEvent.HOD_APPROVE, CreditRequestStatus.APPROVED): AuditActionType.CREDIT_REQUEST_APPROVED,
    (CreditRequestEvent.HOD_REJECT, CreditRequestStatus.REJECTED_BY_HOD): AuditActionType.CREDIT_REQUEST_REJECTED_BY_HOD,
    (CreditRequestEvent.EMPLOYEE_APPROVE, CreditRequestStatus.APPROVED): AuditActionType.CREDIT_REQUEST_APPROVED_BY_EMPLOYEE,
    (CreditRequestEvent.EMPLOYEE_REJECT, CreditRequestStatus.REJECTED_BY_EMPLOYEE): AuditActionType.CREDIT_REQUEST_REJECTED_BY_EMPLOYEE,
}

# the initiator is emailed when the request they filed is turned down after review
_INITIATOR_EMAIL_TARGETS = frozenset({
    CreditRequestStatus.REJECTED_BY_HOD,
    CreditRequestStatus.REJECTED_BY_EMPLOYEE,
})


def _money(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(_CENT, rounding=ROUND_HALF_UP)


def derive_amount(base_amount: Any, bonus: Any = 0, deductions: Any = 0) -> Decimal:
    """amount = base + bonus - deductions, rounded to cents; components must be non-negative"""
    parts = {}
    for name, raw in (("base_amount", base_amount), ("bonus", bonus), ("deductions", deductions)):
        try:
            value = _money(raw)
        except ArithmeticError:
            raise ValidationException(f"{name} is not a number", field=name, error_code=ErrorCode.INVALID_AMOUNT)
        if value < 0:
            raise ValidationException(f"{name} cannot be negative", field=name, error_code=ErrorCode.INVALID_AMOUNT)
        parts[name] = value
    amount = parts["base_amount"] + parts["bonus"] - parts["deductions"]
    if amount <= 0:
        raise ValidationException(
            "Amount must be greater than zero",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
        )
    return amount


@dataclass
class CreditRequestInput:
    user_id: int
    type: CreditRequestType
    base_amount: Decimal
    bonus: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")
    amount: Optional[Decimal] = None
    policy_id: Optional[int] = None
    notes: Optional[str] = None
    calculation_breakdown: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class Notice:
    user_ids: tuple[int, ...]
    title: str
    message: str
    action_url: Optional[str] = None
    kind: str = "info"


@dataclass
class _Fired:
    request: CreditRequest
    transition: Transition
    employee: User
    reason: Optional[str] = None
    credit: Optional[WalletTransaction] = None


def notices_for_creation(request: CreditRequest, employee: User) -> list[Notice]:
    money = format_amount(request.amount, request.currency)
    if request.type == CreditRequestType.FREELANCER:
        own = "A freelancer credit request has been submitted and is pending HOD approval."
    elif request.status == CreditRequestStatus.PENDING_SIGNATURE:
        own = "A policy-based credit request is awaiting your signature."
    else:
        own = "A policy credit request has been submitted and is pending HOD approval."
    notices = [Notice((employee.id,), "Credit request created", own, "/transactions", "action")]
    if request.status == CreditRequestStatus.PENDING_APPROVAL and request.hod_id:
        notices.append(Notice(
            (request.hod_id,),
            "Credit request pending approval",
            f"{employee.display_name} has a {money} credit request awaiting your approval.",
            "/approvals",
            "action",
        ))
    return notices


def notices_for_transition(fired: _Fired) -> list[Notice]:
    """In-app notices sent after a committed transition"""
    request, transition, employee = fired.request, fired.transition, fired.employee
    money = format_amount(request.amount, request.currency)
    name = employee.display_name
    reason = fired.reason or ""
    others = tuple(uid for uid in (request.initiator_id,) if uid != employee.id)
    event, target = transition.event, transition.target

    if event in (CreditRequestEvent.SIGN, CreditRequestEvent.SIGNATURE_COMPLETED):
        return [Notice(
            (request.hod_id,) if request.hod_id else (),
            "Credit request ready for approval",
            f"{name} signed the {money} credit request. It is awaiting your approval.",
            "/approvals",
            "action",
        )]
    if target == CreditRequestStatus.PENDING_EMPLOYEE_APPROVAL:
        return [Notice(
            (employee.id,),
            "Approval required",
            f"Your freelancer incentive for {money} is awaiting your approval.",
            "/transactions",
            "action",
        )]
    if target == CreditRequestStatus.APPROVED:
        notices = [Notice(
            (employee.id,),
            "Credit request approved",
            f"Your credit request for {money} was approved.",
            "/transactions",
            "success",
        )]
        if others:
            notices.append(Notice(
                others,
                "Credit request approved",
                f"The {money} credit request for {name} was approved.",
                None,
                "success",
            ))
        return notices
    if target == CreditRequestStatus.REJECTED_BY_HOD:
        notices = [Notice(
            (employee.id,),
            "Credit request rejected",
            f"Your credit request for {money} was rejected. Reason: {reason}",
            "/transactions",
            "warning",
        )]
        if others:
            notices.append(Notice(
                others,
                "Request rejected",
                f"The {money} credit request for {name} was rejected by the HOD. Reason: {reason}",
                None,
                "warning",
            ))
        return notices
    if target == CreditRequestStatus.REJECTED_BY_USER:
        return [Notice(
            tuple(dict.fromkeys(uid for uid in (request.initiator_id, request.hod_id) if uid and uid != employee.id)),
            "Request rejected",
            f"{name} declined to sign the {money} credit request. Reason: {reason}",
            None,
            "warning",
        )]
    if target == CreditRequestStatus.REJECTED_BY_EMPLOYEE:
        return [Notice(
            tuple(dict.fromkeys(uid for uid in (request.initiator_id, request.hod_id) if uid and uid != employee.id)),
            "Freelancer request rejected",
            f"{name} rejected the {money} freelancer incentive. Reason: {reason}",
            None,
            "warning",
        )]
    return []


class CreditRequestService:
    """Approval workflow for credit requests"""

    def __init__(self, db: AsyncSession, ledger: Optional[WalletLedger] = None):
        self.db = db
        self.ledger = ledger or WalletLedger(db)
        self.timeline = TimelineRecorder(db)
        self.audit = AuditService(db)
        self.notifier = NotificationSender(db)

    # ==================== loading ====================

    async def _load_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundException("User", user_id, ErrorCode.USER_NOT_FOUND)
        return user

    async def _load_for_update(self, request_id: int) -> CreditRequest:
        result = await self.db.execute(
            select(CreditRequest)
            .where(CreditRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundException("CreditRequest", request_id, ErrorCode.CREDIT_REQUEST_NOT_FOUND)
        return request

    # ==================== creation ====================

    async def _check_policy_scope(self, actor: Actor, employee: User, policy_id: Optional[int]) -> None:
        if not policy_id:
            raise ValidationException("policy_id is required for policy requests", field="policy_id")
        result = await self.db.execute(
            select(EmployeePolicy).where(
                EmployeePolicy.user_id == employee.id,
                EmployeePolicy.policy_id == policy_id,
            )
        )
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise ValidationException(
                "Policy is not assigned to this employee",
                field="policy_id",
                error_code=ErrorCode.POLICY_NOT_ASSIGNED,
            )
        if actor.capabilities.is_manager:
            return
        linked = await self.db.execute(
            select(PolicyInitiator.id).where(
                PolicyInitiator.assignment_id == assignment.id,
                PolicyInitiator.initiator_id == actor.user_id,
            )
        )
        if linked.scalar_one_or_none() is None:
            raise AuthorizationException(
                "You are not an initiator for this policy assignment",
                error_code=ErrorCode.INITIATOR_NOT_LINKED,
            )

    async def _check_freelancer_scope(self, actor: Actor, employee: User) -> None:
        if not (employee.employee_type and employee.employee_type.is_freelancer):
            raise ValidationException(
                "Freelancer requests can only be filed for freelancers",
                field="user_id",
                error_code=ErrorCode.INVALID_EMPLOYEE_TYPE,
            )
        if actor.capabilities.is_manager:
            return
        linked = await self.db.execute(
            select(EmployeeInitiator.id).where(
                EmployeeInitiator.employee_id == employee.id,
                EmployeeInitiator.initiator_id == actor.user_id,
            )
        )
        if linked.scalar_one_or_none() is None:
            raise AuthorizationException(
                "You are not an initiator for this freelancer",
                error_code=ErrorCode.INITIATOR_NOT_LINKED,
            )

    @log_async_operation("credit_request.create")
    async def create(self, actor: Actor, data: CreditRequestInput) -> CreditRequest:
        if not actor.capabilities.can_initiate:
            raise AuthorizationException("Your role cannot file credit requests")

        employee = await self._load_user(data.user_id)
        if not employee.is_active:
            raise ValidationException("Employee is inactive", field="user_id", error_code=ErrorCode.USER_INACTIVE)
        if not employee.hod_id:
            raise ValidationException(
                "Employee has no HOD assigned",
                field="user_id",
                error_code=ErrorCode.HOD_NOT_ASSIGNED,
            )

        amount = derive_amount(data.base_amount, data.bonus, data.deductions)
        if data.amount is not None:
            supplied = _money(data.amount)
            if supplied != amount:
                raise AmountMismatchError(supplied, amount)

        request_type = CreditRequestType(data.type)
        if request_type == CreditRequestType.POLICY:
            await self._check_policy_scope(actor, employee, data.policy_id)
            policy_id = data.policy_id
        else:
            await self._check_freelancer_scope(actor, employee)
            policy_id = None

        status = initial_status(request_type, actor.capabilities.is_manager)
        currency = currency_for(employee)

        try:
            request = CreditRequest(
                user_id=employee.id,
                initiator_id=actor.user_id,
                hod_id=employee.hod_id,
                type=request_type,
                policy_id=policy_id,
                base_amount=_money(data.base_amount),
                bonus=_money(data.bonus),
                deductions=_money(data.deductions),
                amount=amount,
                currency=currency,
                status=status,
                notes=data.notes,
                calculation_breakdown=data.calculation_breakdown,
            )
            self.db.add(request)
            await self.db.flush()

            await self.timeline.append(
                EntityRef.credit_request(request.id),
                TimelineEvent.by(
                    actor,
                    TimelineStep.REQUEST_INITIATED,
                    f"{request_type.value.capitalize()} credit request for {format_amount(amount, currency)} created",
                    metadata={
                        "base_amount": str(request.base_amount),
                        "bonus": str(request.bonus),
                        "deductions": str(request.deductions),
                        "amount": str(amount),
                        "currency": currency.value,
                        "status": status.value,
                    },
                ),
            )
            self.audit.record(
                action=AuditActionType.CREDIT_REQUEST_CREATED,
                entity_type="credit_request",
                entity_id=request.id,
                actor_user_id=actor.user_id,
                target_user_id=employee.id,
                details={"type": request_type.value, "amount": str(amount), "status": status.value},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Credit request created",
            extra_data={
                "credit_request_id": request.id,
                "user_id": employee.id,
                "initiator_id": actor.user_id,
                "type": request_type.value,
                "status": status.value,
                "amount": str(amount),
            },
        )

        await self._after_create(request, employee)
        await self.db.refresh(request)
        return request

    async def _after_create(self, request: CreditRequest, employee: User) -> None:
        request_id, status = request.id, request.status
        name, email = employee.display_name, employee.email
        money = format_amount(request.amount, request.currency)
        notices = notices_for_creation(request, employee)
        hod = await self.db.get(User, request.hod_id) if status == CreditRequestStatus.PENDING_APPROVAL else None
        hod_email = hod.email if hod else None

        for notice in notices:
            await self.notifier.notify_many(notice.user_ids, notice.title, notice.message, notice.action_url, notice.kind)

        if hod_email:
            await EmailService.send(pending_approval_email(hod_email, name, money, request_id))

        if status == CreditRequestStatus.PENDING_SIGNATURE:
            document_id = await SignatureService.request_signature(request_id, email, name, money)
            if document_id:
                try:
                    await self.db.execute(
                        update(CreditRequest)
                        .where(CreditRequest.id == request_id)
                        .values(signature_document_id=document_id)
                    )
                    await self.db.commit()
                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.warning(
                        "Could not store signature document id",
                        extra_data={"credit_request_id": request_id, "error": str(e)},
                    )

    # ==================== transitions ====================

    def _authorize(self, actor: Optional[Actor], request: CreditRequest, kind: ActorKind) -> None:
        if kind == ActorKind.SYSTEM:
            if actor is not None:
                raise AuthorizationException("This transition is only applied by the signature service")
            return
        if actor is None:
            raise AuthorizationException("An authenticated actor is required")

        if kind == ActorKind.OWNER:
            if actor.user_id != request.user_id:
                logger.warning(
                    "Owner action denied",
                    extra_data={"credit_request_id": request.id, "actor_id": actor.user_id},
                )
                raise AuthorizationException("Only the employee this request is for can do this")
            return

        capabilities = actor.capabilities
        if not capabilities.can_approve:
            raise AuthorizationException("Your role cannot approve or reject credit requests")
        if not capabilities.can_administer and request.hod_id != actor.user_id:
            logger.warning(
                "Approver action denied",
                extra_data={
                    "credit_request_id": request.id,
                    "actor_id": actor.user_id,
                    "hod_id": request.hod_id,
                },
            )
            raise AuthorizationException("Only the assigned HOD can act on this request")

    async def _apply(self, request: CreditRequest, transition: Transition, **values: Any) -> None:
        """Move ``request`` along ``transition`` only if it is still in the source status"""
        result = await self.db.execute(
            update(CreditRequest)
            .where(
                CreditRequest.id == request.id,
                CreditRequest.status == transition.source,
            )
            .values(status=transition.target, updated_at=datetime.utcnow(), **values)
        )
        if result.rowcount != 1:
            raise InvalidStateTransitionError(
                entity="credit_request",
                entity_id=request.id,
                current_state=transition.source.value,
                attempted=transition.event.value,
                message=wrong_state_message(transition.event),
            )

    def _resolve(
        self,
        request: CreditRequest,
        event: CreditRequestEvent,
        expected_source: Optional[CreditRequestStatus] = None,
        wrong_source_message: Optional[str] = None,
    ) -> Transition:
        status = CreditRequestStatus(request.status)
        result = resolve_transition(status, event, CreditRequestType(request.type))
        if not result.ok:
            if result.failure == TransitionFailure.WRONG_REQUEST_TYPE:
                raise ValidationException(result.message, field="type")
            raise InvalidStateTransitionError(
                entity="credit_request",
                entity_id=request.id,
                current_state=status.value,
                attempted=event.value,
                message=result.message,
            )
        transition = result.transition
        if expected_source and transition.source != expected_source:
            raise InvalidStateTransitionError(
                entity="credit_request",
                entity_id=request.id,
                current_state=status.value,
                attempted=event.value,
                message=wrong_source_message,
            )
        return transition

    async def _fire(
        self,
        actor: Optional[Actor],
        request_id: int,
        event: CreditRequestEvent,
        *,
        reason: Optional[str] = None,
        expected_source: Optional[CreditRequestStatus] = None,
        wrong_source_message: Optional[str] = None,
        values: Optional[dict[str, Any]] = None,
        timeline_event: Optional[TimelineEvent] = None,
        request: Optional[CreditRequest] = None,
    ) -> _Fired:
        try:
            if request is None:
                request = await self._load_for_update(request_id)
            self._authorize(actor, request, event_actor(event))
            transition = self._resolve(request, event, expected_source, wrong_source_message)

            reason = (reason or "").strip() or None
            if transition.requires_reason and not reason:
                raise ValidationException("A rejection reason is required", field="reason")

            await self._apply(request, transition, **self._values_for(transition, actor, reason, values or {}))

            ref = EntityRef.credit_request(request.id)
            await self.timeline.append(ref, timeline_event or self._timeline_event(actor, transition, reason))
            self.audit.record(
                action=_AUDIT_ACTIONS[(transition.event, transition.target)],
                entity_type="credit_request",
                entity_id=request.id,
                actor_user_id=actor.user_id if actor else None,
                target_user_id=request.user_id,
                details={
                    "from": transition.source.value,
                    "to": transition.target.value,
                    **({"reason": reason} if reason else {}),
                },
            )

            credit = None
            if transition.posts_credit:
                credit = await self.ledger.post_credit(
                    request.user_id,
                    request.amount,
                    request.currency,
                    request.id,
                    description=CREDIT_DESCRIPTIONS[CreditRequestType(request.type)],
                )
                credited = (
                    TimelineEvent.by(actor, TimelineStep.WALLET_CREDITED, self._credited_message(request))
                    if actor
                    else TimelineEvent.system(TimelineStep.WALLET_CREDITED, self._credited_message(request))
                )
                await self.timeline.append_many([ref, EntityRef.wallet_transaction(credit.id)], credited)

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Credit request transition hit a constraint",
                extra_data={"credit_request_id": request_id, "event": event.value, "error": str(e.orig)},
            )
            raise PreconditionException(
                "Request was modified concurrently. Reload and try again.",
                details={"credit_request_id": request_id},
            )
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Credit request transitioned",
            extra_data={
                "credit_request_id": request.id,
                "event": event.value,
                "from": transition.source.value,
                "to": transition.target.value,
                "actor_id": actor.user_id if actor else None,
                "credit_transaction_id": credit.id if credit else None,
            },
        )

        employee = await self._load_user(request.user_id)
        fired = _Fired(request=request, transition=transition, employee=employee, reason=reason, credit=credit)
        if transition.target in _INITIATOR_EMAIL_TARGETS:
            await self._email_initiator(fired, actor)
        for notice in notices_for_transition(fired):
            await self.notifier.notify_many(notice.user_ids, notice.title, notice.message, notice.action_url, notice.kind)
        await self.db.refresh(request)
        if credit:
            await self.db.refresh(credit)
        return fired

    async def _email_initiator(self, fired: _Fired, actor: Actor) -> None:
        request = fired.request
        if not request.initiator_id or request.initiator_id == actor.user_id:
            return
        initiator = await self.db.get(User, request.initiator_id)
        if not initiator:
            return
        await EmailService.send(request_rejected_email(
            initiator.email,
            initiator.display_name,
            fired.employee.display_name,
            CreditRequestType(request.type).value,
            format_amount(request.amount, request.currency),
            actor.display_name,
            fired.reason or "",
            request.id,
        ))

    @staticmethod
    def _values_for(
        transition: Transition,
        actor: Optional[Actor],
        reason: Optional[str],
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        now = datetime.utcnow()
        target = transition.target
        values: dict[str, Any] = {}
        if transition.event == CreditRequestEvent.SIGN:
            values["user_signed_at"] = now
        elif transition.event == CreditRequestEvent.SIGNATURE_COMPLETED:
            values["user_signed_at"] = now
        elif target == CreditRequestStatus.REJECTED_BY_USER:
            values["user_rejection_reason"] = reason
        elif transition.event == CreditRequestEvent.HOD_APPROVE:
            values.update(hod_approved_by=actor.user_id, hod_approved_at=now)
        elif target == CreditRequestStatus.REJECTED_BY_HOD:
            values.update(hod_rejection_reason=reason, hod_rejected_at=now)
        elif transition.event == CreditRequestEvent.EMPLOYEE_APPROVE:
            values["employee_approved_at"] = now
        elif target == CreditRequestStatus.REJECTED_BY_EMPLOYEE:
            values.update(employee_rejection_reason=reason, employee_rejected_at=now)
        values.update(extra)
        return values

    @staticmethod
    def _timeline_event(actor: Actor, transition: Transition, reason: Optional[str]) -> TimelineEvent:
        target = transition.target
        if transition.event == CreditRequestEvent.SIGN:
            message = "Employee signed the request"
        elif transition.event == CreditRequestEvent.HOD_APPROVE:
            message = (
                "Approved by HOD; awaiting employee approval"
                if target == CreditRequestStatus.PENDING_EMPLOYEE_APPROVAL
                else "Approved by HOD"
            )
        elif target == CreditRequestStatus.REJECTED_BY_HOD:
            message = f"Rejected by HOD: {reason}"
        elif transition.event == CreditRequestEvent.EMPLOYEE_APPROVE:
            message = "Approved by employee"
        else:
            message = f"Rejected by employee: {reason}"
        metadata = {"from": transition.source.value, "to": target.value}
        if reason:
            metadata["reason"] = reason
        return TimelineEvent.by(actor, transition.step, message, metadata=metadata)

    @staticmethod
    def _credited_message(request: CreditRequest) -> str:
        return f"Wallet credited with {format_amount(request.amount, request.currency)}"

    @log_async_operation("credit_request.sign")
    async def sign(self, actor: Actor, request_id: int, signature: str) -> CreditRequest:
        """Employee signs a policy request that is pending signature"""
        signature = (signature or "").strip()
        if not signature:
            raise ValidationException("A signature is required", field="signature")
        request = await self._load_for_update(request_id)
        fired = await self._fire(
            actor,
            request_id,
            CreditRequestEvent.SIGN,
            request=request,
            values={"user_signature": signature},
            timeline_event=TimelineEvent.by(
                actor,
                TimelineStep.EMPLOYEE_SIGNATURE,
                "Employee signed the request",
                signature_id=request.signature_document_id,
                metadata={"from": CreditRequestStatus.PENDING_SIGNATURE.value,
                          "to": CreditRequestStatus.PENDING_APPROVAL.value},
            ),
        )
        return fired.request

    @log_async_operation("credit_request.reject_by_user")
    async def reject_by_user(self, actor: Actor, request_id: int, reason: str) -> CreditRequest:
        """Employee declines to sign a policy request"""
        fired = await self._fire(
            actor,
            request_id,
            CreditRequestEvent.EMPLOYEE_REJECT,
            reason=reason,
            expected_source=CreditRequestStatus.PENDING_SIGNATURE,
            wrong_source_message="Only requests pending signature can be rejected here.",
        )
        return fired.request

    @log_async_operation("credit_request.approve_by_hod")
    async def approve_by_hod(
        self,
        actor: Actor,
        request_id: int,
    ) -> tuple[CreditRequest, Optional[WalletTransaction]]:
        """Policy requests become approved (and credited); freelancer requests go to the employee"""
        fired = await self._fire(actor, request_id, CreditRequestEvent.HOD_APPROVE)
        return fired.request, fired.credit

    @log_async_operation("credit_request.reject_by_hod")
    async def reject_by_hod(self, actor: Actor, request_id: int, reason: str) -> CreditRequest:
        fired = await self._fire(actor, request_id, CreditRequestEvent.HOD_REJECT, reason=reason)
        return fired.request

    @log_async_operation("credit_request.approve_by_employee")
    async def approve_by_employee(
        self,
        actor: Actor,
        request_id: int,
    ) -> tuple[CreditRequest, Optional[WalletTransaction]]:
        fired = await self._fire(actor, request_id, CreditRequestEvent.EMPLOYEE_APPROVE)
        return fired.request, fired.credit

    @log_async_operation("credit_request.reject_by_employee")
    async def reject_by_employee(self, actor: Actor, request_id: int, reason: str) -> CreditRequest:
        fired = await self._fire(
            actor,
            request_id,
            CreditRequestEvent.EMPLOYEE_REJECT,
            reason=reason,
            expected_source=CreditRequestStatus.PENDING_EMPLOYEE_APPROVAL,
            wrong_source_message="Request is not pending employee approval.",
        )
        return fired.request

    async def apply_signature_completion(
        self,
        email: str,
        signature_id: Optional[str] = None,
    ) -> Optional[CreditRequest]:
        """
        Advance the signer's oldest policy request that is pending signature.

        Returns None, without changing anything, when the email matches no user
        or the user has nothing pending signature. Safe to call repeatedly.
        """
        email = (email or "").strip().lower()
        if not email:
            return None
        user_result = await self.db.execute(select(User).where(func.lower(User.email) == email))
        user = user_result.scalar_one_or_none()
        if not user:
            logger.info("Signature completion for unknown signer", extra_data={"email": email})
            return None

        result = await self.db.execute(
            select(CreditRequest)
            .where(
                CreditRequest.user_id == user.id,
                CreditRequest.type == CreditRequestType.POLICY,
                CreditRequest.status == CreditRequestStatus.PENDING_SIGNATURE,
            )
            .order_by(CreditRequest.created_at.asc(), CreditRequest.id.asc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            logger.info("No request pending signature", extra_data={"user_id": user.id})
            return None

        document_id = signature_id or request.signature_document_id
        try:
            fired = await self._fire(
                None,
                request.id,
                CreditRequestEvent.SIGNATURE_COMPLETED,
                request=request,
                values={"signature_document_id": document_id},
                timeline_event=TimelineEvent(
                    step=TimelineStep.SIGNATURE_COMPLETED,
                    role="system",
                    message="Signature completed via e-signature",
                    actor_id=user.id,
                    actor_name=user.name,
                    actor_email=user.email,
                    signature_id=document_id,
                ),
            )
        except InvalidStateTransitionError:
            # Another delivery of the same callback won the race
            logger.info(
                "Signature completion already applied",
                extra_data={"credit_request_id": request.id},
            )
            return None
        return fired.request

    # ==================== reads ====================

    async def get(self, actor: Actor, request_id: int) -> CreditRequest:
        request = await self.db.get(CreditRequest, request_id)
        if not request:
            raise NotFoundException("CreditRequest", request_id, ErrorCode.CREDIT_REQUEST_NOT_FOUND)
        involved = actor.user_id in (request.user_id, request.initiator_id, request.hod_id)
        capabilities = actor.capabilities
        if not (involved or capabilities.can_administer or capabilities.can_process_payouts):
            raise AuthorizationException("You cannot view this request")
        return request

    async def timeline_for(self, actor: Actor, request_id: int) -> list[TimelineEntry]:
        request = await self.get(actor, request_id)
        return await self.timeline_entries(request.id)

    async def timeline_entries(self, request_id: int) -> list[TimelineEntry]:
        return await self.timeline.entries_for(EntityRef.credit_request(request_id))

    async def list_for_user(
        self,
        user_id: int,
        status: Optional[CreditRequestStatus] = None,
    ) -> list[CreditRequest]:
        query = select(CreditRequest).where(CreditRequest.user_id == user_id)
        if status:
            query = query.where(CreditRequest.status == status)
        result = await self.db.execute(
            query.order_by(CreditRequest.created_at.desc(), CreditRequest.id.desc())
        )
        return list(result.scalars().all())

    async def list_pending_approvals(self, actor: Actor) -> list[CreditRequest]:
        """Admin: every request pending approval. HOD: only their own reports."""
        capabilities = actor.capabilities
        if not capabilities.can_approve:
            raise AuthorizationException("Your role cannot approve credit requests")
        query = select(CreditRequest).where(CreditRequest.status == CreditRequestStatus.PENDING_APPROVAL)
        if not capabilities.can_administer:
            query = query.where(CreditRequest.hod_id == actor.user_id)
        result = await self.db.execute(query.order_by(CreditRequest.created_at.asc(), CreditRequest.id.asc()))
        return list(result.scalars().all())

    async def list_submissions(self, actor: Actor) -> list[CreditRequest]:
        """Requests the actor filed as initiator"""
        result = await self.db.execute(
            select(CreditRequest)
            .where(CreditRequest.initiator_id == actor.user_id)
            .order_by(CreditRequest.created_at.desc(), CreditRequest.id.desc())
        )
        return list(result.scalars().all())
