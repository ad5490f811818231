"""
Redemption Processor - turns an unredeemed wallet credit into a payout request

requestRedemption posts the debit immediately (the credit is consumed at
request time). The accounts team then moves the request to processing,
completes it with a payment reference, or rejects it, which returns the amount
through a compensating credit.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.exceptions import (
    AlreadyRedeemedError,
    AuthorizationException,
    ErrorCode,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundException,
    ValidationException,
)
from creditflow.core.logging import get_logger, log_async_operation
from creditflow.db.models.audit_log import AuditActionType
from creditflow.db.models.redemption_request import RedemptionRequest
from creditflow.db.models.timeline_entry import TimelineEntry
from creditflow.db.models.user import User
from creditflow.db.models.wallet import TransactionType, WalletTransaction
from creditflow.domain.roles import Actor
from creditflow.domain.services.audit_service import AuditService
from creditflow.domain.services.currency_policy import (
    CurrencyPolicy,
    currency_for,
    ensure_matches,
    format_amount,
)
from creditflow.domain.services.email_service import (
    EmailService,
    redemption_processed_email,
    redemption_requested_email,
)
from creditflow.domain.services.notification_service import NotificationSender
from creditflow.domain.services.proof_document_service import write_proof_document
from creditflow.domain.services.timeline_recorder import EntityRef, TimelineEvent, TimelineRecorder
from creditflow.domain.services.wallet_ledger import REVERSAL_DESCRIPTION, WalletLedger
from creditflow.state_machine.states import (
    REDEMPTION_TRANSITIONS,
    RedemptionStatus,
    TimelineStep,
    is_valid_transition,
)

logger = get_logger(__name__)

_CENT = Decimal("0.01")

# Statuses shown in the accounts queue by default
QUEUE_STATUSES = (RedemptionStatus.PENDING, RedemptionStatus.PROCESSING)


@dataclass(frozen=True)
class RedemptionReceipt:
    redemption: RedemptionRequest
    debit: WalletTransaction

    @property
    def balance(self) -> Decimal:
        return self.debit.balance


class RedemptionProcessor:
    def __init__(self, db: AsyncSession, ledger: Optional[WalletLedger] = None):
        self.db = db
        self.ledger = ledger or WalletLedger(db)
        self.timeline = TimelineRecorder(db)
        self.audit = AuditService(db)
        self.notifier = NotificationSender(db)
        self.currency_policy = CurrencyPolicy(db)

    @staticmethod
    def _require_payouts(actor: Actor) -> None:
        if not actor.capabilities.can_process_payouts:
            logger.warning(
                "Payout action denied",
                extra_data={"actor_id": actor.user_id, "role": actor.role.value},
            )
            raise AuthorizationException("Only the accounts team can process redemptions")

    async def _load_for_update(self, redemption_id: int) -> RedemptionRequest:
        result = await self.db.execute(
            select(RedemptionRequest)
            .where(RedemptionRequest.id == redemption_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        redemption = result.scalar_one_or_none()
        if not redemption:
            raise NotFoundException("RedemptionRequest", redemption_id, ErrorCode.REDEMPTION_NOT_FOUND)
        return redemption

    async def _move(
        self,
        redemption: RedemptionRequest,
        target: RedemptionStatus,
        attempted: str,
        **values: Any,
    ) -> RedemptionStatus:
        """Conditional status update; returns the status it moved from"""
        current = RedemptionStatus(redemption.status)
        if not is_valid_transition(REDEMPTION_TRANSITIONS, current, target):
            raise InvalidStateTransitionError(
                entity="redemption_request",
                entity_id=redemption.id,
                current_state=current.value,
                attempted=attempted,
                message=f"Redemption is already {current.value}.",
            )
        result = await self.db.execute(
            update(RedemptionRequest)
            .where(RedemptionRequest.id == redemption.id, RedemptionRequest.status == current)
            .values(status=target, updated_at=datetime.utcnow(), **values)
        )
        if result.rowcount != 1:
            raise InvalidStateTransitionError(
                entity="redemption_request",
                entity_id=redemption.id,
                current_state=current.value,
                attempted=attempted,
                message="Redemption was modified concurrently.",
            )
        return current

    def _refs(self, redemption: RedemptionRequest, *extra_txn_ids: Optional[int]) -> list[EntityRef]:
        refs = [
            EntityRef.redemption(redemption.id),
            EntityRef.wallet_transaction(redemption.credit_transaction_id),
        ]
        refs.extend(EntityRef.wallet_transaction(txn_id) for txn_id in extra_txn_ids if txn_id)
        return refs

    # ==================== request ====================

    @log_async_operation("redemption.request")
    async def request_redemption(
        self,
        actor: Actor,
        credit_txn_id: int,
        notes: Optional[str] = None,
        amount: Optional[Decimal] = None,
    ) -> RedemptionReceipt:
        """
        Redeem one credit transaction of the caller.

        ``amount`` defaults to the full credit and may not exceed it. The credit
        is consumed either way.
        """
        user = await self.db.get(User, actor.user_id)
        if not user:
            raise NotFoundException("User", actor.user_id, ErrorCode.USER_NOT_FOUND)

        try:
            credit = await self.ledger.lock_credit(credit_txn_id)
            if credit.user_id != user.id:
                raise AuthorizationException("This credit belongs to another user")
            if credit.type != TransactionType.CREDIT:
                raise ValidationException(
                    "Only credit transactions can be redeemed",
                    field="credit_transaction_id",
                    error_code=ErrorCode.INVALID_CREDIT_SELECTION,
                )
            if credit.redeemed:
                raise AlreadyRedeemedError(credit.id)

            currency = ensure_matches(currency_for(user), credit.currency, "credit transaction")

            credit_amount = Decimal(str(credit.amount)).quantize(_CENT)
            if amount is None:
                redeem = credit_amount
            else:
                redeem = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
                if redeem <= 0 or redeem > credit_amount:
                    raise ValidationException(
                        f"Redemption amount must be greater than zero and at most {credit_amount}",
                        field="amount",
                        error_code=ErrorCode.INVALID_AMOUNT,
                    )

            balance = await self.ledger.get_balance(user.id)
            if balance < redeem:
                raise InsufficientBalanceError(user.id, balance, redeem)

            redemption = RedemptionRequest(
                user_id=user.id,
                credit_transaction_id=credit.id,
                amount=redeem,
                currency=currency,
                status=RedemptionStatus.PENDING,
                notes=notes,
            )
            self.db.add(redemption)
            await self.db.flush()

            debit = await self.ledger.post_debit(user.id, redeem, currency, redemption.id, credit.id)

            await self.timeline.append_many(
                self._refs(redemption, debit.id),
                TimelineEvent.by(
                    actor,
                    TimelineStep.REDEMPTION_REQUESTED,
                    f"Redemption of {format_amount(redeem, currency)} requested",
                    metadata={
                        "redemption_id": redemption.id,
                        "credit_transaction_id": credit.id,
                        "debit_transaction_id": debit.id,
                        "amount": str(redeem),
                        "balance": str(debit.balance),
                    },
                ),
            )
            self.audit.record(
                action=AuditActionType.REDEMPTION_REQUESTED,
                entity_type="redemption_request",
                entity_id=redemption.id,
                actor_user_id=actor.user_id,
                target_user_id=user.id,
                details={"credit_transaction_id": credit.id, "amount": str(redeem)},
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Redemption hit a constraint",
                extra_data={"credit_transaction_id": credit_txn_id, "error": str(e.orig)},
            )
            raise AlreadyRedeemedError(credit_txn_id)
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Redemption requested",
            extra_data={
                "redemption_id": redemption.id,
                "user_id": user.id,
                "credit_transaction_id": credit.id,
                "amount": str(redeem),
                "balance": str(debit.balance),
            },
        )

        await self._after_request(redemption, user, debit)
        await self.db.refresh(redemption)
        await self.db.refresh(debit)
        return RedemptionReceipt(redemption=redemption, debit=debit)

    async def _after_request(self, redemption: RedemptionRequest, user: User, debit: WalletTransaction) -> None:
        redemption_id = redemption.id
        user_id, name = user.id, user.display_name
        money = format_amount(redemption.amount, redemption.currency)

        proof = None
        try:
            trail = await self._merged_trail(redemption)
            proof = write_proof_document(
                redemption,
                user,
                balance_before=Decimal(str(debit.balance)) + Decimal(str(redemption.amount)),
                balance_after=Decimal(str(debit.balance)),
                trail=trail,
            )
        except Exception as e:
            logger.error(
                "Proof document generation failed; redemption stands",
                extra_data={"redemption_id": redemption_id, "error": str(e)},
                exc_info=True,
            )
        if proof:
            try:
                await self.db.execute(
                    update(RedemptionRequest)
                    .where(RedemptionRequest.id == redemption_id)
                    .values(proof_document_path=str(proof))
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.warning(
                    "Could not store proof document path",
                    extra_data={"redemption_id": redemption_id, "error": str(e)},
                )

        await self.notifier.notify(
            user_id,
            "Redemption request submitted",
            f"Your redemption request for {money} has been submitted and is pending processing.",
            "/transactions",
            "info",
        )
        account_ids = await self.notifier.account_user_ids()
        await self.notifier.notify_many(
            account_ids,
            "New redemption request",
            f"{name} requested a payout of {money}.",
            "/redemptions",
            "action",
        )
        if account_ids:
            result = await self.db.execute(select(User.email).where(User.id.in_(account_ids)))
            await EmailService.send(
                redemption_requested_email(list(result.scalars().all()), name, money, redemption_id, proof)
            )

    async def _merged_trail(self, redemption: RedemptionRequest) -> list[TimelineEntry]:
        entries: dict[int, TimelineEntry] = {}
        for ref in self._refs(redemption):
            for entry in await self.timeline.entries_for(ref):
                entries[entry.id] = entry
        return sorted(entries.values(), key=lambda e: (e.created_at, e.id))

    # ==================== accounts processing ====================

    @log_async_operation("redemption.mark_processing")
    async def mark_processing(self, actor: Actor, redemption_id: int) -> RedemptionRequest:
        self._require_payouts(actor)
        try:
            redemption = await self._load_for_update(redemption_id)
            previous = await self._move(redemption, RedemptionStatus.PROCESSING, "mark_processing")
            await self.timeline.append(
                EntityRef.redemption(redemption.id),
                TimelineEvent.by(actor, TimelineStep.REDEMPTION_PROCESSING, "Payout in progress"),
            )
            self.audit.record(
                action=AuditActionType.REDEMPTION_PROCESSING,
                entity_type="redemption_request",
                entity_id=redemption.id,
                actor_user_id=actor.user_id,
                target_user_id=redemption.user_id,
                details={"from": previous.value, "to": RedemptionStatus.PROCESSING.value},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Redemption moved to processing",
            extra_data={"redemption_id": redemption.id, "actor_id": actor.user_id},
        )
        await self.db.refresh(redemption)
        return redemption

    @log_async_operation("redemption.process")
    async def process_redemption(
        self,
        actor: Actor,
        redemption_id: int,
        transaction_reference: str,
        payment_currency: Optional[str] = None,
        payment_notes: Optional[str] = None,
    ) -> RedemptionRequest:
        """
        Complete a payout.

        The employee's currency is re-derived first since their employee type
        may have changed after the request was filed. A payment currency that
        disagrees fails the whole operation and leaves the status untouched.
        """
        self._require_payouts(actor)
        reference = (transaction_reference or "").strip()
        if not reference:
            raise ValidationException("A transaction reference is required", field="transaction_reference")

        try:
            redemption = await self._load_for_update(redemption_id)
            current = RedemptionStatus(redemption.status)
            if not is_valid_transition(REDEMPTION_TRANSITIONS, current, RedemptionStatus.COMPLETED):
                raise InvalidStateTransitionError(
                    entity="redemption_request",
                    entity_id=redemption.id,
                    current_state=current.value,
                    attempted="process",
                    message=f"Redemption is already {current.value}.",
                )

            reconciled = await self.currency_policy.reconcile(redemption.user_id, actor.user_id)
            expected = reconciled.currency
            paid_in = expected if payment_currency is None else ensure_matches(
                expected, payment_currency, "payment"
            )

            now = datetime.utcnow()
            await self._move(
                redemption,
                RedemptionStatus.COMPLETED,
                "process",
                processed_by=actor.user_id,
                processed_at=now,
                transaction_reference=reference,
                payment_currency=paid_in,
                payment_notes=payment_notes,
            )
            await self.timeline.append_many(
                self._refs(redemption),
                TimelineEvent.by(
                    actor,
                    TimelineStep.REDEMPTION_PROCESSED,
                    f"Paid {format_amount(redemption.amount, paid_in)}, reference {reference}",
                    metadata={
                        "redemption_id": redemption.id,
                        "transaction_reference": reference,
                        "payment_currency": paid_in.value,
                    },
                ),
            )
            self.audit.record(
                action=AuditActionType.REDEMPTION_PROCESSED,
                entity_type="redemption_request",
                entity_id=redemption.id,
                actor_user_id=actor.user_id,
                target_user_id=redemption.user_id,
                details={"transaction_reference": reference, "payment_currency": paid_in.value},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Redemption processed",
            extra_data={
                "redemption_id": redemption.id,
                "actor_id": actor.user_id,
                "transaction_reference": reference,
            },
        )
        employee = await self.db.get(User, redemption.user_id)
        if employee:
            await EmailService.send(redemption_processed_email(
                employee.email,
                employee.display_name,
                format_amount(redemption.amount, paid_in),
                redemption.id,
                reference,
                actor.display_name,
                payment_notes,
            ))
        await self.notifier.notify(
            redemption.user_id,
            "Redemption processed",
            f"Your redemption of {format_amount(redemption.amount, redemption.currency)} has been paid. "
            f"Reference: {reference}",
            "/transactions",
            "success",
        )
        await self.db.refresh(redemption)
        return redemption

    @log_async_operation("redemption.reject")
    async def reject_redemption(self, actor: Actor, redemption_id: int, reason: str) -> RedemptionRequest:
        """Reject a payout and return its amount with a compensating credit"""
        self._require_payouts(actor)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("A rejection reason is required", field="reason")

        try:
            redemption = await self._load_for_update(redemption_id)
            previous = await self._move(
                redemption,
                RedemptionStatus.REJECTED,
                "reject",
                rejected_by=actor.user_id,
                rejected_at=datetime.utcnow(),
                rejection_reason=reason,
            )
            reversal = await self.ledger.post_credit(
                redemption.user_id,
                redemption.amount,
                redemption.currency,
                redemption_request_id=redemption.id,
                description=REVERSAL_DESCRIPTION,
            )
            await self.timeline.append_many(
                self._refs(redemption, reversal.id),
                TimelineEvent.by(
                    actor,
                    TimelineStep.REDEMPTION_REJECTED,
                    f"Redemption rejected: {reason}",
                    metadata={"reason": reason, "reversal_transaction_id": reversal.id},
                ),
            )
            self.audit.record(
                action=AuditActionType.REDEMPTION_REJECTED,
                entity_type="redemption_request",
                entity_id=redemption.id,
                actor_user_id=actor.user_id,
                target_user_id=redemption.user_id,
                details={"from": previous.value, "reason": reason, "reversal_transaction_id": reversal.id},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Redemption rejected",
            extra_data={"redemption_id": redemption.id, "actor_id": actor.user_id, "reversal_id": reversal.id},
        )
        await self.notifier.notify(
            redemption.user_id,
            "Redemption rejected",
            f"Your redemption of {format_amount(redemption.amount, redemption.currency)} was rejected. "
            f"Reason: {reason}. The amount was returned to your wallet.",
            "/transactions",
            "warning",
        )
        await self.db.refresh(redemption)
        return redemption

    # ==================== reads ====================

    async def get(self, actor: Actor, redemption_id: int) -> RedemptionRequest:
        redemption = await self.db.get(RedemptionRequest, redemption_id)
        if not redemption:
            raise NotFoundException("RedemptionRequest", redemption_id, ErrorCode.REDEMPTION_NOT_FOUND)
        if redemption.user_id != actor.user_id and not actor.capabilities.can_process_payouts:
            raise AuthorizationException("You cannot view this redemption")
        return redemption

    async def timeline_for(self, actor: Actor, redemption_id: int) -> list[TimelineEntry]:
        redemption = await self.get(actor, redemption_id)
        return await self.timeline.entries_for(EntityRef.redemption(redemption.id))

    async def list_for_user(self, user_id: int) -> list[RedemptionRequest]:
        result = await self.db.execute(
            select(RedemptionRequest)
            .where(RedemptionRequest.user_id == user_id)
            .order_by(RedemptionRequest.created_at.desc(), RedemptionRequest.id.desc())
        )
        return list(result.scalars().all())

    async def list_queue(
        self,
        actor: Actor,
        statuses: Optional[tuple[RedemptionStatus, ...]] = None,
    ) -> list[RedemptionRequest]:
        """Oldest first, pending and processing unless ``statuses`` says otherwise"""
        self._require_payouts(actor)
        result = await self.db.execute(
            select(RedemptionRequest)
            .where(RedemptionRequest.status.in_(statuses or QUEUE_STATUSES))
            .order_by(RedemptionRequest.created_at.asc(), RedemptionRequest.id.asc())
        )
        return list(result.scalars().all())
