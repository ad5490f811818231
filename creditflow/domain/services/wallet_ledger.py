"""
Wallet Ledger - append-only credit/debit log per user

The ledger is the source of truth: a user's balance is the signed sum of their
``wallet_transactions``. The ``wallets`` row caches the ledger tail and is the
per-user serialization point. Every post locks it, checks its ``version`` and
inserts the new transaction in the same database transaction, so two posts
can never start from the same balance.

Nothing here commits; callers commit once per workflow operation.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.config import settings
from creditflow.core.exceptions import (
    AlreadyRedeemedError,
    ErrorCode,
    InsufficientBalanceError,
    NotFoundException,
    ValidationException,
    WalletConflictError,
)
from creditflow.core.logging import get_logger
from creditflow.db.models.credit_request import CreditRequest
from creditflow.db.models.user import Currency
from creditflow.db.models.wallet import TransactionType, Wallet, WalletTransaction
from creditflow.domain.services.currency_policy import ensure_matches
from creditflow.state_machine.states import CREDIT_REQUEST_OPEN_STATES

logger = get_logger(__name__)

ZERO = Decimal("0.00")

CREDIT_DESCRIPTION = "Credit"
DEBIT_DESCRIPTION = "Redemption"
REVERSAL_DESCRIPTION = "Redemption reversal"


@dataclass(frozen=True)
class WalletSummary:
    user_id: int
    currency: Currency
    earned: Decimal
    redeemed: Decimal
    pending: Decimal
    available: Decimal


def _to_decimal(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


class WalletLedger:
    def __init__(self, db: AsyncSession, max_retries: Optional[int] = None):
        self.db = db
        self.max_retries = max_retries or settings.WALLET_MAX_RETRIES

    async def _select_wallet(self, user_id: int, for_update: bool) -> Optional[Wallet]:
        query = select(Wallet).where(Wallet.user_id == user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_wallet(
        self,
        user_id: int,
        currency: Currency,
        for_update: bool = False,
    ) -> Wallet:
        """Existing wallet, or a new empty one in ``currency``"""
        wallet = await self._select_wallet(user_id, for_update)
        if wallet:
            return wallet

        try:
            async with self.db.begin_nested():
                wallet = Wallet(user_id=user_id, balance=ZERO, currency=currency, version=0)
                self.db.add(wallet)
        except IntegrityError:
            # Created concurrently for the same user
            logger.info("Wallet created concurrently, re-reading", extra_data={"user_id": user_id})
            wallet = await self._select_wallet(user_id, for_update)
            if not wallet:
                raise
        return wallet

    async def _post(
        self,
        user_id: int,
        txn_type: TransactionType,
        amount: Decimal,
        currency: Currency,
        **fields,
    ) -> WalletTransaction:
        amount = _to_decimal(amount)
        if amount <= ZERO:
            raise ValidationException(
                "Amount must be greater than zero",
                field="amount",
                error_code=ErrorCode.INVALID_AMOUNT,
            )

        for attempt in range(1, self.max_retries + 1):
            wallet = await self.get_or_create_wallet(user_id, currency, for_update=True)
            ensure_matches(wallet.currency, currency, f"wallet of user {user_id}")

            current = _to_decimal(wallet.balance)
            new_balance = current + amount if txn_type == TransactionType.CREDIT else current - amount
            if new_balance < ZERO:
                raise InsufficientBalanceError(user_id, current, amount)

            version = wallet.version
            result = await self.db.execute(
                update(Wallet)
                .where(Wallet.id == wallet.id, Wallet.version == version)
                .values(balance=new_balance, version=version + 1, updated_at=datetime.utcnow())
            )
            if result.rowcount != 1:
                logger.warning(
                    "Wallet version changed during post, retrying",
                    extra_data={"user_id": user_id, "attempt": attempt, "version": version},
                )
                continue

            txn = WalletTransaction(
                user_id=user_id,
                type=txn_type,
                amount=amount,
                currency=currency,
                balance=new_balance,
                redeemed=False,
                **fields,
            )
            self.db.add(txn)
            await self.db.flush()

            logger.info(
                "Wallet transaction posted",
                extra_data={
                    "user_id": user_id,
                    "transaction_id": txn.id,
                    "type": txn_type.value,
                    "amount": str(amount),
                    "balance": str(new_balance),
                },
            )
            return txn

        raise WalletConflictError(user_id, self.max_retries)

    async def post_credit(
        self,
        user_id: int,
        amount: Decimal,
        currency: Currency,
        credit_request_id: Optional[int] = None,
        *,
        redemption_request_id: Optional[int] = None,
        description: str = CREDIT_DESCRIPTION,
    ) -> WalletTransaction:
        """Append a credit. At most one credit exists per credit request."""
        return await self._post(
            user_id,
            TransactionType.CREDIT,
            amount,
            currency,
            credit_request_id=credit_request_id,
            redemption_request_id=redemption_request_id,
            description=description,
        )

    async def lock_credit(self, credit_txn_id: int) -> WalletTransaction:
        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.id == credit_txn_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        txn = result.scalar_one_or_none()
        if not txn:
            raise NotFoundException("WalletTransaction", credit_txn_id)
        return txn

    async def post_debit(
        self,
        user_id: int,
        amount: Decimal,
        currency: Currency,
        redemption_request_id: int,
        linked_credit_txn_id: int,
        description: str = DEBIT_DESCRIPTION,
    ) -> WalletTransaction:
        """
        Append a debit that consumes ``linked_credit_txn_id``.

        The credit's ``redeemed`` flag is flipped by a conditional update in
        the same unit as the debit insert; losing that race raises
        AlreadyRedeemedError.
        """
        credit = await self.lock_credit(linked_credit_txn_id)
        if credit.user_id != user_id:
            raise ValidationException(
                "Credit transaction does not belong to this user",
                field="credit_transaction_id",
                error_code=ErrorCode.INVALID_CREDIT_SELECTION,
            )
        if credit.type != TransactionType.CREDIT:
            raise ValidationException(
                "Only credit transactions can be redeemed",
                field="credit_transaction_id",
                error_code=ErrorCode.INVALID_CREDIT_SELECTION,
            )
        if credit.redeemed:
            raise AlreadyRedeemedError(credit.id)

        now = datetime.utcnow()
        flipped = await self.db.execute(
            update(WalletTransaction)
            .where(
                WalletTransaction.id == credit.id,
                WalletTransaction.redeemed.is_(False),
            )
            .values(redeemed=True, redeemed_at=now)
        )
        if flipped.rowcount != 1:
            raise AlreadyRedeemedError(credit.id)

        return await self._post(
            user_id,
            TransactionType.DEBIT,
            amount,
            currency,
            redemption_request_id=redemption_request_id,
            linked_credit_txn_id=credit.id,
            description=description,
        )

    async def get_balance(self, user_id: int) -> Decimal:
        """Cached ledger tail; zero for a user without a wallet"""
        wallet = await self._select_wallet(user_id, for_update=False)
        return _to_decimal(wallet.balance) if wallet else ZERO

    async def recompute_balance(self, user_id: int) -> Decimal:
        """Signed sum over the ledger"""
        signed = case(
            (WalletTransaction.type == TransactionType.CREDIT, WalletTransaction.amount),
            else_=-WalletTransaction.amount,
        )
        result = await self.db.execute(
            select(func.coalesce(func.sum(signed), 0)).where(WalletTransaction.user_id == user_id)
        )
        return _to_decimal(result.scalar_one())

    async def verify_balance(self, user_id: int) -> bool:
        cached = await self.get_balance(user_id)
        actual = await self.recompute_balance(user_id)
        if cached != actual:
            logger.error(
                "Wallet balance drifted from ledger",
                extra_data={"user_id": user_id, "cached": str(cached), "ledger": str(actual)},
            )
            return False
        return True

    async def list_transactions(self, user_id: int, limit: Optional[int] = None) -> list[WalletTransaction]:
        """Newest first"""
        query = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_redeemable_credits(self, user_id: int) -> list[WalletTransaction]:
        result = await self.db.execute(
            select(WalletTransaction)
            .where(
                WalletTransaction.user_id == user_id,
                WalletTransaction.type == TransactionType.CREDIT,
                WalletTransaction.redeemed.is_(False),
            )
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        )
        return list(result.scalars().all())

    async def get_summary(self, user_id: int, currency: Currency) -> WalletSummary:
        """
        earned: credits from approved requests
        redeemed: debits net of reversals
        pending: amounts of requests still in the approval chain
        available: the balance, i.e. earned - redeemed
        """
        is_credit = WalletTransaction.type == TransactionType.CREDIT
        linked = WalletTransaction.redemption_request_id.isnot(None)
        totals = await self.db.execute(
            select(
                func.coalesce(func.sum(case((is_credit & ~linked, WalletTransaction.amount), else_=0)), 0),
                func.coalesce(func.sum(case((is_credit & linked, WalletTransaction.amount), else_=0)), 0),
                func.coalesce(func.sum(case((~is_credit, WalletTransaction.amount), else_=0)), 0),
            ).where(WalletTransaction.user_id == user_id)
        )
        earned, reversed_, debited = (_to_decimal(v) for v in totals.one())

        pending_result = await self.db.execute(
            select(func.coalesce(func.sum(CreditRequest.amount), 0)).where(
                CreditRequest.user_id == user_id,
                CreditRequest.status.in_(CREDIT_REQUEST_OPEN_STATES),
            )
        )

        return WalletSummary(
            user_id=user_id,
            currency=currency,
            earned=earned,
            redeemed=debited - reversed_,
            pending=_to_decimal(pending_result.scalar_one()),
            available=await self.get_balance(user_id),
        )
