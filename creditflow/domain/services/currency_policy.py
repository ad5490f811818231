"""
Currency Policy

Single place that decides which currency a user is paid in. Write paths stamp
``currency_for(user)`` on every record; they never trust a client-supplied code
except where a mismatch must be reported (payment currency at processing time).
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.config import settings
from creditflow.core.exceptions import CurrencyMismatchError, NotFoundException, ErrorCode, UnsupportedCurrencyError
from creditflow.core.logging import get_logger
from creditflow.db.models.audit_log import AuditActionType
from creditflow.db.models.user import Currency, EmployeeType, User
from creditflow.db.models.wallet import Wallet
from creditflow.domain.services.audit_service import AuditService

logger = get_logger(__name__)

CURRENCY_ALIASES: dict[str, Currency] = {
    "usd": Currency.USD,
    "$": Currency.USD,
    "us$": Currency.USD,
    "dollar": Currency.USD,
    "dollars": Currency.USD,
    "us dollar": Currency.USD,
    "inr": Currency.INR,
    "rs": Currency.INR,
    "rs.": Currency.INR,
    "rupee": Currency.INR,
    "rupees": Currency.INR,
    "indian rupee": Currency.INR,
    "₹": Currency.INR,
}

EMPLOYEE_TYPE_TO_CURRENCY: dict[EmployeeType, Currency] = {
    EmployeeType.PERMANENT_INDIA: Currency.INR,
    EmployeeType.PERMANENT_USA: Currency.USD,
    EmployeeType.FREELANCER_INDIA: Currency.INR,
    EmployeeType.FREELANCER_USA: Currency.USD,
    EmployeeType.PERMANENT: Currency.INR,
}

_CURRENCY_SYMBOLS: dict[Currency, str] = {
    Currency.USD: "$",
    Currency.INR: "₹",
}

_CENT = Decimal("0.01")


def default_currency() -> Currency:
    return Currency(settings.DEFAULT_CURRENCY)


def normalize_currency(value: Any) -> Optional[Currency]:
    """Map a code, symbol or name to a supported currency; None if unknown"""
    if value is None:
        return None
    if isinstance(value, Currency):
        return value
    key = str(value).strip().lower()
    if not key:
        return None
    return CURRENCY_ALIASES.get(key)


def require_currency(value: Any) -> Currency:
    currency = normalize_currency(value)
    if currency is None:
        raise UnsupportedCurrencyError(value)
    return currency


def currency_for_employee_type(employee_type: "EmployeeType | str | None") -> Currency:
    if employee_type is None:
        return default_currency()
    raw = employee_type.value if isinstance(employee_type, EmployeeType) else str(employee_type).strip().lower()
    try:
        return EMPLOYEE_TYPE_TO_CURRENCY[EmployeeType(raw)]
    except (ValueError, KeyError):
        pass
    # Unknown classification: fall back on the region in its name
    if "usa" in raw:
        return Currency.USD
    if "india" in raw:
        return Currency.INR
    return default_currency()


def currency_for(subject: "User | EmployeeType | str | None") -> Currency:
    """Canonical currency for a user or an employee classification"""
    if isinstance(subject, User):
        return currency_for_employee_type(subject.employee_type)
    return currency_for_employee_type(subject)


def ensure_matches(expected: Currency, actual: Any, context: str) -> Currency:
    """Return ``expected`` when ``actual`` agrees with it, else raise CurrencyMismatchError"""
    normalized = normalize_currency(actual)
    if normalized != expected:
        raise CurrencyMismatchError(
            expected=expected.value,
            actual=normalized.value if normalized else str(actual),
            context=context,
        )
    return expected


def _group_digits(integer_part: str, currency: Currency) -> str:
    if currency == Currency.INR and len(integer_part) > 3:
        # en-IN groups the last three digits, then pairs: 12,34,567
        head, tail = integer_part[:-3], integer_part[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        return ",".join(pairs + [tail])
    return f"{int(integer_part):,}"


def format_amount(amount: "Decimal | int | float | str", currency: "Currency | str") -> str:
    """Locale-style money string used in notices, e.g. ₹1,15,000.00 or $1,150.00"""
    currency = require_currency(currency)
    value = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    integer_part, fraction = f"{abs(value):.2f}".split(".")
    return f"{sign}{_CURRENCY_SYMBOLS[currency]}{_group_digits(integer_part, currency)}.{fraction}"


@dataclass(frozen=True)
class ReconcileResult:
    user_id: int
    previous: Optional[Currency]
    currency: Currency

    @property
    def changed(self) -> bool:
        return self.previous != self.currency


class CurrencyPolicy:
    """
    Persists the canonical currency on users and wallets.

    Historical credit requests, ledger entries and redemptions keep the
    currency they were written with; a stale currency surfaces later as an
    explicit mismatch rather than being rewritten here.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def reconcile(self, user_id: int, actor_id: Optional[int] = None) -> ReconcileResult:
        """Re-derive and persist one user's currency. Does not commit."""
        result = await self.db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundException("User", user_id, ErrorCode.USER_NOT_FOUND)
        return await self._reconcile_user(user, actor_id)

    async def _reconcile_user(self, user: User, actor_id: Optional[int]) -> ReconcileResult:
        expected = currency_for(user)
        previous = user.currency
        if previous != expected:
            user.currency = expected
            self.audit.record(
                action=AuditActionType.CURRENCY_RECONCILED,
                entity_type="user",
                entity_id=user.id,
                actor_user_id=actor_id,
                target_user_id=user.id,
                details={"from": previous.value if previous else None, "to": expected.value},
            )
            logger.info(
                "User currency reconciled",
                extra_data={
                    "user_id": user.id,
                    "from": previous.value if previous else None,
                    "to": expected.value,
                },
            )

        wallet_result = await self.db.execute(select(Wallet).where(Wallet.user_id == user.id))
        wallet = wallet_result.scalar_one_or_none()
        if wallet and wallet.currency != expected:
            wallet.currency = expected

        return ReconcileResult(user_id=user.id, previous=previous, currency=expected)

    async def reconcile_all(self, actor_id: Optional[int] = None) -> list[ReconcileResult]:
        """Reconcile every user and commit once"""
        result = await self.db.execute(select(User).order_by(User.id))
        outcomes = [await self._reconcile_user(user, actor_id) for user in result.scalars().all()]
        await self.db.commit()
        logger.info(
            "Currency reconciliation finished",
            extra_data={
                "users": len(outcomes),
                "changed": sum(1 for outcome in outcomes if outcome.changed),
            },
        )
        return outcomes
