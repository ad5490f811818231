#!/usr/bin/env python3
"""
Currency Reconciliation

Re-derives every user's currency from their employee type and fixes users and
wallets that disagree. Historical requests, ledger entries and redemptions keep
the currency they were written with.

Usage:
    python scripts/reconcile_currency.py              # all users
    python scripts/reconcile_currency.py --user 42    # one user
    python scripts/reconcile_currency.py --dry-run    # report only
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select  # noqa: E402

from creditflow.db.database import AsyncSessionLocal, engine  # noqa: E402
from creditflow.db.models.user import User  # noqa: E402
from creditflow.domain.services.currency_policy import CurrencyPolicy, ReconcileResult, currency_for  # noqa: E402


def format_result(outcome: ReconcileResult) -> str:
    previous = outcome.previous.value if outcome.previous else "-"
    marker = "changed" if outcome.changed else "ok"
    return f"  user {outcome.user_id}: {previous} -> {outcome.currency.value} ({marker})"


async def dry_run(session_factory=AsyncSessionLocal) -> list[ReconcileResult]:
    """What reconciliation would do, without writing"""
    async with session_factory() as session:
        result = await session.execute(select(User).order_by(User.id))
        return [
            ReconcileResult(user_id=user.id, previous=user.currency, currency=currency_for(user))
            for user in result.scalars().all()
        ]


async def reconcile(user_id: Optional[int] = None, session_factory=AsyncSessionLocal) -> list[ReconcileResult]:
    async with session_factory() as session:
        policy = CurrencyPolicy(session)
        if user_id is None:
            return await policy.reconcile_all()
        try:
            outcome = await policy.reconcile(user_id)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return [outcome]


async def run(args: argparse.Namespace) -> int:
    try:
        if args.dry_run:
            outcomes = await dry_run()
            if args.user is not None:
                outcomes = [o for o in outcomes if o.user_id == args.user]
        else:
            outcomes = await reconcile(args.user)
    finally:
        await engine.dispose()

    for outcome in outcomes:
        print(format_result(outcome))
    changed = sum(1 for outcome in outcomes if outcome.changed)
    verb = "would change" if args.dry_run else "changed"
    print(f"{len(outcomes)} users checked, {changed} {verb}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile user and wallet currencies")
    parser.add_argument("--user", type=int, default=None, help="reconcile a single user id")
    parser.add_argument("--dry-run", action="store_true", help="report without writing")
    args = parser.parse_args(argv)

    print("=" * 50)
    print("Currency Reconciliation")
    print("=" * 50)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
