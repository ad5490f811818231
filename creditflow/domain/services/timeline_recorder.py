"""
Timeline Recorder

Append-only audit trail keyed by (entity type, entity id). ``build_entry`` is a
pure constructor; ``TimelineRecorder`` assigns the next sequence number and adds
the row to the caller's transaction. Entries are never updated or deleted.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.db.models.timeline_entry import TimelineEntityType, TimelineEntry
from creditflow.domain.roles import Actor
from creditflow.state_machine.states import TimelineStep


@dataclass(frozen=True)
class EntityRef:
    entity_type: TimelineEntityType
    entity_id: int

    @classmethod
    def credit_request(cls, entity_id: int) -> "EntityRef":
        return cls(TimelineEntityType.CREDIT_REQUEST, entity_id)

    @classmethod
    def redemption(cls, entity_id: int) -> "EntityRef":
        return cls(TimelineEntityType.REDEMPTION_REQUEST, entity_id)

    @classmethod
    def wallet_transaction(cls, entity_id: int) -> "EntityRef":
        return cls(TimelineEntityType.WALLET_TRANSACTION, entity_id)


@dataclass(frozen=True)
class TimelineEvent:
    step: TimelineStep
    role: str
    message: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    signature_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def by(
        cls,
        actor: Actor,
        step: TimelineStep,
        message: str,
        *,
        role: Optional[str] = None,
        signature_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "TimelineEvent":
        """Event performed by ``actor``; ``role`` defaults to the actor's canonical role"""
        return cls(
            step=step,
            role=role or actor.canonical_role.value,
            message=message,
            actor_id=actor.user_id,
            actor_name=actor.name,
            actor_email=actor.email,
            signature_id=signature_id,
            metadata=dict(metadata or {}),
        )

    @classmethod
    def system(cls, step: TimelineStep, message: str, **metadata: Any) -> "TimelineEvent":
        return cls(step=step, role="system", message=message, metadata=metadata)


def build_entry(
    ref: EntityRef,
    event: TimelineEvent,
    sequence: int,
    now: Optional[datetime] = None,
) -> TimelineEntry:
    """New entry with a server-assigned timestamp. Touches nothing."""
    return TimelineEntry(
        entity_type=ref.entity_type,
        entity_id=ref.entity_id,
        sequence=sequence,
        step=event.step.value,
        role=event.role,
        actor_id=event.actor_id,
        actor_name=event.actor_name,
        actor_email=event.actor_email,
        signature_id=event.signature_id,
        message=event.message,
        metadata_=dict(event.metadata),
        created_at=now or datetime.utcnow(),
    )


class TimelineRecorder:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _next_sequence(self, ref: EntityRef) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.max(TimelineEntry.sequence), 0)).where(
                TimelineEntry.entity_type == ref.entity_type,
                TimelineEntry.entity_id == ref.entity_id,
            )
        )
        return int(result.scalar_one()) + 1

    async def append(self, ref: EntityRef, event: TimelineEvent) -> TimelineEntry:
        """
        Stage the next entry for ``ref`` in the current transaction.

        The unique (entity, sequence) constraint rejects a concurrent writer that
        computed the same sequence, so a trail can only ever grow by one.
        """
        entry = build_entry(ref, event, await self._next_sequence(ref))
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def append_many(self, refs: Iterable[EntityRef], event: TimelineEvent) -> list[TimelineEntry]:
        """Record one event on several trails (e.g. a redemption and the credit it consumes)"""
        return [await self.append(ref, event) for ref in refs]

    async def entries_for(self, ref: EntityRef) -> list[TimelineEntry]:
        result = await self.db.execute(
            select(TimelineEntry)
            .where(
                TimelineEntry.entity_type == ref.entity_type,
                TimelineEntry.entity_id == ref.entity_id,
            )
            .order_by(TimelineEntry.sequence.asc())
        )
        return list(result.scalars().all())
