"""
In-Memory Storage Implementation

Used by the test suite and for local runs without a spreadsheet.

Neither snapshot() nor apply_writes() awaits anything, so under asyncio each
of them runs to completion without interleaving: a snapshot never observes a
half-applied transaction.
"""

from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import Expense, Group, User
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerSnapshot,
    LedgerStorageInterface,
    NotFoundError,
    PendingWrite,
    WriteOperation,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionaries keyed by id, one per collection."""

    def __init__(self):
        super().__init__()
        self._collections: dict[str, dict] = {
            "users": {},
            "groups": {},
            "expenses": {},
        }

    async def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            users=[u.model_copy(deep=True) for u in self._collections["users"].values()],
            groups=[g.model_copy(deep=True) for g in self._collections["groups"].values()],
            expenses=[e.model_copy(deep=True) for e in self._collections["expenses"].values()],
        )

    async def apply_writes(self, writes: list[PendingWrite]) -> None:
        # Check every write before touching anything so a bad batch
        # leaves the collections untouched.
        staged = {name: dict(records) for name, records in self._collections.items()}

        for write in writes:
            records = staged[write.collection]
            if write.operation == WriteOperation.INSERT:
                if write.entity_id in records:
                    raise DuplicateError(
                        f"{write.collection} already contains {write.entity_id}"
                    )
                records[write.entity_id] = write.record.model_copy(deep=True)
            elif write.operation == WriteOperation.UPDATE:
                if write.entity_id not in records:
                    raise NotFoundError(
                        f"{write.collection} has no record {write.entity_id}"
                    )
                records[write.entity_id] = write.record.model_copy(deep=True)
            else:
                if records.pop(write.entity_id, None) is None:
                    raise NotFoundError(
                        f"{write.collection} has no record {write.entity_id}"
                    )

        self._collections = staged

    # Direct lookups, mostly for tests and diagnostics

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self._collections["users"].get(user_id)

    def get_group(self, group_id: UUID) -> Optional[Group]:
        return self._collections["groups"].get(group_id)

    def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        return self._collections["expenses"].get(expense_id)

    def count(self, collection: str) -> int:
        return len(self._collections[collection])


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
