"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the whole ledger in memory for tests and local use
2. Keep Google Sheets (or a real database later) behind the same seam
3. Keep business logic decoupled from storage implementation

Reads go through a LedgerSnapshot: one consistent copy of users, groups and
expenses. A query that derives contacts and balances from the same snapshot
can never see an expense half-applied.

Writes go through transaction(): writers are serialised, validation reads
the transaction's snapshot, and the staged writes land together when the
block exits cleanly. If the block raises, nothing is written.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Iterable, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, model_validator

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import Expense, ExpenseKind, Group, User


# =============================================================================
# QUERIES
# =============================================================================

class ExpenseFilter(BaseModel):
    """
    Filter for expense scans.

    `involving_id` matches expenses the user paid OR owes a share of, in a
    single pass. `personal_only` selects expenses with no group.
    """

    payer_id: Optional[UUID] = None
    participant_id: Optional[UUID] = None
    involving_id: Optional[UUID] = None
    group_id: Optional[UUID] = None
    personal_only: bool = False
    kind: Optional[ExpenseKind] = None

    @model_validator(mode='after')
    def validate_scope(self) -> 'ExpenseFilter':
        if self.personal_only and self.group_id is not None:
            raise ValueError("personal_only cannot be combined with group_id")
        return self

    def matches(self, expense: Expense) -> bool:
        if self.personal_only and not expense.is_personal:
            return False
        if self.group_id is not None and expense.group_id != self.group_id:
            return False
        if self.payer_id is not None and expense.paid_by_user_id != self.payer_id:
            return False
        if (
            self.participant_id is not None
            and self.participant_id not in expense.participant_ids
        ):
            return False
        if self.involving_id is not None and not expense.involves(self.involving_id):
            return False
        if self.kind is not None and expense.kind != self.kind:
            return False
        return True


class LedgerSnapshot:
    """
    A consistent, read-only view of the ledger.

    Holds private copies of every record, so callers may inspect freely.
    """

    def __init__(
        self,
        users: Iterable[User] = (),
        groups: Iterable[Group] = (),
        expenses: Iterable[Expense] = (),
    ):
        self._users: dict[UUID, User] = {user.id: user for user in users}
        self._groups: dict[UUID, Group] = {group.id: group for group in groups}
        self._expenses: dict[UUID, Expense] = {
            expense.id: expense for expense in expenses
        }

    # -- users ---------------------------------------------------------------

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_token(self, token_identifier: str) -> Optional[User]:
        for user in self._users.values():
            if user.token_identifier == token_identifier:
                return user
        return None

    def list_users(self) -> list[User]:
        return list(self._users.values())

    # -- groups --------------------------------------------------------------

    def get_group(self, group_id: UUID) -> Optional[Group]:
        return self._groups.get(group_id)

    def list_groups(self, member_id: Optional[UUID] = None) -> list[Group]:
        """All groups, or only those whose roster contains `member_id`."""
        groups = self._groups.values()
        if member_id is not None:
            groups = [group for group in groups if group.has_member(member_id)]
        return list(groups)

    # -- expenses ------------------------------------------------------------

    def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    def find_expenses(
        self,
        expense_filter: Optional[ExpenseFilter] = None,
    ) -> list[Expense]:
        """
        Scan expenses with an optional filter.

        Each expense appears at most once. Results are ordered oldest first
        (by date, then creation time, then id) so aggregation is repeatable.
        """
        expense_filter = expense_filter or ExpenseFilter()
        matches = [
            expense
            for expense in self._expenses.values()
            if expense_filter.matches(expense)
        ]
        matches.sort(key=lambda e: (e.expense_date, e.created_at, str(e.id)))
        return matches


# =============================================================================
# TRANSACTIONS
# =============================================================================

class WriteOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


Collection = Literal["users", "groups", "expenses"]
Record = Union[User, Group, Expense]


class PendingWrite(BaseModel):
    """One staged change, applied when the transaction commits."""

    collection: Collection
    operation: WriteOperation
    entity_id: UUID
    record: Optional[Record] = None


class LedgerTransaction(LedgerSnapshot):
    """
    A snapshot that also stages writes.

    Reads inside the transaction see its own staged writes.
    """

    def __init__(self, snapshot: LedgerSnapshot):
        super().__init__(
            users=snapshot.list_users(),
            groups=snapshot.list_groups(),
            expenses=snapshot.find_expenses(),
        )
        self.pending_writes: list[PendingWrite] = []

    def _stage(
        self,
        collection: Collection,
        operation: WriteOperation,
        entity_id: UUID,
        record: Optional[Record] = None,
    ) -> None:
        self.pending_writes.append(PendingWrite(
            collection=collection,
            operation=operation,
            entity_id=entity_id,
            record=record,
        ))

    def insert_user(self, user: User) -> None:
        if user.id in self._users:
            raise DuplicateError(f"User already exists: {user.id}")
        self._users[user.id] = user
        self._stage("users", WriteOperation.INSERT, user.id, user)

    def update_user(self, user: User) -> None:
        if user.id not in self._users:
            raise NotFoundError(f"User not found: {user.id}")
        self._users[user.id] = user
        self._stage("users", WriteOperation.UPDATE, user.id, user)

    def insert_group(self, group: Group) -> None:
        if group.id in self._groups:
            raise DuplicateError(f"Group already exists: {group.id}")
        self._groups[group.id] = group
        self._stage("groups", WriteOperation.INSERT, group.id, group)

    def update_group(self, group: Group) -> None:
        if group.id not in self._groups:
            raise NotFoundError(f"Group not found: {group.id}")
        self._groups[group.id] = group
        self._stage("groups", WriteOperation.UPDATE, group.id, group)

    def delete_group(self, group_id: UUID) -> None:
        if self._groups.pop(group_id, None) is None:
            raise NotFoundError(f"Group not found: {group_id}")
        self._stage("groups", WriteOperation.DELETE, group_id)

    def insert_expense(self, expense: Expense) -> None:
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._expenses[expense.id] = expense
        self._stage("expenses", WriteOperation.INSERT, expense.id, expense)

    def update_expense(self, expense: Expense) -> None:
        if expense.id not in self._expenses:
            raise NotFoundError(f"Expense not found: {expense.id}")
        self._expenses[expense.id] = expense
        self._stage("expenses", WriteOperation.UPDATE, expense.id, expense)

    def delete_expense(self, expense_id: UUID) -> None:
        if self._expenses.pop(expense_id, None) is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        self._stage("expenses", WriteOperation.DELETE, expense_id)


# =============================================================================
# STORAGE INTERFACES
# =============================================================================

class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation (in-memory, Google Sheets, PostgreSQL, etc.)
    must implement snapshot() and apply_writes(). Subclasses must call
    super().__init__() so the writer lock exists.
    """

    def __init__(self):
        self._write_lock = asyncio.Lock()

    @abstractmethod
    async def snapshot(self) -> LedgerSnapshot:
        """
        Read users, groups and expenses in one consistent pass.

        Returns:
            A LedgerSnapshot holding copies of every record

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def apply_writes(self, writes: list[PendingWrite]) -> None:
        """
        Apply staged writes in order, all or nothing where the backend allows.

        Args:
            writes: Writes staged by a LedgerTransaction

        Raises:
            StorageError: If the writes cannot be applied
        """
        pass

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerTransaction]:
        """
        Serialised read-validate-write block.

        Usage:
            async with storage.transaction() as txn:
                if txn.get_user(user_id) is None:
                    raise UnknownUser(user_id)
                txn.insert_group(group)
        """
        async with self._write_lock:
            txn = LedgerTransaction(await self.snapshot())
            yield txn
            if txn.pending_writes:
                await self.apply_writes(txn.pending_writes)


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
