"""
Main Orchestrator for Split Ledger

This module ties together all the components and exposes the
session-facing operations:
1. Identity (session → ledger user, provisioning)
2. Writes (groups, expenses, settlements)
3. Reads (contacts, balances, settlement suggestions)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every operation resolves the session first; core components only ever
  see an explicit principal
- Every committed write is audited, after the commit
- Every rejected write is audited, then re-raised unchanged

This is the "glue" that keeps the core components free of session and
audit concerns.
"""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID

import structlog

from splitledger.audit import AuditLogger, create_correlation_id
from splitledger.balances import BalanceEngine
from splitledger.config import get_settings
from splitledger.contacts import ContactDeriver
from splitledger.expenses import ExpenseRecorder
from splitledger.expenses.recorder import AmountLike
from splitledger.groups import GroupLifecycleManager
from splitledger.identity import IdentityResolver, Session
from splitledger.models.audit import AuditEventType
from splitledger.models.contacts import BalanceSummary, ContactList, SuggestedTransfer
from splitledger.models.ledger import Expense, ExpenseCategory, Split, User
from splitledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)
from splitledger.validation import AuthError, LedgerError


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Session-facing facade over the ledger components.

    Flow of every call:
    1. Create a correlation id
    2. Resolve the session to a User (auth failures are audited)
    3. Delegate to the core component with that User as principal
    4. Audit the outcome
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

        self._identity = IdentityResolver(storage)
        self._contacts = ContactDeriver(storage)
        self._balances = BalanceEngine(storage)
        self._expenses = ExpenseRecorder(storage)
        self._groups = GroupLifecycleManager(storage)

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    # =========================================================================
    # PLUMBING
    # =========================================================================

    async def _principal(self, session: Optional[Session], correlation_id: UUID) -> User:
        try:
            return await self._identity.resolve(session)
        except AuthError as e:
            await self._audit.log_auth_failed(
                error_code=e.code,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    @asynccontextmanager
    async def _rejections(
        self,
        operation: str,
        actor_id: Optional[UUID],
        correlation_id: UUID,
    ) -> AsyncIterator[None]:
        """Audit a failed write and let the error propagate."""
        try:
            yield
        except AuthError as e:
            await self._audit.log_auth_failed(
                error_code=e.code,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except LedgerError as e:
            await self._audit.log_validation_failed(
                operation=operation,
                error_code=e.code,
                error_message=str(e),
                actor_id=actor_id,
                details=e.to_dict(),
                correlation_id=correlation_id,
            )
            raise
        except StorageError as e:
            await self._audit.log_storage_error(
                operation=operation,
                error_message=str(e),
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
            raise

    # =========================================================================
    # IDENTITY
    # =========================================================================

    async def provision_user(
        self,
        session: Optional[Session],
        name: str,
        email: str,
        image_url: Optional[str] = None,
    ) -> User:
        """Create or refresh the ledger user behind a session."""
        correlation_id = create_correlation_id()

        async with self._rejections("provision_user", None, correlation_id):
            user, created = await self._identity.provision_user(
                session, name=name, email=email, image_url=image_url
            )

        await self._audit.log_user_provisioned(
            user_id=user.id,
            name=user.name,
            created=created,
            correlation_id=correlation_id,
        )
        return user

    async def current_user(self, session: Optional[Session]) -> User:
        return await self._principal(session, create_correlation_id())

    # =========================================================================
    # READS
    # =========================================================================

    async def get_all_contacts(self, session: Optional[Session]) -> ContactList:
        """Every user and group the caller has a relationship with."""
        correlation_id = create_correlation_id()
        viewer = await self._principal(session, correlation_id)

        contacts = await self._contacts.list_contacts(viewer.id)

        await self._audit.log_read(
            event_type=AuditEventType.CONTACTS_LISTED,
            actor_id=viewer.id,
            description="Contacts listed",
            details={"users": len(contacts.users), "groups": len(contacts.groups)},
            correlation_id=correlation_id,
        )
        return contacts

    async def net_balance(
        self,
        session: Optional[Session],
        counterparty_id: UUID,
    ) -> Decimal:
        """Personal balance between the caller and one other user."""
        correlation_id = create_correlation_id()
        viewer = await self._principal(session, correlation_id)

        balance = await self._balances.net_balance(viewer.id, counterparty_id)

        await self._audit.log_read(
            event_type=AuditEventType.BALANCES_COMPUTED,
            actor_id=viewer.id,
            description="Pairwise balance computed",
            details={"counterparty_id": str(counterparty_id)},
            correlation_id=correlation_id,
        )
        return balance

    async def group_balances(
        self,
        session: Optional[Session],
        group_id: UUID,
    ) -> dict[UUID, Decimal]:
        """Balances of every member; empty unless the caller is a member."""
        correlation_id = create_correlation_id()
        viewer = await self._principal(session, correlation_id)

        balances = await self._balances.group_balances(group_id, viewer_id=viewer.id)

        await self._audit.log_read(
            event_type=AuditEventType.BALANCES_COMPUTED,
            actor_id=viewer.id,
            description="Group balances computed",
            details={"group_id": str(group_id), "members": len(balances)},
            correlation_id=correlation_id,
        )
        return balances

    async def balance_summary(self, session: Optional[Session]) -> BalanceSummary:
        correlation_id = create_correlation_id()
        viewer = await self._principal(session, correlation_id)

        summary = await self._balances.balance_summary(viewer.id)

        await self._audit.log_read(
            event_type=AuditEventType.BALANCES_COMPUTED,
            actor_id=viewer.id,
            description="Balance summary computed",
            details={"net": str(summary.net)},
            correlation_id=correlation_id,
        )
        return summary

    async def suggest_settlements(
        self,
        session: Optional[Session],
        group_id: UUID,
    ) -> list[SuggestedTransfer]:
        correlation_id = create_correlation_id()
        viewer = await self._principal(session, correlation_id)
        return await self._balances.suggest_settlements(group_id, viewer_id=viewer.id)

    # =========================================================================
    # GROUP WRITES
    # =========================================================================

    async def create_group(
        self,
        session: Optional[Session],
        name: str,
        description: Optional[str] = None,
        members: Iterable[UUID] = (),
    ) -> UUID:
        """Create a group with the caller as admin."""
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("create_group", principal.id, correlation_id):
            group_id = await self._groups.create_group(
                principal, name=name, description=description, member_ids=members
            )

        group = (await self._storage.snapshot()).get_group(group_id)
        await self._audit.log_group_created(
            group_id=group_id,
            actor_id=principal.id,
            name=group.name if group else name,
            member_count=group.member_count if group else 0,
            correlation_id=correlation_id,
        )
        return group_id

    async def add_members(
        self,
        session: Optional[Session],
        group_id: UUID,
        members: Iterable[UUID],
    ) -> list[UUID]:
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("add_members", principal.id, correlation_id):
            added = await self._groups.add_members(principal, group_id, members)

        if added:
            await self._audit.log_members_added(
                group_id=group_id,
                actor_id=principal.id,
                added=added,
                correlation_id=correlation_id,
            )
        return added

    async def remove_member(
        self,
        session: Optional[Session],
        group_id: UUID,
        user_id: UUID,
    ) -> None:
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("remove_member", principal.id, correlation_id):
            await self._groups.remove_member(principal, group_id, user_id)

        await self._audit.log_member_removed(
            group_id=group_id,
            actor_id=principal.id,
            removed=user_id,
            correlation_id=correlation_id,
        )

    async def delete_group(self, session: Optional[Session], group_id: UUID) -> None:
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("delete_group", principal.id, correlation_id):
            await self._groups.delete_group(principal, group_id)

        await self._audit.log_group_deleted(
            group_id=group_id,
            actor_id=principal.id,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # EXPENSE WRITES
    # =========================================================================

    async def record_expense(
        self,
        session: Optional[Session],
        paid_by_user_id: UUID,
        amount: AmountLike,
        splits: list[Split],
        group_id: Optional[UUID] = None,
        description: str = "",
        category: ExpenseCategory = ExpenseCategory.OTHER,
        expense_date: Optional[date] = None,
    ) -> UUID:
        """Record an expense on behalf of the caller."""
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("record_expense", principal.id, correlation_id):
            expense_id = await self._expenses.record_expense(
                principal,
                paid_by_user_id=paid_by_user_id,
                amount=amount,
                splits=splits,
                group_id=group_id,
                description=description,
                category=category,
                expense_date=expense_date,
            )

        await self._audit.log_expense_recorded(
            expense_id=expense_id,
            actor_id=principal.id,
            amount=str(amount),
            split_count=len(splits),
            group_id=group_id,
            correlation_id=correlation_id,
        )
        return expense_id

    async def record_settlement(
        self,
        session: Optional[Session],
        payer_id: UUID,
        payee_id: UUID,
        amount: AmountLike,
        group_id: Optional[UUID] = None,
        note: str = "",
    ) -> UUID:
        """Record a payment from payer to payee."""
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("record_settlement", principal.id, correlation_id):
            expense_id = await self._expenses.record_settlement(
                principal,
                payer_id=payer_id,
                payee_id=payee_id,
                amount=amount,
                group_id=group_id,
                note=note,
            )

        await self._audit.log_expense_recorded(
            expense_id=expense_id,
            actor_id=principal.id,
            amount=str(amount),
            split_count=1,
            group_id=group_id,
            settlement=True,
            correlation_id=correlation_id,
        )
        return expense_id

    async def update_expense(
        self,
        session: Optional[Session],
        expense_id: UUID,
        **changes,
    ) -> Expense:
        """Corrective edit; see ExpenseRecorder.update_expense for fields."""
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("update_expense", principal.id, correlation_id):
            expense = await self._expenses.update_expense(principal, expense_id, **changes)

        await self._audit.log_expense_updated(
            expense_id=expense_id,
            actor_id=principal.id,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense

    async def delete_expense(self, session: Optional[Session], expense_id: UUID) -> None:
        correlation_id = create_correlation_id()
        principal = await self._principal(session, correlation_id)

        async with self._rejections("delete_expense", principal.id, correlation_id):
            await self._expenses.delete_expense(principal, expense_id)

        await self._audit.log_expense_deleted(
            expense_id=expense_id,
            actor_id=principal.id,
            correlation_id=correlation_id,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[LedgerService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to honour the configured storage backend.
                    Set to False for an in-memory ledger (tests, demos).

    Returns:
        (ledger_service, sheets_client)
    """
    sheets_client = None
    ledger_storage: LedgerStorageInterface
    audit_storage: AuditStorageInterface

    if use_storage and get_settings().app.uses_google_sheets:
        sheets_client = GoogleSheetsClient()
        ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)
    else:
        ledger_storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()

    logger.info(
        "ledger_components_created",
        backend="google_sheets" if sheets_client else "memory",
    )

    service = LedgerService(
        storage=ledger_storage,
        audit_logger=AuditLogger(audit_storage),
    )
    return service, sheets_client
