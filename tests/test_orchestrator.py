"""
Tests for the session-facing LedgerService.

These cover the end-to-end flows: session resolution, delegation to the
core components, and the audit trail left behind.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from splitledger.audit import AuditLogger
from splitledger.identity import Session
from splitledger.models.audit import AuditEvent, AuditEventType
from splitledger.models.ledger import Split
from splitledger.orchestrator import LedgerService, create_app_components
from splitledger.services.storage import AuditStorageInterface, InMemoryLedgerStorage
from splitledger.validation import (
    InvalidAmount,
    InvalidGroupName,
    InvalidSplitSum,
    Unauthenticated,
    UnknownUser,
    UserNotProvisioned,
)


async def _event_types(audit_storage) -> list[AuditEventType]:
    events = await audit_storage.get_recent_events()
    return [event.event_type for event in events]


class _BrokenAuditStorage(AuditStorageInterface):
    async def append_event(self, event: AuditEvent) -> bool:
        raise RuntimeError("sheet unavailable")

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return []

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        return []

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return []


class TestSessionHandling:
    """Tests for identity resolution at the service boundary."""

    async def test_missing_session_rejected_and_audited(self, ledger, audit_storage):
        with pytest.raises(Unauthenticated):
            await ledger.get_all_contacts(None)

        assert AuditEventType.AUTH_FAILED in await _event_types(audit_storage)

    async def test_unprovisioned_session_rejected(self, ledger):
        with pytest.raises(UserNotProvisioned):
            await ledger.balance_summary(Session(token_identifier="auth|new"))

    async def test_provision_then_use(self, ledger, audit_storage):
        session = Session(token_identifier="auth|alice")

        user = await ledger.provision_user(session, "Alice", "alice@example.com")

        assert (await ledger.current_user(session)).id == user.id
        assert AuditEventType.USER_PROVISIONED in await _event_types(audit_storage)


class TestWriteFlows:
    """Tests for audited writes."""

    async def test_expense_flow(self, ledger, audit_storage, make_user, session_for):
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")

        await ledger.record_expense(
            session_for(viewer),
            paid_by_user_id=viewer.id,
            amount=Decimal("100"),
            splits=[
                Split(user_id=viewer.id, owed_share=Decimal("40")),
                Split(user_id=carol.id, owed_share=Decimal("60")),
            ],
        )
        await ledger.record_settlement(
            session_for(carol), payer_id=carol.id, payee_id=viewer.id, amount="20"
        )

        assert await ledger.net_balance(session_for(viewer), carol.id) == Decimal("40.00")
        contacts = await ledger.get_all_contacts(session_for(viewer))
        assert [c.id for c in contacts.users] == [carol.id]

        types = await _event_types(audit_storage)
        assert AuditEventType.EXPENSE_RECORDED in types
        assert AuditEventType.SETTLEMENT_RECORDED in types

    async def test_rejected_write_is_audited_and_reraised(
        self, ledger, storage, audit_storage, make_user, session_for
    ):
        viewer = await make_user("Viewer")

        with pytest.raises(InvalidSplitSum):
            await ledger.record_expense(
                session_for(viewer),
                paid_by_user_id=viewer.id,
                amount="10",
                splits=[Split(user_id=viewer.id, owed_share=Decimal("5"))],
            )

        assert storage.count("expenses") == 0
        events = await audit_storage.get_recent_events()
        rejected = [e for e in events if e.event_type == AuditEventType.VALIDATION_FAILED]
        assert len(rejected) == 1
        assert rejected[0].error_code == "invalid_split_sum"
        assert rejected[0].actor_id == viewer.id

    async def test_non_finite_amount_is_audited(
        self, ledger, storage, audit_storage, make_user, session_for
    ):
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")

        with pytest.raises(InvalidAmount):
            await ledger.record_expense(
                session_for(viewer),
                paid_by_user_id=viewer.id,
                amount="NaN",
                splits=[Split(user_id=carol.id, owed_share=Decimal("1"))],
            )

        assert storage.count("expenses") == 0
        events = await audit_storage.get_recent_events()
        rejected = [e for e in events if e.event_type == AuditEventType.VALIDATION_FAILED]
        assert [e.error_code for e in rejected] == ["invalid_amount"]

    async def test_create_group_scenarios(self, ledger, storage, make_user, session_for):
        """Blank names and unknown members both fail without persisting."""
        viewer = await make_user("Viewer")

        with pytest.raises(InvalidGroupName):
            await ledger.create_group(session_for(viewer), "", members=[])
        with pytest.raises(UnknownUser):
            await ledger.create_group(session_for(viewer), "Trip", members=[uuid4()])

        assert storage.count("groups") == 0

    async def test_group_lifecycle(self, ledger, storage, audit_storage, make_user, session_for):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")

        group_id = await ledger.create_group(session_for(alice), "Trip", "Porto", [bob.id])
        assert await ledger.add_members(session_for(alice), group_id, [carol.id]) == [carol.id]
        await ledger.remove_member(session_for(carol), group_id, carol.id)
        await ledger.delete_group(session_for(alice), group_id)

        assert storage.get_group(group_id) is None
        types = await _event_types(audit_storage)
        for expected in (
            AuditEventType.GROUP_CREATED,
            AuditEventType.GROUP_MEMBERS_ADDED,
            AuditEventType.GROUP_MEMBER_REMOVED,
            AuditEventType.GROUP_DELETED,
        ):
            assert expected in types

    async def test_update_and_delete_expense(self, ledger, storage, make_user, session_for):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        expense_id = await ledger.record_expense(
            session_for(alice),
            paid_by_user_id=alice.id,
            amount="30",
            splits=[Split(user_id=bob.id, owed_share=Decimal("30"))],
        )

        expense = await ledger.update_expense(session_for(alice), expense_id, description="Taxi")
        assert expense.description == "Taxi"

        await ledger.delete_expense(session_for(alice), expense_id)
        assert storage.count("expenses") == 0


class TestReadFlows:
    """Tests for balance reads through the service."""

    async def test_group_balances_hidden_from_outsiders(
        self, ledger, make_user, session_for
    ):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        outsider = await make_user("Outsider")
        group_id = await ledger.create_group(session_for(alice), "Trip", members=[bob.id])
        await ledger.record_expense(
            session_for(alice),
            paid_by_user_id=alice.id,
            amount="50",
            splits=[
                Split(user_id=alice.id, owed_share=Decimal("25")),
                Split(user_id=bob.id, owed_share=Decimal("25")),
            ],
            group_id=group_id,
        )

        assert await ledger.group_balances(session_for(outsider), group_id) == {}
        balances = await ledger.group_balances(session_for(bob), group_id)
        assert balances == {alice.id: Decimal("25.00"), bob.id: Decimal("-25.00")}

        transfers = await ledger.suggest_settlements(session_for(bob), group_id)
        assert [(t.from_user_id, t.amount) for t in transfers] == [(bob.id, Decimal("25.00"))]

    async def test_balance_summary(self, ledger, make_user, session_for):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        await ledger.record_expense(
            session_for(alice),
            paid_by_user_id=alice.id,
            amount="12.50",
            splits=[Split(user_id=bob.id, owed_share=Decimal("12.50"))],
        )

        summary = await ledger.balance_summary(session_for(bob))

        assert summary.you_owe == Decimal("12.50")
        assert summary.net == Decimal("-12.50")


class TestAuditResilience:
    """Tests that a broken audit sink never fails a ledger operation."""

    async def test_write_succeeds_when_audit_storage_fails(self, storage, make_user, session_for):
        ledger = LedgerService(storage, AuditLogger(_BrokenAuditStorage()))
        alice = await make_user("Alice")

        group_id = await ledger.create_group(session_for(alice), "Trip")

        assert storage.get_group(group_id) is not None

    async def test_logger_reports_failed_persist(self):
        logger = AuditLogger(_BrokenAuditStorage())
        ok = await logger.log(AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            description="Storage failure during record_expense",
        ))
        assert ok is False


class TestAppFactory:
    """Tests for create_app_components."""

    def test_without_storage_uses_memory(self):
        service, sheets_client = create_app_components(use_storage=False)

        assert isinstance(service, LedgerService)
        assert isinstance(service.storage, InMemoryLedgerStorage)
        assert sheets_client is None
