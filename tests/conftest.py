"""
Shared fixtures.

Everything runs against the in-memory backends; no external services are
contacted from the test suite.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

from splitledger.audit import AuditLogger
from splitledger.expenses import ExpenseRecorder
from splitledger.groups import GroupLifecycleManager
from splitledger.identity import Session
from splitledger.models.ledger import Split, User
from splitledger.orchestrator import LedgerService
from splitledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(storage, audit_storage):
    return LedgerService(storage, AuditLogger(audit_storage))


@pytest.fixture
def recorder(storage):
    return ExpenseRecorder(storage)


@pytest.fixture
def groups(storage):
    return GroupLifecycleManager(storage)


@pytest.fixture
def make_user(storage):
    """Insert a provisioned user straight into storage."""

    async def _make(name: str) -> User:
        user = User(
            token_identifier=f"https://auth.example.com|{uuid4().hex}",
            name=name,
            email=f"{name.lower()}@example.com",
        )
        async with storage.transaction() as txn:
            txn.insert_user(user)
        return user

    return _make


@pytest.fixture
def session_for():
    def _session(user: User) -> Session:
        return Session(token_identifier=user.token_identifier, issuer="https://auth.example.com")

    return _session


@pytest.fixture
def spend(recorder):
    """Record an expense paid by `payer`; shares are (user, amount) pairs."""

    async def _spend(
        payer: User,
        amount: str,
        *shares: tuple,
        group_id: Optional[UUID] = None,
    ) -> UUID:
        return await recorder.record_expense(
            payer,
            paid_by_user_id=payer.id,
            amount=Decimal(amount),
            splits=[
                Split(user_id=user.id, owed_share=Decimal(share))
                for user, share in shares
            ],
            group_id=group_id,
        )

    return _spend
