"""
Contact Derivation

A contact is anyone the viewer has shared a personal expense with, plus every
group the viewer belongs to. Contacts are never stored: they are derived from
expenses and rosters on every call.

DESIGN DECISION: Best-effort discovery, not referential integrity. An id in
an expense that no longer resolves to a user is treated as a deleted account
and dropped from the result instead of failing the whole call.
"""

from typing import Iterable
from uuid import UUID

from splitledger.models.contacts import ContactList, GroupContact, UserContact
from splitledger.models.ledger import Expense
from splitledger.services.storage import (
    ExpenseFilter,
    LedgerSnapshot,
    LedgerStorageInterface,
)


def collect_counterparty_ids(expenses: Iterable[Expense], viewer_id: UUID) -> set[UUID]:
    """Every payer and split user other than the viewer."""
    counterparty_ids: set[UUID] = set()
    for expense in expenses:
        if expense.paid_by_user_id != viewer_id:
            counterparty_ids.add(expense.paid_by_user_id)
        for split in expense.splits:
            if split.user_id != viewer_id:
                counterparty_ids.add(split.user_id)
    return counterparty_ids


class ContactDeriver:
    """Derives a viewer's user and group contacts from a single snapshot."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def list_contacts(self, viewer_id: UUID) -> ContactList:
        """
        All user contacts and groups of a viewer.

        Both lists are sorted by name (case-sensitive), ties broken by id.
        """
        snapshot = await self._storage.snapshot()
        return self.derive(snapshot, viewer_id)

    def derive(self, snapshot: LedgerSnapshot, viewer_id: UUID) -> ContactList:
        """Contact derivation over an already taken snapshot."""
        personal_expenses = snapshot.find_expenses(
            ExpenseFilter(involving_id=viewer_id, personal_only=True)
        )

        users = []
        for user_id in collect_counterparty_ids(personal_expenses, viewer_id):
            user = snapshot.get_user(user_id)
            if user is None:
                continue  # Deleted account
            users.append(UserContact(
                id=user.id,
                name=user.name,
                email=user.email,
                image_url=user.image_url,
            ))

        groups = [
            GroupContact(
                id=group.id,
                name=group.name,
                description=group.description,
                member_count=group.member_count,
            )
            for group in snapshot.list_groups(member_id=viewer_id)
        ]

        users.sort(key=lambda c: (c.name, str(c.id)))
        groups.sort(key=lambda c: (c.name, str(c.id)))

        return ContactList(users=users, groups=groups)
