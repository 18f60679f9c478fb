"""
Balance Engine

Computes who owes whom by folding over raw expenses.

DESIGN DECISION: There is no stored balance table. Every balance is
recomputed from the expense records it depends on, so the expenses remain
the only source of truth and there is nothing to reconcile.

Sign convention everywhere: positive means money is owed TO the viewer
(or, for group balances, to that member); negative means they owe.

All sums run on integer minor units and are converted back to Decimal only
when a result leaves the engine. Settlements are expenses of kind
SETTLEMENT and go through exactly the same arithmetic.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional
from uuid import UUID

from splitledger.config import LedgerSettings, get_settings
from splitledger.contacts import ContactDeriver
from splitledger.models.contacts import (
    BalanceSummary,
    ContactBalance,
    SuggestedTransfer,
)
from splitledger.models.ledger import Group
from splitledger.models.money import from_minor_units, to_minor_units
from splitledger.services.storage import (
    ExpenseFilter,
    LedgerSnapshot,
    LedgerStorageInterface,
)


def _visible(group: Group, viewer_id: Optional[UUID]) -> bool:
    return viewer_id is None or group.has_member(viewer_id)


class BalanceEngine:
    """
    Pairwise and group balance computation.

    The async methods take their own snapshot; the *_units methods work on a
    snapshot the caller already holds, so several balances can be computed
    from one consistent read.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().ledger
        self._contacts = ContactDeriver(storage)

    @property
    def digits(self) -> int:
        return self._settings.minor_unit_digits

    def _units(self, amount: Decimal) -> int:
        return to_minor_units(amount, self.digits)

    def _decimal(self, units: int) -> Decimal:
        return from_minor_units(units, self.digits)

    # =========================================================================
    # PAIRWISE
    # =========================================================================

    def pairwise_units(
        self,
        snapshot: LedgerSnapshot,
        viewer_id: UUID,
        counterparty_id: UUID,
    ) -> int:
        """
        Net personal balance between two users, in minor units.

        Only personal expenses count; group debts are settled inside groups.
        """
        if viewer_id == counterparty_id:
            return 0

        net = 0
        for expense in snapshot.find_expenses(
            ExpenseFilter(involving_id=viewer_id, personal_only=True)
        ):
            if expense.paid_by_user_id == viewer_id:
                # They owe us their share
                net += self._units(expense.share_of(counterparty_id))
            elif expense.paid_by_user_id == counterparty_id:
                # We owe them our share
                net -= self._units(expense.share_of(viewer_id))
        return net

    async def net_balance(self, viewer_id: UUID, counterparty_id: UUID) -> Decimal:
        """
        Signed balance between the viewer and one counterparty.

        Positive: the counterparty owes the viewer.
        """
        snapshot = await self._storage.snapshot()
        return self._decimal(self.pairwise_units(snapshot, viewer_id, counterparty_id))

    # =========================================================================
    # GROUPS
    # =========================================================================

    def group_units(self, snapshot: LedgerSnapshot, group: Group) -> dict[UUID, int]:
        """
        Per-member balances of a group, in minor units.

        The payer is credited with exactly what the other participants are
        debited. Any gap between the amount and the split total (at most the
        configured tolerance) is therefore absorbed by the payer, and the
        balances always sum to zero.
        """
        balances: dict[UUID, int] = {member.user_id: 0 for member in group.members}

        for expense in snapshot.find_expenses(ExpenseFilter(group_id=group.id)):
            payer_id = expense.paid_by_user_id
            for split in expense.splits:
                if split.user_id == payer_id:
                    continue
                share = self._units(split.owed_share)
                balances[payer_id] = balances.get(payer_id, 0) + share
                balances[split.user_id] = balances.get(split.user_id, 0) - share

        return balances

    async def group_balances(
        self,
        group_id: UUID,
        viewer_id: Optional[UUID] = None,
    ) -> dict[UUID, Decimal]:
        """
        Signed balance of every member of a group.

        Unknown groups yield an empty mapping, and so does a group the
        viewer (when given) is not a member of.
        """
        snapshot = await self._storage.snapshot()
        group = snapshot.get_group(group_id)
        if group is None or not _visible(group, viewer_id):
            return {}
        return {
            user_id: self._decimal(units)
            for user_id, units in self.group_units(snapshot, group).items()
        }

    async def suggest_settlements(
        self,
        group_id: UUID,
        viewer_id: Optional[UUID] = None,
    ) -> list[SuggestedTransfer]:
        """
        A short list of payments that would bring every member to zero.

        Greedy matching of the largest debtor with the largest creditor.
        Ties are broken by user id so the suggestion is stable.
        """
        snapshot = await self._storage.snapshot()
        group = snapshot.get_group(group_id)
        if group is None or not _visible(group, viewer_id):
            return []

        balances = self.group_units(snapshot, group)
        creditors = sorted(
            ([user_id, units] for user_id, units in balances.items() if units > 0),
            key=lambda entry: (-entry[1], str(entry[0])),
        )
        debtors = sorted(
            ([user_id, -units] for user_id, units in balances.items() if units < 0),
            key=lambda entry: (-entry[1], str(entry[0])),
        )

        transfers = []
        i = j = 0
        while i < len(debtors) and j < len(creditors):
            debtor, creditor = debtors[i], creditors[j]
            units = min(debtor[1], creditor[1])
            transfers.append(SuggestedTransfer(
                from_user_id=debtor[0],
                to_user_id=creditor[0],
                amount=self._decimal(units),
            ))
            debtor[1] -= units
            creditor[1] -= units
            if debtor[1] == 0:
                i += 1
            if creditor[1] == 0:
                j += 1

        return transfers

    # =========================================================================
    # SUMMARY
    # =========================================================================

    async def balance_summary(self, viewer_id: UUID) -> BalanceSummary:
        """
        Balances against every contact of the viewer, from one snapshot.

        User entries are personal balances; group entries are the viewer's
        own balance inside that group. Settled-up contacts are kept with a
        zero balance.
        """
        snapshot = await self._storage.snapshot()
        contacts = self._contacts.derive(snapshot, viewer_id)

        totals: dict[str, int] = defaultdict(int)

        users = []
        for contact in contacts.users:
            units = self.pairwise_units(snapshot, viewer_id, contact.id)
            users.append(ContactBalance(
                counterparty_id=contact.id,
                kind="user",
                name=contact.name,
                balance=self._decimal(units),
            ))
            totals["owed" if units > 0 else "owe"] += abs(units)

        groups = []
        for contact in contacts.groups:
            group = snapshot.get_group(contact.id)
            units = self.group_units(snapshot, group).get(viewer_id, 0)
            groups.append(ContactBalance(
                counterparty_id=contact.id,
                kind="group",
                name=contact.name,
                balance=self._decimal(units),
            ))
            totals["owed" if units > 0 else "owe"] += abs(units)

        return BalanceSummary(
            viewer_id=viewer_id,
            currency_code=self._settings.currency_code,
            users=users,
            groups=groups,
            you_are_owed=self._decimal(totals["owed"]),
            you_owe=self._decimal(totals["owe"]),
        )
