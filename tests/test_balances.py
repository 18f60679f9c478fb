"""
Tests for the balance engine.

Sign convention: positive means money is owed TO the viewer (or member).
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from splitledger.balances import BalanceEngine
from splitledger.config import LedgerSettings


@pytest.fixture
def engine(storage):
    return BalanceEngine(storage, LedgerSettings())


@pytest.fixture
async def trio(make_user):
    return (
        await make_user("Alice"),
        await make_user("Bob"),
        await make_user("Carol"),
    )


class TestNetBalance:
    """Tests for pairwise personal balances."""

    async def test_viewer_paid(self, engine, make_user, spend):
        """Viewer pays 100 split 40/60: the counterparty owes 60."""
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")
        await spend(viewer, "100", (viewer, "40"), (carol, "60"))

        assert await engine.net_balance(viewer.id, carol.id) == Decimal("60.00")
        assert await engine.net_balance(carol.id, viewer.id) == Decimal("-60.00")

    async def test_both_directions_net_out(self, engine, make_user, spend):
        """Carol then pays 50 split 20/30: the balance drops to 40."""
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")
        await spend(viewer, "100", (viewer, "40"), (carol, "60"))
        await spend(carol, "50", (viewer, "20"), (carol, "30"))

        assert await engine.net_balance(viewer.id, carol.id) == Decimal("40.00")

    async def test_group_expenses_are_ignored(self, engine, groups, make_user, spend):
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")
        group_id = await groups.create_group(viewer, "Trip", member_ids=[carol.id])
        await spend(viewer, "100", (viewer, "50"), (carol, "50"), group_id=group_id)

        assert await engine.net_balance(viewer.id, carol.id) == Decimal("0.00")

    async def test_third_party_payer_ignored(self, engine, make_user, spend):
        """An expense paid by someone else does not move viewer vs carol."""
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")
        dave = await make_user("Dave")
        await spend(dave, "30", (viewer, "10"), (carol, "10"), (dave, "10"))

        assert await engine.net_balance(viewer.id, carol.id) == Decimal("0.00")
        assert await engine.net_balance(viewer.id, dave.id) == Decimal("-10.00")

    async def test_self_balance_is_zero(self, engine, make_user, spend):
        viewer = await make_user("Viewer")
        await spend(viewer, "10", (viewer, "10"))
        assert await engine.net_balance(viewer.id, viewer.id) == Decimal("0.00")

    async def test_settlement_clears_balance(self, engine, recorder, make_user, spend):
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")
        await spend(viewer, "100", (viewer, "40"), (carol, "60"))

        await recorder.record_settlement(carol, payer_id=carol.id, payee_id=viewer.id, amount="60")

        assert await engine.net_balance(viewer.id, carol.id) == Decimal("0.00")

    async def test_over_settlement_flips_sign(self, engine, recorder, make_user, spend):
        viewer = await make_user("Viewer")
        carol = await make_user("Carol")
        await spend(viewer, "100", (viewer, "40"), (carol, "60"))

        await recorder.record_settlement(carol, payer_id=carol.id, payee_id=viewer.id, amount="100")

        assert await engine.net_balance(viewer.id, carol.id) == Decimal("-40.00")


class TestGroupBalances:
    """Tests for per-member group balances."""

    async def test_even_split(self, engine, groups, spend, trio):
        """A pays 90 split evenly: A +60, B -30, C -30."""
        alice, bob, carol = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])
        await spend(alice, "90", (alice, "30"), (bob, "30"), (carol, "30"), group_id=group_id)

        balances = await engine.group_balances(group_id)

        assert balances == {
            alice.id: Decimal("60.00"),
            bob.id: Decimal("-30.00"),
            carol.id: Decimal("-30.00"),
        }
        assert sum(balances.values()) == 0

    async def test_rounding_remainder_stays_zero_sum(self, engine, groups, spend, trio):
        """100 split as 3 x 33.33: the missing cent is absorbed by the payer."""
        alice, bob, carol = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])
        await spend(
            alice, "100", (alice, "33.33"), (bob, "33.33"), (carol, "33.33"),
            group_id=group_id,
        )
        await spend(bob, "10", (alice, "3.34"), (bob, "3.33"), (carol, "3.33"), group_id=group_id)

        balances = await engine.group_balances(group_id)

        assert balances[alice.id] == Decimal("63.32")
        assert balances[bob.id] == Decimal("-26.66")
        assert balances[carol.id] == Decimal("-36.66")
        assert sum(balances.values()) == 0

    async def test_members_without_expenses_start_at_zero(self, engine, groups, trio):
        alice, bob, carol = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])

        balances = await engine.group_balances(group_id)

        assert set(balances) == {alice.id, bob.id, carol.id}
        assert all(value == 0 for value in balances.values())

    async def test_unknown_group_is_empty(self, engine):
        assert await engine.group_balances(uuid4()) == {}

    async def test_non_member_viewer_sees_nothing(self, engine, groups, make_user, trio):
        alice, bob, _ = trio
        outsider = await make_user("Outsider")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])

        assert await engine.group_balances(group_id, viewer_id=outsider.id) == {}
        assert len(await engine.group_balances(group_id, viewer_id=bob.id)) == 2

    async def test_group_settlement(self, engine, groups, recorder, spend, trio):
        alice, bob, carol = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])
        await spend(alice, "90", (alice, "30"), (bob, "30"), (carol, "30"), group_id=group_id)

        await recorder.record_settlement(
            bob, payer_id=bob.id, payee_id=alice.id, amount="30", group_id=group_id
        )

        balances = await engine.group_balances(group_id)
        assert balances[bob.id] == Decimal("0.00")
        assert balances[alice.id] == Decimal("30.00")
        assert sum(balances.values()) == 0


class TestSuggestSettlements:
    """Tests for greedy settlement suggestions."""

    async def test_debtors_pay_creditor(self, engine, groups, spend, trio):
        alice, bob, carol = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])
        await spend(alice, "90", (alice, "30"), (bob, "30"), (carol, "30"), group_id=group_id)

        transfers = await engine.suggest_settlements(group_id)

        assert {(t.from_user_id, t.to_user_id, t.amount) for t in transfers} == {
            (bob.id, alice.id, Decimal("30.00")),
            (carol.id, alice.id, Decimal("30.00")),
        }

    async def test_settled_group_needs_no_transfers(self, engine, groups, trio):
        alice, bob, _ = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])
        assert await engine.suggest_settlements(group_id) == []

    async def test_applying_suggestions_settles_group(
        self, engine, groups, recorder, spend, trio
    ):
        alice, bob, carol = trio
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])
        await spend(alice, "90", (alice, "30"), (bob, "30"), (carol, "30"), group_id=group_id)
        await spend(bob, "45", (alice, "15"), (bob, "15"), (carol, "15"), group_id=group_id)

        transfers = await engine.suggest_settlements(group_id)
        assert [(t.from_user_id, t.to_user_id) for t in transfers] == [(carol.id, alice.id)]

        by_id = {user.id: user for user in trio}
        for transfer in transfers:
            await recorder.record_settlement(
                by_id[transfer.from_user_id],
                payer_id=transfer.from_user_id,
                payee_id=transfer.to_user_id,
                amount=transfer.amount,
                group_id=group_id,
            )

        balances = await engine.group_balances(group_id)
        assert all(value == 0 for value in balances.values())


class TestBalanceSummary:
    """Tests for the viewer-wide summary."""

    async def test_summary_totals(self, engine, groups, spend, trio):
        alice, bob, carol = trio
        await spend(alice, "100", (alice, "40"), (bob, "60"))
        await spend(carol, "30", (alice, "30"))
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])
        await spend(bob, "20", (alice, "10"), (bob, "10"), group_id=group_id)

        summary = await engine.balance_summary(alice.id)

        by_name = {entry.name: entry.balance for entry in summary.users}
        assert by_name == {"Bob": Decimal("60.00"), "Carol": Decimal("-30.00")}
        assert [g.balance for g in summary.groups] == [Decimal("-10.00")]
        assert summary.you_are_owed == Decimal("60.00")
        assert summary.you_owe == Decimal("40.00")
        assert summary.net == Decimal("20.00")
        assert summary.currency_code == "USD"
