"""Tests for group creation and roster management."""

from uuid import uuid4

import pytest

from splitledger.config import LedgerSettings
from splitledger.groups import GroupLifecycleManager
from splitledger.models.ledger import MemberRole
from splitledger.validation import (
    GroupHasExpenses,
    GroupTooLarge,
    GroupValidator,
    InvalidGroupName,
    MemberHasExpenses,
    NotAGroupMember,
    PermissionDenied,
    TextTooLong,
    UnknownGroup,
    UnknownUser,
)


class TestCreateGroup:
    """Tests for GroupLifecycleManager.create_group."""

    async def test_creator_is_admin_and_others_members(self, groups, storage, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")

        group_id = await groups.create_group(alice, "Trip", "Lisbon", [bob.id])

        group = storage.get_group(group_id)
        assert group.name == "Trip"
        assert group.description == "Lisbon"
        assert group.created_by == alice.id
        assert group.get_member(alice.id).role == MemberRole.ADMIN
        assert group.get_member(bob.id).role == MemberRole.MEMBER

    async def test_members_share_joined_at(self, groups, storage, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")

        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])

        joined = {m.joined_at for m in storage.get_group(group_id).members}
        assert len(joined) == 1

    async def test_duplicate_ids_collapse(self, groups, storage, make_user):
        """Test that repeats and the creator's own id are de-duplicated."""
        alice = await make_user("Alice")
        bob = await make_user("Bob")

        group_id = await groups.create_group(
            alice, "Trip", member_ids=[bob.id, alice.id, bob.id]
        )

        group = storage.get_group(group_id)
        assert group.member_count == 2
        assert group.is_admin(alice.id)

    async def test_name_is_trimmed(self, groups, storage, make_user):
        alice = await make_user("Alice")
        group_id = await groups.create_group(alice, "  Trip  ")
        assert storage.get_group(group_id).name == "Trip"

    async def test_solo_group(self, groups, storage, make_user):
        alice = await make_user("Alice")
        group_id = await groups.create_group(alice, "Just me")
        assert storage.get_group(group_id).member_ids == {alice.id}

    @pytest.mark.parametrize("name", ["", "   ", None])
    async def test_blank_name_rejected(self, groups, storage, make_user, name):
        alice = await make_user("Alice")
        with pytest.raises(InvalidGroupName):
            await groups.create_group(alice, name)
        assert storage.count("groups") == 0

    async def test_description_too_long(self, groups, storage, make_user):
        alice = await make_user("Alice")
        with pytest.raises(TextTooLong) as exc_info:
            await groups.create_group(alice, "Trip", description="y" * 1200)
        assert exc_info.value.field == "description"
        assert storage.count("groups") == 0

    async def test_unknown_member_rejected(self, groups, storage, make_user):
        """Test that no group is persisted when a member id is unknown."""
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        missing = uuid4()

        with pytest.raises(UnknownUser) as exc_info:
            await groups.create_group(alice, "Trip", member_ids=[bob.id, missing, uuid4()])

        assert exc_info.value.entity_id == missing
        assert storage.count("groups") == 0

    async def test_roster_size_limit(self, storage, make_user):
        manager = GroupLifecycleManager(
            storage, GroupValidator(LedgerSettings(max_group_members=2))
        )
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")

        with pytest.raises(GroupTooLarge):
            await manager.create_group(alice, "Trip", member_ids=[bob.id, carol.id])


class TestAddMembers:
    """Tests for GroupLifecycleManager.add_members."""

    async def test_admin_adds_members(self, groups, storage, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])

        added = await groups.add_members(alice, group_id, [carol.id, bob.id])

        assert added == [carol.id]
        group = storage.get_group(group_id)
        assert group.member_count == 3
        assert group.get_member(carol.id).role == MemberRole.MEMBER

    async def test_non_admin_cannot_add(self, groups, storage, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])

        with pytest.raises(PermissionDenied):
            await groups.add_members(bob, group_id, [carol.id])
        assert storage.get_group(group_id).member_count == 2

    async def test_unknown_user_rejected(self, groups, make_user):
        alice = await make_user("Alice")
        group_id = await groups.create_group(alice, "Trip")
        with pytest.raises(UnknownUser):
            await groups.add_members(alice, group_id, [uuid4()])

    async def test_unknown_group_rejected(self, groups, make_user):
        alice = await make_user("Alice")
        with pytest.raises(UnknownGroup):
            await groups.add_members(alice, uuid4(), [])


class TestRemoveMember:
    """Tests for GroupLifecycleManager.remove_member."""

    async def test_admin_removes_member(self, groups, storage, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])

        await groups.remove_member(alice, group_id, bob.id)

        assert not storage.get_group(group_id).has_member(bob.id)

    async def test_member_can_leave(self, groups, storage, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])

        await groups.remove_member(bob, group_id, bob.id)

        assert storage.get_group(group_id).member_ids == {alice.id}

    async def test_member_cannot_remove_others(self, groups, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id, carol.id])

        with pytest.raises(PermissionDenied):
            await groups.remove_member(bob, group_id, carol.id)

    async def test_creator_cannot_be_removed(self, groups, make_user):
        alice = await make_user("Alice")
        group_id = await groups.create_group(alice, "Trip")
        with pytest.raises(PermissionDenied):
            await groups.remove_member(alice, group_id, alice.id)

    async def test_non_member_rejected(self, groups, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        group_id = await groups.create_group(alice, "Trip")
        with pytest.raises(NotAGroupMember):
            await groups.remove_member(alice, group_id, bob.id)

    async def test_member_with_expenses_kept(self, groups, storage, make_user, spend):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])
        await spend(alice, "20", (alice, "10"), (bob, "10"), group_id=group_id)

        with pytest.raises(MemberHasExpenses):
            await groups.remove_member(alice, group_id, bob.id)
        assert storage.get_group(group_id).has_member(bob.id)


class TestDeleteGroup:
    """Tests for GroupLifecycleManager.delete_group."""

    async def test_admin_deletes_empty_group(self, groups, storage, make_user):
        alice = await make_user("Alice")
        group_id = await groups.create_group(alice, "Trip")

        await groups.delete_group(alice, group_id)

        assert storage.get_group(group_id) is None

    async def test_group_with_expenses_not_deleted(self, groups, storage, make_user, spend):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])
        await spend(alice, "20", (alice, "10"), (bob, "10"), group_id=group_id)

        with pytest.raises(GroupHasExpenses) as exc_info:
            await groups.delete_group(alice, group_id)

        assert exc_info.value.details["expense_count"] == 1
        assert storage.get_group(group_id) is not None

    async def test_member_cannot_delete(self, groups, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        group_id = await groups.create_group(alice, "Trip", member_ids=[bob.id])
        with pytest.raises(PermissionDenied):
            await groups.delete_group(bob, group_id)
