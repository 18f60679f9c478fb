"""
Group Lifecycle Manager

The only writer of groups. Creates groups and edits their rosters while
keeping two invariants:
1. Member ids are unique
2. The creator is always a member with the admin role

Every operation validates completely before it stages its single write.
"""

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

import structlog

from splitledger.models.ledger import Group, GroupMember, MemberRole, User
from splitledger.services.storage import (
    ExpenseFilter,
    LedgerSnapshot,
    LedgerStorageInterface,
)
from splitledger.validation import (
    GroupHasExpenses,
    GroupValidator,
    MemberHasExpenses,
    NotAGroupMember,
    PermissionDenied,
    UnknownGroup,
)


logger = structlog.get_logger(__name__)


def _require_group(snapshot: LedgerSnapshot, group_id: UUID) -> Group:
    group = snapshot.get_group(group_id)
    if group is None:
        raise UnknownGroup(group_id)
    return group


def _with_members(group: Group, members: list[GroupMember]) -> Group:
    # Rebuild through validation so the roster invariants are re-checked
    return Group.model_validate({**group.model_dump(), "members": members})


class GroupLifecycleManager:
    """Creates groups and manages their membership."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[GroupValidator] = None,
    ):
        self._storage = storage
        self._validator = validator or GroupValidator()

    async def create_group(
        self,
        principal: User,
        name: str,
        description: Optional[str] = None,
        member_ids: Iterable[UUID] = (),
    ) -> UUID:
        """
        Create a group owned by the principal.

        Validation order:
        1. Name must not be blank (InvalidGroupName), description must fit
           its length limit (TextTooLong)
        2. Requested ids are de-duplicated and the principal is added
        3. Every id must belong to a user (UnknownUser, first missing id)

        The principal becomes admin, everyone else member, and all of them
        share the same joined_at timestamp.

        Returns:
            The new group's id
        """
        clean_name = self._validator.clean_name(name)
        clean_description = self._validator.clean_description(description)

        # Ordered de-duplication; the creator is always included
        roster_ids = list(dict.fromkeys(member_ids))
        if principal.id not in roster_ids:
            roster_ids.append(principal.id)
        self._validator.validate_roster_size(len(roster_ids))

        async with self._storage.transaction() as txn:
            self._validator.validate_users_exist(txn, roster_ids)

            joined_at = datetime.utcnow()
            group = Group(
                name=clean_name,
                description=clean_description,
                created_by=principal.id,
                created_at=joined_at,
                members=[
                    GroupMember(
                        user_id=user_id,
                        role=MemberRole.ADMIN if user_id == principal.id else MemberRole.MEMBER,
                        joined_at=joined_at,
                    )
                    for user_id in roster_ids
                ],
            )
            txn.insert_group(group)

        logger.info(
            "group_created",
            group_id=str(group.id),
            member_count=group.member_count,
        )
        return group.id

    async def add_members(
        self,
        principal: User,
        group_id: UUID,
        member_ids: Iterable[UUID],
    ) -> list[UUID]:
        """
        Add users to a group. Admins only.

        Users already on the roster are skipped.

        Returns:
            The ids that were actually added, in request order
        """
        async with self._storage.transaction() as txn:
            group = _require_group(txn, group_id)
            if not group.is_admin(principal.id):
                raise PermissionDenied(
                    "Only group admins can add members", entity_id=group_id
                )

            new_ids = [
                user_id for user_id in dict.fromkeys(member_ids)
                if not group.has_member(user_id)
            ]
            if not new_ids:
                return []

            self._validator.validate_users_exist(txn, new_ids)
            self._validator.validate_roster_size(group.member_count + len(new_ids))

            joined_at = datetime.utcnow()
            members = list(group.members) + [
                GroupMember(user_id=user_id, role=MemberRole.MEMBER, joined_at=joined_at)
                for user_id in new_ids
            ]
            txn.update_group(_with_members(group, members))

        return new_ids

    async def remove_member(
        self,
        principal: User,
        group_id: UUID,
        user_id: UUID,
    ) -> None:
        """
        Remove a user from a group.

        Admins may remove anyone; members may only remove themselves.
        The creator can never be removed, and neither can anyone who still
        appears in one of the group's expenses.
        """
        async with self._storage.transaction() as txn:
            group = _require_group(txn, group_id)

            if not group.has_member(user_id):
                raise NotAGroupMember(user_id, group_id, field="user_id")
            if user_id == group.created_by:
                raise PermissionDenied(
                    "The group creator cannot be removed", entity_id=user_id
                )
            if principal.id != user_id and not group.is_admin(principal.id):
                raise PermissionDenied(
                    "Only group admins can remove other members", entity_id=group_id
                )

            if txn.find_expenses(ExpenseFilter(group_id=group_id, involving_id=user_id)):
                raise MemberHasExpenses(user_id, group_id)

            members = [m for m in group.members if m.user_id != user_id]
            txn.update_group(_with_members(group, members))

    async def delete_group(self, principal: User, group_id: UUID) -> None:
        """
        Delete a group. Admins only.

        Rejected while any expense still references the group: expenses
        are never cascaded away.
        """
        async with self._storage.transaction() as txn:
            group = _require_group(txn, group_id)
            if not group.is_admin(principal.id):
                raise PermissionDenied(
                    "Only group admins can delete the group", entity_id=group_id
                )

            expenses = txn.find_expenses(ExpenseFilter(group_id=group_id))
            if expenses:
                raise GroupHasExpenses(group_id, len(expenses))

            txn.delete_group(group_id)
