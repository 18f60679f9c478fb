"""
Core Data Models for Split Ledger

These models define the strict schemas for everything the ledger persists:
users, groups (with their embedded rosters) and expenses (with their
embedded splits).

They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Cross-record rules (split sum, known participants, group
membership) are NOT enforced here. They need the rest of the ledger to
check, so they live in splitledger.validation and run before every write.
The models only guard what a single record can know about itself.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """Supported expense categories."""
    FOOD = "food"
    GROCERIES = "groceries"
    TRAVEL = "travel"
    TRANSPORT = "transport"
    RENT = "rent"
    UTILITIES = "utilities"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    HEALTH = "health"
    OTHER = "other"


class ExpenseKind(str, Enum):
    """
    Kind of ledger entry.

    DESIGN DECISION: A settlement is stored as an expense whose payer is the
    person handing money over and whose single split names the receiver.
    Both kinds go through the same aggregation, so every balance is
    "total owed minus total settled" with no special casing.
    """
    EXPENSE = "expense"
    SETTLEMENT = "settlement"


class MemberRole(str, Enum):
    """Role of a user inside a group."""
    ADMIN = "admin"
    MEMBER = "member"


# =============================================================================
# USERS
# =============================================================================

class User(BaseModel):
    """
    A ledger user.

    `token_identifier` is the opaque identity handed to us by the auth
    provider. Only profile fields (name, email, image_url) ever change.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique user ID"
    )
    token_identifier: str = Field(
        ...,
        min_length=1,
        description="Identity issued by the authentication provider"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )
    email: str = Field(
        ...,
        max_length=320,
        description="Contact email"
    )
    image_url: Optional[str] = Field(
        default=None,
        description="Avatar reference"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )


# =============================================================================
# GROUPS
# =============================================================================

class GroupMember(BaseModel):
    """One entry of a group roster."""

    user_id: UUID
    role: MemberRole = MemberRole.MEMBER
    joined_at: datetime = Field(
        default_factory=datetime.utcnow
    )


class Group(BaseModel):
    """
    A group and its embedded roster.

    Rosters are embedded because they are always read with the group.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique group ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Group name (trimmed, non-empty)"
    )
    description: str = Field(
        default="",
        max_length=1000,
    )
    created_by: UUID = Field(
        ...,
        description="User who created the group"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    members: list[GroupMember] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_roster(self) -> 'Group':
        """Member ids are unique and the creator is an admin."""
        seen = set()
        for member in self.members:
            if member.user_id in seen:
                raise ValueError(f"Duplicate group member: {member.user_id}")
            seen.add(member.user_id)

        creator = self.get_member(self.created_by)
        if creator is None or creator.role != MemberRole.ADMIN:
            raise ValueError("Group creator must be an admin member")

        return self

    @property
    def member_ids(self) -> set[UUID]:
        return {member.user_id for member in self.members}

    @property
    def member_count(self) -> int:
        return len(self.members)

    def get_member(self, user_id: UUID) -> Optional[GroupMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def has_member(self, user_id: UUID) -> bool:
        return self.get_member(user_id) is not None

    def is_admin(self, user_id: UUID) -> bool:
        member = self.get_member(user_id)
        return member is not None and member.role == MemberRole.ADMIN


# =============================================================================
# EXPENSES
# =============================================================================

class Split(BaseModel):
    """A participant's share of an expense."""

    user_id: UUID
    owed_share: Decimal = Field(
        ...,
        ge=0,
        decimal_places=4,
        description="Amount this participant is responsible for"
    )


class Expense(BaseModel):
    """
    A single ledger entry (expense or settlement).

    `group_id` is None for personal (1-to-1) expenses. It is an explicit
    optional field so storage can filter on "no group" directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )
    kind: ExpenseKind = ExpenseKind.EXPENSE
    description: str = Field(
        default="",
        max_length=500,
    )
    category: ExpenseCategory = ExpenseCategory.OTHER
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=4,
        description="Total amount paid"
    )
    expense_date: date = Field(
        default_factory=date.today,
        description="When the money was spent"
    )
    paid_by_user_id: UUID = Field(
        ...,
        description="The single payer"
    )
    group_id: Optional[UUID] = Field(
        default=None,
        description="Owning group, None for personal expenses"
    )
    splits: list[Split] = Field(
        ...,
        min_length=1,
        description="Who owes what"
    )
    created_by: Optional[UUID] = None
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @property
    def is_personal(self) -> bool:
        return self.group_id is None

    @property
    def participant_ids(self) -> set[UUID]:
        """Everyone named in the splits (the payer only if listed)."""
        return {split.user_id for split in self.splits}

    def involves(self, user_id: UUID) -> bool:
        """True if the user paid or owes a share."""
        return self.paid_by_user_id == user_id or user_id in self.participant_ids

    def share_of(self, user_id: UUID) -> Decimal:
        """Total owed share of a user, zero if they are not in the splits."""
        return sum(
            (split.owed_share for split in self.splits if split.user_id == user_id),
            Decimal("0"),
        )
