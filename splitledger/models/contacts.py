"""
Derived Models

Nothing in this module is ever persisted. Contacts and balances are
recomputed from raw expenses and groups on every query.
"""

from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# =============================================================================
# CONTACTS
# =============================================================================

class UserContact(BaseModel):
    """Another user the viewer shares at least one personal expense with."""

    id: UUID
    name: str
    email: str
    image_url: Optional[str] = None
    kind: Literal["user"] = "user"


class GroupContact(BaseModel):
    """A group the viewer belongs to."""

    id: UUID
    name: str
    description: str = ""
    member_count: int = Field(ge=0)
    kind: Literal["group"] = "group"


class ContactList(BaseModel):
    """Result of contact derivation. Both lists are sorted by name."""

    users: list[UserContact] = Field(default_factory=list)
    groups: list[GroupContact] = Field(default_factory=list)


# =============================================================================
# BALANCES
# =============================================================================

class ContactBalance(BaseModel):
    """
    Net balance against one counterparty.

    Positive: the counterparty owes the viewer.
    Negative: the viewer owes the counterparty.
    """

    counterparty_id: UUID
    kind: Literal["user", "group"]
    name: str
    balance: Decimal


class BalanceSummary(BaseModel):
    """Everything the viewer owes and is owed, per contact and in total."""

    viewer_id: UUID
    currency_code: str
    users: list[ContactBalance] = Field(default_factory=list)
    groups: list[ContactBalance] = Field(default_factory=list)
    you_are_owed: Decimal = Decimal("0")
    you_owe: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.you_are_owed - self.you_owe


class SuggestedTransfer(BaseModel):
    """A payment that would help settle a group: `from_user_id` pays `to_user_id`."""

    from_user_id: UUID
    to_user_id: UUID
    amount: Decimal = Field(gt=0)
