"""
Two-Stage Write Validation

DESIGN DECISION: Every write is validated in two distinct stages:

STAGE 1 - INPUT VALIDATION:
- Amount is finite, positive and within limits
- Splits are present and unique per user
- Every share fits the currency's minor unit
- Split shares add up to the amount
- Settlements have exactly one payee owing the full amount
- Names and descriptions are within their length limits
- Group name is not blank
This needs nothing but the input.

STAGE 2 - REFERENCE VALIDATION:
- Every referenced user exists
- Group exists and every participant is a member
This needs a ledger snapshot (the transaction's).

WHY TWO STAGES:
1. Bad input is rejected before we even read storage
2. Errors tell the caller exactly which kind of problem it is
3. Stage 2 runs against the same snapshot the write is staged on

IMPORTANT: Validation NEVER silently fixes input. The first problem found is
raised; nothing is written.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from splitledger.config import LedgerSettings, get_settings
from splitledger.models.ledger import Split
from splitledger.models.money import from_minor_units, split_gap, to_minor_units
from splitledger.services.storage import LedgerSnapshot
from splitledger.validation.errors import (
    DuplicateParticipant,
    EmptySplits,
    GroupTooLarge,
    InvalidAmount,
    InvalidGroupName,
    InvalidSettlement,
    InvalidSplitSum,
    NotAGroupMember,
    TextTooLong,
    UnknownGroup,
    UnknownParticipant,
    UnknownUser,
)


# Mirror the max_length constraints on the models
MAX_NAME_LENGTH = 200
MAX_EMAIL_LENGTH = 320
MAX_GROUP_DESCRIPTION = 1000
MAX_EXPENSE_DESCRIPTION = 500


class ExpenseValidator:
    """
    Validates expense and settlement writes.

    Stage 1: validate_input (no storage)
    Stage 2: validate_references (needs a snapshot)
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    @property
    def digits(self) -> int:
        return self._settings.minor_unit_digits

    def _check_precision(self, value: Decimal, field: str) -> None:
        if from_minor_units(to_minor_units(value, self.digits), self.digits) != value:
            raise InvalidAmount(
                f"Amount {value} has more than {self.digits} decimal places",
                field=field,
            )

    def validate_amount(self, amount: Decimal, field: str = "amount") -> None:
        if amount is None or not amount.is_finite():
            raise InvalidAmount(f"Amount must be a finite number, got {amount}", field=field)
        if amount <= 0:
            raise InvalidAmount(f"Amount must be greater than zero, got {amount}", field=field)

        max_amount = Decimal(str(self._settings.max_expense_amount))
        if amount > max_amount:
            raise InvalidAmount(
                f"Amount {amount} exceeds the maximum of {max_amount}", field=field
            )

        # Sub-minor-unit amounts cannot be represented in the ledger
        units = to_minor_units(amount, self.digits)
        if units <= 0:
            raise InvalidAmount(
                f"Amount {amount} is smaller than one minor unit", field=field
            )
        self._check_precision(amount, field)

    def clean_description(self, description: Optional[str]) -> str:
        cleaned = (description or "").strip()
        if len(cleaned) > MAX_EXPENSE_DESCRIPTION:
            raise TextTooLong("description", MAX_EXPENSE_DESCRIPTION, len(cleaned))
        return cleaned

    def validate_input(self, amount: Decimal, splits: list[Split]) -> None:
        """
        Stage 1: input validation.

        Order: amount, presence of splits, duplicate users, share precision,
        split sum.

        Raises:
            InvalidAmount, EmptySplits, DuplicateParticipant, InvalidSplitSum
        """
        self.validate_amount(amount)

        if not splits:
            raise EmptySplits()

        seen: set[UUID] = set()
        for split in splits:
            if split.user_id in seen:
                raise DuplicateParticipant(split.user_id)
            seen.add(split.user_id)

        for index, split in enumerate(splits):
            self._check_precision(split.owed_share, f"splits[{index}].owed_share")

        gap = split_gap(amount, [split.owed_share for split in splits], self.digits)
        if abs(gap) > self._settings.split_tolerance_minor_units:
            split_total = sum((split.owed_share for split in splits), Decimal("0"))
            raise InvalidSplitSum(
                amount=amount,
                split_total=split_total,
                tolerance=from_minor_units(
                    self._settings.split_tolerance_minor_units, self.digits
                ),
            )

    def validate_settlement(
        self,
        amount: Decimal,
        paid_by_user_id: UUID,
        splits: list[Split],
    ) -> None:
        """A settlement moves the whole amount to exactly one other user."""
        if len(splits) != 1:
            raise InvalidSettlement(
                "A settlement must have exactly one payee", field="splits"
            )
        split = splits[0]
        if split.user_id == paid_by_user_id:
            raise InvalidSettlement("Payer and payee must be different users")
        if split.owed_share != amount:
            raise InvalidSettlement(
                "A settlement's payee must owe the full amount", field="splits"
            )

    def validate_references(
        self,
        snapshot: LedgerSnapshot,
        paid_by_user_id: UUID,
        splits: list[Split],
        group_id: Optional[UUID] = None,
    ) -> None:
        """
        Stage 2: reference validation against a snapshot.

        The payer is checked first, then split users in order.

        Raises:
            UnknownParticipant, UnknownGroup, NotAGroupMember
        """
        if snapshot.get_user(paid_by_user_id) is None:
            raise UnknownParticipant(paid_by_user_id, field="paid_by_user_id")

        for split in splits:
            if snapshot.get_user(split.user_id) is None:
                raise UnknownParticipant(split.user_id)

        if group_id is None:
            return

        group = snapshot.get_group(group_id)
        if group is None:
            raise UnknownGroup(group_id)

        if not group.has_member(paid_by_user_id):
            raise NotAGroupMember(paid_by_user_id, group_id, field="paid_by_user_id")

        for split in splits:
            if not group.has_member(split.user_id):
                raise NotAGroupMember(split.user_id, group_id)


class GroupValidator:
    """Validates group creation and roster edits."""

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def clean_name(self, name: Optional[str]) -> str:
        """Trim the name; blank names are rejected."""
        cleaned = (name or "").strip()
        if not cleaned:
            raise InvalidGroupName()
        if len(cleaned) > MAX_NAME_LENGTH:
            raise InvalidGroupName(f"Group name cannot exceed {MAX_NAME_LENGTH} characters")
        return cleaned

    def clean_description(self, description: Optional[str]) -> str:
        cleaned = (description or "").strip()
        if len(cleaned) > MAX_GROUP_DESCRIPTION:
            raise TextTooLong("description", MAX_GROUP_DESCRIPTION, len(cleaned))
        return cleaned

    def validate_users_exist(
        self,
        snapshot: LedgerSnapshot,
        user_ids: Iterable[UUID],
    ) -> None:
        """Fail fast on the first id with no user behind it."""
        for user_id in user_ids:
            if snapshot.get_user(user_id) is None:
                raise UnknownUser(user_id)

    def validate_roster_size(self, size: int) -> None:
        if size > self._settings.max_group_members:
            raise GroupTooLarge(size, self._settings.max_group_members)
