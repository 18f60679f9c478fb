"""
Expense Recorder

The write path of the Expense Store: records expenses and settlements,
applies corrective edits and deletions.

DESIGN DECISION: Every write runs the full two-stage validation (see
splitledger.validation) inside one storage transaction and then stages
exactly one write. A rejected write leaves the ledger untouched, and a
corrective edit is held to the same rules as the original insert.

Permission rules:
- Recording: a personal expense must involve the principal (as payer or
  participant); a group expense may be recorded by any group member.
- Settlements: only the payer or the payee may record them.
- Editing or deleting: the payer, the original recorder, or a group admin.
  The edited expense must also pass the recording rule above.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from uuid import UUID

import structlog

from splitledger.models.ledger import (
    Expense,
    ExpenseCategory,
    ExpenseKind,
    Split,
    User,
)
from splitledger.services.storage import LedgerSnapshot, LedgerStorageInterface
from splitledger.validation import (
    ExpenseNotFound,
    ExpenseValidator,
    InvalidAmount,
    InvalidSettlement,
    PermissionDenied,
)


logger = structlog.get_logger(__name__)

AmountLike = Union[Decimal, int, str, float]


def _as_decimal(amount: AmountLike, field: str = "amount") -> Decimal:
    """Coerce caller input to Decimal without float artefacts."""
    if isinstance(amount, Decimal):
        return amount
    try:
        return Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Not a valid amount: {amount!r}", field=field)


class ExpenseRecorder:
    """Validated writes to the expenses collection."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[ExpenseValidator] = None,
    ):
        self._storage = storage
        self._validator = validator or ExpenseValidator()

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def _check_can_record(
        self,
        snapshot: LedgerSnapshot,
        principal: User,
        paid_by_user_id: UUID,
        splits: list[Split],
        group_id: Optional[UUID],
    ) -> None:
        if group_id is not None:
            group = snapshot.get_group(group_id)
            if group is not None and group.has_member(principal.id):
                return
            raise PermissionDenied(
                "Only group members can record group expenses", entity_id=group_id
            )

        involved = principal.id == paid_by_user_id or any(
            split.user_id == principal.id for split in splits
        )
        if not involved:
            raise PermissionDenied(
                "You can only record personal expenses you take part in",
                entity_id=principal.id,
            )

    def _check_can_modify(
        self,
        snapshot: LedgerSnapshot,
        principal: User,
        expense: Expense,
    ) -> None:
        if principal.id in (expense.paid_by_user_id, expense.created_by):
            return
        if expense.group_id is not None:
            group = snapshot.get_group(expense.group_id)
            if group is not None and group.is_admin(principal.id):
                return
        raise PermissionDenied(
            "Only the payer, the recorder or a group admin can change this expense",
            entity_id=expense.id,
        )

    # =========================================================================
    # WRITES
    # =========================================================================

    async def record_expense(
        self,
        principal: User,
        paid_by_user_id: UUID,
        amount: AmountLike,
        splits: list[Split],
        group_id: Optional[UUID] = None,
        description: str = "",
        category: ExpenseCategory = ExpenseCategory.OTHER,
        expense_date: Optional[date] = None,
        kind: ExpenseKind = ExpenseKind.EXPENSE,
    ) -> UUID:
        """
        Record a new expense.

        Raises (first failing check wins):
            InvalidAmount, EmptySplits, DuplicateParticipant, InvalidSplitSum,
            InvalidSettlement, TextTooLong,
            UnknownParticipant, UnknownGroup, NotAGroupMember, PermissionDenied

        Returns:
            The new expense's id
        """
        amount = _as_decimal(amount)
        splits = list(splits or [])

        # Stage 1 needs no storage
        self._validator.validate_input(amount, splits)
        if kind == ExpenseKind.SETTLEMENT:
            self._validator.validate_settlement(amount, paid_by_user_id, splits)
        description = self._validator.clean_description(description)

        async with self._storage.transaction() as txn:
            self._validator.validate_references(txn, paid_by_user_id, splits, group_id)
            self._check_can_record(txn, principal, paid_by_user_id, splits, group_id)

            expense = Expense(
                kind=kind,
                description=description,
                category=category,
                amount=amount,
                expense_date=expense_date or date.today(),
                paid_by_user_id=paid_by_user_id,
                group_id=group_id,
                splits=splits,
                created_by=principal.id,
            )
            txn.insert_expense(expense)

        logger.info(
            "expense_recorded",
            expense_id=str(expense.id),
            kind=expense.kind.value,
            split_count=len(expense.splits),
            personal=expense.is_personal,
        )
        return expense.id

    async def record_settlement(
        self,
        principal: User,
        payer_id: UUID,
        payee_id: UUID,
        amount: AmountLike,
        group_id: Optional[UUID] = None,
        note: str = "",
    ) -> UUID:
        """
        Record money handed from payer to payee.

        Stored as an expense paid by the payer with the payee owing the full
        amount, so it offsets what the payer owed. A settlement larger than
        the outstanding balance simply flips its sign.
        """
        if payer_id == payee_id:
            raise InvalidSettlement("Payer and payee must be different users")
        if principal.id not in (payer_id, payee_id):
            raise PermissionDenied(
                "Only the payer or the payee can record a settlement",
                entity_id=principal.id,
            )

        amount = _as_decimal(amount)
        self._validator.validate_amount(amount)

        return await self.record_expense(
            principal,
            paid_by_user_id=payer_id,
            amount=amount,
            splits=[Split(user_id=payee_id, owed_share=amount)],
            group_id=group_id,
            description=note or "Settlement",
            kind=ExpenseKind.SETTLEMENT,
        )

    async def update_expense(
        self,
        principal: User,
        expense_id: UUID,
        amount: Optional[AmountLike] = None,
        splits: Optional[list[Split]] = None,
        paid_by_user_id: Optional[UUID] = None,
        description: Optional[str] = None,
        category: Optional[ExpenseCategory] = None,
        expense_date: Optional[date] = None,
    ) -> Expense:
        """
        Apply a corrective edit.

        Unspecified fields keep their value. The edited expense is validated
        exactly like a new one, including who may record it; kind and group
        never change.
        """
        async with self._storage.transaction() as txn:
            current = txn.get_expense(expense_id)
            if current is None:
                raise ExpenseNotFound(expense_id)
            self._check_can_modify(txn, principal, current)

            new_amount = _as_decimal(amount) if amount is not None else current.amount
            new_splits = list(splits) if splits is not None else list(current.splits)
            new_payer = paid_by_user_id or current.paid_by_user_id
            new_description = (
                self._validator.clean_description(description)
                if description is not None else current.description
            )

            self._validator.validate_input(new_amount, new_splits)
            if current.kind == ExpenseKind.SETTLEMENT:
                self._validator.validate_settlement(new_amount, new_payer, new_splits)
            self._validator.validate_references(
                txn, new_payer, new_splits, current.group_id
            )
            self._check_can_record(
                txn, principal, new_payer, new_splits, current.group_id
            )

            updated = Expense.model_validate({
                **current.model_dump(),
                "amount": new_amount,
                "splits": new_splits,
                "paid_by_user_id": new_payer,
                "description": new_description,
                "category": category or current.category,
                "expense_date": expense_date or current.expense_date,
                "updated_at": datetime.utcnow(),
            })
            txn.update_expense(updated)

        return updated

    async def delete_expense(self, principal: User, expense_id: UUID) -> None:
        """Delete an expense or settlement."""
        async with self._storage.transaction() as txn:
            expense = txn.get_expense(expense_id)
            if expense is None:
                raise ExpenseNotFound(expense_id)
            self._check_can_modify(txn, principal, expense)
            txn.delete_expense(expense_id)
