"""
Ledger Error Taxonomy

Three families, checked in this order on every write:

- LedgerValidationError: the input itself is wrong (empty name, bad amount,
  split sum mismatch). Raised before any lookup.
- InvalidReferenceError: the input points at something that does not exist
  or is not allowed (unknown user, non-member participant). Raised at the
  first offending id.
- AuthError: who is asking is unknown or not allowed. Lives here so the
  identity module and the writers share one base.

Every error carries `field` and/or `entity_id` so the caller can point at the
offending input, and a `details` dict that goes straight into the audit log.
"""

from typing import Any, Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for ledger operations."""

    code = "ledger_error"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.field = field
        self.entity_id = entity_id
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": str(self),
            "field": self.field,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            **self.details,
        }


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class LedgerValidationError(LedgerError):
    """Bad input shape or value. Never partially applied."""
    code = "validation_error"


class InvalidGroupName(LedgerValidationError):
    code = "invalid_group_name"

    def __init__(self, message: str = "Group name cannot be empty"):
        super().__init__(message, field="name")


class GroupTooLarge(LedgerValidationError):
    code = "group_too_large"

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"A group cannot have more than {limit} members, got {size}",
            field="members",
            details={"size": size, "limit": limit},
        )


class InvalidAmount(LedgerValidationError):
    code = "invalid_amount"

    def __init__(self, message: str, field: str = "amount"):
        super().__init__(message, field=field)


class TextTooLong(LedgerValidationError):
    code = "text_too_long"

    def __init__(self, field: str, limit: int, length: int):
        super().__init__(
            f"{field} cannot exceed {limit} characters, got {length}",
            field=field,
            details={"limit": limit, "length": length},
        )


class EmptySplits(LedgerValidationError):
    code = "empty_splits"

    def __init__(self):
        super().__init__("An expense needs at least one split", field="splits")


class DuplicateParticipant(LedgerValidationError):
    code = "duplicate_participant"

    def __init__(self, user_id: UUID):
        super().__init__(
            f"User {user_id} appears in more than one split",
            field="splits",
            entity_id=user_id,
        )


class InvalidSplitSum(LedgerValidationError):
    """Split shares do not add up to the expense amount."""
    code = "invalid_split_sum"

    def __init__(self, amount, split_total, tolerance):
        super().__init__(
            f"Splits add up to {split_total} but the expense amount is {amount}",
            field="splits",
            details={
                "amount": str(amount),
                "split_total": str(split_total),
                "tolerance": str(tolerance),
            },
        )


class InvalidSettlement(LedgerValidationError):
    code = "invalid_settlement"

    def __init__(self, message: str, field: str = "payee_id"):
        super().__init__(message, field=field)


class InvalidUserProfile(LedgerValidationError):
    code = "invalid_user_profile"

    def __init__(self, message: str, field: str):
        super().__init__(message, field=field)


# =============================================================================
# REFERENCE ERRORS
# =============================================================================

class InvalidReferenceError(LedgerError):
    """A referenced id does not exist or is not allowed here."""
    code = "reference_error"


class UnknownUser(InvalidReferenceError):
    code = "unknown_user"

    def __init__(self, user_id: UUID, field: str = "members"):
        super().__init__(
            f"User with ID {user_id} not found",
            field=field,
            entity_id=user_id,
        )


class UnknownParticipant(InvalidReferenceError):
    code = "unknown_participant"

    def __init__(self, user_id: UUID, field: str = "splits"):
        super().__init__(
            f"Participant {user_id} is not a known user",
            field=field,
            entity_id=user_id,
        )


class UnknownGroup(InvalidReferenceError):
    code = "unknown_group"

    def __init__(self, group_id: UUID):
        super().__init__(
            f"Group with ID {group_id} not found",
            field="group_id",
            entity_id=group_id,
        )


class NotAGroupMember(InvalidReferenceError):
    code = "not_a_group_member"

    def __init__(self, user_id: UUID, group_id: UUID, field: str = "splits"):
        super().__init__(
            f"User {user_id} is not a member of group {group_id}",
            field=field,
            entity_id=user_id,
            details={"group_id": str(group_id)},
        )


class ExpenseNotFound(InvalidReferenceError):
    code = "expense_not_found"

    def __init__(self, expense_id: UUID):
        super().__init__(
            f"Expense with ID {expense_id} not found",
            field="expense_id",
            entity_id=expense_id,
        )


class MemberHasExpenses(InvalidReferenceError):
    code = "member_has_expenses"

    def __init__(self, user_id: UUID, group_id: UUID):
        super().__init__(
            f"User {user_id} still appears in expenses of group {group_id}",
            field="user_id",
            entity_id=user_id,
            details={"group_id": str(group_id)},
        )


class GroupHasExpenses(InvalidReferenceError):
    code = "group_has_expenses"

    def __init__(self, group_id: UUID, expense_count: int):
        super().__init__(
            f"Group {group_id} still has {expense_count} expense(s)",
            field="group_id",
            entity_id=group_id,
            details={"expense_count": expense_count},
        )


# =============================================================================
# AUTH ERRORS
# =============================================================================

class AuthError(LedgerError):
    """The caller is unknown or not allowed to do this."""
    code = "auth_error"


class Unauthenticated(AuthError):
    code = "unauthenticated"

    def __init__(self, message: str = "No authenticated session"):
        super().__init__(message)


class UserNotProvisioned(AuthError):
    code = "user_not_provisioned"

    def __init__(self, token_identifier: str):
        super().__init__(
            "Session has no corresponding ledger user yet",
            details={"token_identifier": token_identifier},
        )


class PermissionDenied(AuthError):
    code = "permission_denied"

    def __init__(self, message: str, entity_id: Optional[UUID] = None):
        super().__init__(message, entity_id=entity_id)
