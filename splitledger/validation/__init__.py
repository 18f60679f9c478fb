"""Write validation package."""

from splitledger.validation.errors import (
    AuthError,
    DuplicateParticipant,
    EmptySplits,
    ExpenseNotFound,
    GroupHasExpenses,
    GroupTooLarge,
    InvalidAmount,
    InvalidGroupName,
    InvalidReferenceError,
    InvalidSettlement,
    InvalidSplitSum,
    InvalidUserProfile,
    LedgerError,
    LedgerValidationError,
    MemberHasExpenses,
    NotAGroupMember,
    PermissionDenied,
    TextTooLong,
    Unauthenticated,
    UnknownGroup,
    UnknownParticipant,
    UnknownUser,
    UserNotProvisioned,
)
from splitledger.validation.validator import ExpenseValidator, GroupValidator

__all__ = [
    # Validators
    "ExpenseValidator",
    "GroupValidator",
    # Base errors
    "AuthError",
    "InvalidReferenceError",
    "LedgerError",
    "LedgerValidationError",
    # Validation errors
    "DuplicateParticipant",
    "EmptySplits",
    "GroupTooLarge",
    "InvalidAmount",
    "InvalidGroupName",
    "InvalidSettlement",
    "InvalidSplitSum",
    "InvalidUserProfile",
    "TextTooLong",
    # Reference errors
    "ExpenseNotFound",
    "GroupHasExpenses",
    "MemberHasExpenses",
    "NotAGroupMember",
    "UnknownGroup",
    "UnknownParticipant",
    "UnknownUser",
    # Auth errors
    "PermissionDenied",
    "Unauthenticated",
    "UserNotProvisioned",
]
