"""
Data Models Package

This package contains all Pydantic models used in the Split Ledger system.
All data flowing through the system must conform to these schemas.
"""

from splitledger.models.ledger import (
    Expense,
    ExpenseCategory,
    ExpenseKind,
    Group,
    GroupMember,
    MemberRole,
    Split,
    User,
)
from splitledger.models.contacts import (
    BalanceSummary,
    ContactBalance,
    ContactList,
    GroupContact,
    SuggestedTransfer,
    UserContact,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitledger.models.money import (
    from_minor_units,
    split_gap,
    to_minor_units,
)

__all__ = [
    # Ledger models
    "Expense",
    "ExpenseCategory",
    "ExpenseKind",
    "Group",
    "GroupMember",
    "MemberRole",
    "Split",
    "User",
    # Derived models
    "BalanceSummary",
    "ContactBalance",
    "ContactList",
    "GroupContact",
    "SuggestedTransfer",
    "UserContact",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Money helpers
    "from_minor_units",
    "split_gap",
    "to_minor_units",
]
