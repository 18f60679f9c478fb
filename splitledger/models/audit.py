"""
Audit Models for Split Ledger

Every ledger write, and every rejected write, is logged for audit purposes.
This provides:
1. Traceability of who changed the ledger and when
2. Debugging information when a write is rejected
3. A record that survives even if an expense is later deleted

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
They are NOT a source for balances; balances come from expenses only.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Identity
    USER_PROVISIONED = "user_provisioned"
    USER_PROFILE_UPDATED = "user_profile_updated"
    AUTH_FAILED = "auth_failed"

    # Groups
    GROUP_CREATED = "group_created"
    GROUP_MEMBERS_ADDED = "group_members_added"
    GROUP_MEMBER_REMOVED = "group_member_removed"
    GROUP_DELETED = "group_deleted"

    # Expenses
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    SETTLEMENT_RECORDED = "settlement_recorded"

    # Rejections
    VALIDATION_FAILED = "validation_failed"

    # Reads
    CONTACTS_LISTED = "contacts_listed"
    BALANCES_COMPUTED = "balances_computed"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'group', 'expense', 'user')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it
    actor_id: Optional[UUID] = Field(
        default=None,
        description="Resolved principal that triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one request)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         actor_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.actor_id) if self.actor_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.group_created(group_id, actor_id, ...)
        event = AuditEventBuilder.validation_failed(operation, error, ...)
    """

    @staticmethod
    def user_provisioned(
        user_id: UUID,
        name: str,
        created: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.USER_PROVISIONED
                if created
                else AuditEventType.USER_PROFILE_UPDATED
            ),
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"User provisioned: {name}" if created else f"User profile refreshed: {name}"
            ),
            details={"name": name},
        )

    @staticmethod
    def auth_failed(
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Request rejected: {error_code}",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def group_created(
        group_id: UUID,
        actor_id: UUID,
        name: str,
        member_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Group created: {name} ({member_count} members)",
            details={
                "name": name,
                "member_count": member_count,
            },
        )

    @staticmethod
    def group_members_added(
        group_id: UUID,
        actor_id: UUID,
        added: list[UUID],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_MEMBERS_ADDED,
            entity_type="group",
            entity_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"{len(added)} member(s) added to group",
            details={"added": [str(user_id) for user_id in added]},
        )

    @staticmethod
    def group_member_removed(
        group_id: UUID,
        actor_id: UUID,
        removed: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_MEMBER_REMOVED,
            entity_type="group",
            entity_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Member removed from group",
            details={"removed": str(removed)},
        )

    @staticmethod
    def group_deleted(
        group_id: UUID,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="group",
            entity_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Group deleted",
        )

    @staticmethod
    def expense_recorded(
        expense_id: UUID,
        actor_id: UUID,
        amount: str,
        split_count: int,
        group_id: Optional[UUID],
        settlement: bool = False,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        label = "Settlement" if settlement else "Expense"
        return AuditEvent(
            event_type=(
                AuditEventType.SETTLEMENT_RECORDED
                if settlement
                else AuditEventType.EXPENSE_RECORDED
            ),
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"{label} recorded: {amount} across {split_count} split(s)",
            details={
                "amount": amount,
                "split_count": split_count,
                "group_id": str(group_id) if group_id else None,
            },
        )

    @staticmethod
    def expense_updated(
        expense_id: UUID,
        actor_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense corrected: new amount {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Expense deleted",
        )

    @staticmethod
    def validation_failed(
        operation: str,
        error_code: str,
        error_message: str,
        actor_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"{operation} rejected: {error_code}",
            details={"operation": operation, **(details or {})},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def read_completed(
        event_type: AuditEventType,
        actor_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.DEBUG,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Storage failure during {operation}",
            details={"operation": operation},
            error_message=error_message,
        )
