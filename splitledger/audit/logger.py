"""
Audit Logger

DESIGN DECISION: Every ledger write, and every rejected write, is logged.
This provides:
1. Traceability of who changed which balance
2. Debugging capability when a write is rejected
3. A history that outlives deleted expenses

The audit logger:
- Runs after the ledger write has committed, never inside it
- Gracefully handles failures (a broken audit sink never fails a write)
- Supports correlation IDs to trace the events of one request
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from splitledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (in-memory or Google Sheets) for persistence
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_user_provisioned(
        self,
        user_id: UUID,
        name: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log creation or refresh of a ledger user."""
        await self.log(AuditEventBuilder.user_provisioned(
            user_id=user_id,
            name=name,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_auth_failed(
        self,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a request rejected before or during identity resolution."""
        await self.log(AuditEventBuilder.auth_failed(
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_group_created(
        self,
        group_id: UUID,
        actor_id: UUID,
        name: str,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log group creation."""
        await self.log(AuditEventBuilder.group_created(
            group_id=group_id,
            actor_id=actor_id,
            name=name,
            member_count=member_count,
            correlation_id=correlation_id,
        ))

    async def log_members_added(
        self,
        group_id: UUID,
        actor_id: UUID,
        added: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_members_added(
            group_id=group_id,
            actor_id=actor_id,
            added=added,
            correlation_id=correlation_id,
        ))

    async def log_member_removed(
        self,
        group_id: UUID,
        actor_id: UUID,
        removed: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_member_removed(
            group_id=group_id,
            actor_id=actor_id,
            removed=removed,
            correlation_id=correlation_id,
        ))

    async def log_group_deleted(
        self,
        group_id: UUID,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_deleted(
            group_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_expense_recorded(
        self,
        expense_id: UUID,
        actor_id: UUID,
        amount: str,
        split_count: int,
        group_id: Optional[UUID],
        settlement: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense or settlement write."""
        await self.log(AuditEventBuilder.expense_recorded(
            expense_id=expense_id,
            actor_id=actor_id,
            amount=amount,
            split_count=split_count,
            group_id=group_id,
            settlement=settlement,
            correlation_id=correlation_id,
        ))

    async def log_expense_updated(
        self,
        expense_id: UUID,
        actor_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            actor_id=actor_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        operation: str,
        error_code: str,
        error_message: str,
        actor_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected write."""
        await self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            error_code=error_code,
            error_message=error_message,
            actor_id=actor_id,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_read(
        self,
        event_type: AuditEventType,
        actor_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a read operation at debug severity."""
        await self.log(AuditEventBuilder.read_completed(
            event_type=event_type,
            actor_id=actor_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a request (e.g., recording an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
