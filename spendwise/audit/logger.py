"""
Audit Logger

Every state change the session makes is logged, including the ones
the engine makes on its own (auto-pay). This provides:
1. Complete traceability
2. Debugging capability when persistence fails
3. A history the user can inspect

The audit logger:
- Is async to fit the controller's persistence calls
- Gracefully handles failures (never crashes the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from spendwise.models.audit import AuditEvent, AuditEventBuilder
from spendwise.services.storage import AuditStorageInterface


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


def get_logger(name: Optional[str] = None):
    """Module-level structlog logger."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
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
        self._logger = structlog.get_logger("spendwise.audit")

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

    async def log_session_loaded(
        self,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.session_loaded(counts, correlation_id))

    async def log_transaction_created(
        self,
        transaction_id: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> None:
        """Log a new transaction (user-entered or synthesized)."""
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
            is_user_action=is_user_action,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(transaction_id, correlation_id))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id, correlation_id))

    async def log_bill_auto_paid(
        self,
        bill_id: str,
        bill_name: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an automatic bill payment."""
        event = AuditEventBuilder.bill_auto_paid(
            bill_id=bill_id,
            bill_name=bill_name,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_paid(
        self,
        bill_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bill_paid(bill_id, transaction_id, correlation_id))

    async def log_notification(
        self,
        notification_id: str,
        notification_type: str,
        title: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.notification_emitted(
            notification_id=notification_id,
            notification_type=notification_type,
            title=title,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_persistence_failed(
        self,
        operation: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage failure the session recovered from."""
        event = AuditEventBuilder.persistence_failed(
            operation=operation,
            error_message=error_message,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_insight_requested(
        self,
        kind: str,
        succeeded: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.insight_requested(kind, succeeded, correlation_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a session load or user action.
    Pass it through all subsequent operations.
    """
    return uuid4()
