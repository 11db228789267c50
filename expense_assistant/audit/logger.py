"""
Audit Logger

Every significant assistant action is logged:
1. Messages blocked by the safety gate (with a truncated preview)
2. Tool executions and failures
3. Record mutations made on the user's behalf
4. Turn outcomes and provider errors

The audit logger:
- Is async to not block the turn
- Gracefully handles failures (a failed audit write never breaks a turn)
- Supports correlation IDs to trace the events of one conversation
"""

from typing import Optional
from uuid import UUID

import structlog

from expense_assistant.models.audit import AuditEvent, AuditEventBuilder
from expense_assistant.services.storage.interface import AuditStorageInterface


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


DEFAULT_PREVIEW_LENGTH = 100


def truncate_preview(message: str, length: int = DEFAULT_PREVIEW_LENGTH) -> str:
    """Shorten a user message for the audit trail."""
    if len(message) <= length:
        return message
    return message[:length] + "..."


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            preview_length: Characters of a blocked message kept in the log.
        """
        self._storage = storage
        self._preview_length = preview_length
        self._logger = structlog.get_logger(__name__)

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

    async def log_suspicious_activity(
        self,
        user_id: str,
        message: str,
        risk_level: str,
        reason: str,
    ) -> None:
        """Record a message the safety gate refused."""
        event = AuditEventBuilder.suspicious_activity(
            user_id=user_id,
            message_preview=truncate_preview(message, self._preview_length),
            risk_level=risk_level,
            reason=reason,
        )
        await self.log(event)

    async def log_tool_executed(
        self,
        tool: str,
        user_id: str,
        organization_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.tool_executed(
            tool=tool,
            user_id=user_id,
            organization_id=organization_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_tool_failed(
        self,
        tool: str,
        user_id: str,
        organization_id: str,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.tool_failed(
            tool=tool,
            user_id=user_id,
            organization_id=organization_id,
            error=error,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_mutation(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        organization_id: str,
        summary: str,
    ) -> None:
        """Log a create/update/delete performed through a tool."""
        event = AuditEventBuilder.record_mutation(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            organization_id=organization_id,
            summary=summary,
        )
        await self.log(event)

    async def log_confirmation_requested(
        self,
        tool: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        organization_id: str,
    ) -> None:
        event = AuditEventBuilder.confirmation_requested(
            tool=tool,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            organization_id=organization_id,
        )
        await self.log(event)

    async def log_turn_completed(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
        tool_call_count: int,
    ) -> None:
        event = AuditEventBuilder.turn_completed(
            conversation_id=conversation_id,
            user_id=user_id,
            organization_id=organization_id,
            tool_call_count=tool_call_count,
        )
        await self.log(event)

    async def log_provider_error(
        self,
        stage: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed LLM call."""
        event = AuditEventBuilder.provider_error(
            stage=stage,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

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
