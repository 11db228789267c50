"""
Audit Models for the Expense Assistant

Every significant assistant action is recorded for audit purposes:
blocked inputs, tool executions, record mutations, pending
confirmations and turn outcomes.

Audit logs are append-only. They are never deleted or modified.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Safety gate
    SUSPICIOUS_ACTIVITY = "suspicious_activity"

    # Tool execution
    TOOL_EXECUTED = "tool_executed"
    TOOL_FAILED = "tool_failed"
    CONFIRMATION_REQUESTED = "confirmation_requested"

    # Record mutations
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"

    # Turns
    TURN_COMPLETED = "turn_completed"
    TURN_FAILED = "turn_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    PROVIDER_ERROR = "provider_error"


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

    This is the core unit of the audit trail.
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
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and where
    user_id: Optional[str] = None
    organization_id: Optional[str] = None

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bill', 'income', 'category', 'conversation')"
    )
    entity_id: Optional[str] = None

    # Correlation - all events of one turn share the conversation id
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Columns: [event_id, timestamp, event_type, severity, user_id,
        organization_id, entity_type, entity_id, correlation_id,
        description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.organization_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.suspicious_activity(user_id, preview, "high", reason)
        event = AuditEventBuilder.tool_executed("create_bill", user_id, org_id, result)
    """

    @staticmethod
    def suspicious_activity(
        user_id: str,
        message_preview: str,
        risk_level: str,
        reason: str,
    ) -> AuditEvent:
        severity = AuditSeverity.WARNING if risk_level == "high" else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.SUSPICIOUS_ACTIVITY,
            severity=severity,
            user_id=user_id,
            description=f"Message blocked by safety gate (risk: {risk_level})",
            details={
                "risk_level": risk_level,
                "reason": reason,
                "message_preview": message_preview,
            },
        )

    @staticmethod
    def tool_executed(
        tool: str,
        user_id: str,
        organization_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_EXECUTED,
            user_id=user_id,
            organization_id=organization_id,
            correlation_id=correlation_id,
            description=f"Tool executed: {tool}",
            details={"tool": tool},
        )

    @staticmethod
    def tool_failed(
        tool: str,
        user_id: str,
        organization_id: str,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            organization_id=organization_id,
            correlation_id=correlation_id,
            description=f"Tool failed: {tool}",
            details={"tool": tool},
            error_message=error,
        )

    @staticmethod
    def confirmation_requested(
        tool: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        organization_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_REQUESTED,
            user_id=user_id,
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Confirmation requested before {tool}",
            details={"tool": tool},
        )

    @staticmethod
    def record_mutation(
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        organization_id: str,
        summary: str,
    ) -> AuditEvent:
        event_type = {
            "created": AuditEventType.RECORD_CREATED,
            "updated": AuditEventType.RECORD_UPDATED,
            "deleted": AuditEventType.RECORD_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} {action}: {summary}"[:500],
            details={"via": "assistant"},
        )

    @staticmethod
    def turn_completed(
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
        tool_call_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TURN_COMPLETED,
            user_id=user_id,
            organization_id=organization_id,
            entity_type="conversation",
            entity_id=str(conversation_id),
            correlation_id=conversation_id,
            description=f"Turn completed with {tool_call_count} tool call(s)",
            details={"tool_call_count": tool_call_count},
        )

    @staticmethod
    def provider_error(
        stage: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROVIDER_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"LLM provider error during {stage}",
            error_message=error_message,
            details={"stage": stage},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
