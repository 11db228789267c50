"""Audit logging package."""

from expense_assistant.audit.logger import AuditLogger, truncate_preview

__all__ = ["AuditLogger", "truncate_preview"]
