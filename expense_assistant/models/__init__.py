"""
Data Models Package

This package contains all Pydantic models used by the Expense Assistant.
All data flowing through the system must conform to these schemas.
"""

from expense_assistant.models.finance import (
    Assignment,
    Bill,
    BillInput,
    CategoryInput,
    ExpenseCategory,
    Income,
    IncomeCategory,
    IncomeCategoryInput,
    IncomeInput,
    Member,
)
from expense_assistant.models.conversation import (
    Conversation,
    Message,
    Role,
    ToolCallRecord,
)
from expense_assistant.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Assignment",
    "Bill",
    "BillInput",
    "CategoryInput",
    "ExpenseCategory",
    "Income",
    "IncomeCategory",
    "IncomeCategoryInput",
    "IncomeInput",
    "Member",
    # Conversation models
    "Conversation",
    "Message",
    "Role",
    "ToolCallRecord",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
