"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
In-memory storage is the default; Google Sheets is available as a
swappable backend.
"""

from expense_assistant.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConversationStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    IntegrityError,
    NotFoundError,
    StorageError,
)
from expense_assistant.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryConversationStorage,
    InMemoryFinanceStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ConversationStorageInterface",
    "FinanceStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "IntegrityError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryConversationStorage",
    "InMemoryFinanceStorage",
]
