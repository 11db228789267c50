"""
Abstract Storage Interface

We define abstract interfaces for storage operations. This allows us to:
1. Swap Google Sheets for a relational database later
2. Use in-memory storage for tests and local development
3. Keep the assistant decoupled from the persistence layer

Every finance read and write takes the acting organization id, so a
record belonging to another organization is simply invisible: lookups
return None and deletes return False.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from expense_assistant.models.audit import AuditEvent
from expense_assistant.models.conversation import Conversation, Message
from expense_assistant.models.finance import (
    Bill,
    ExpenseCategory,
    Income,
    IncomeCategory,
    Member,
)


class FinanceStorageInterface(ABC):
    """
    Organization-scoped storage for members, categories, bills and incomes.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_members(self, organization_id: str) -> list[Member]:
        """List the members of an organization, ordered by name."""
        pass

    # ------------------------------------------------------------------
    # Expense categories
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self, organization_id: str) -> list[ExpenseCategory]:
        """List expense categories, ordered by name."""
        pass

    @abstractmethod
    async def get_category(
        self, organization_id: str, category_id: UUID
    ) -> Optional[ExpenseCategory]:
        pass

    @abstractmethod
    async def save_category(self, category: ExpenseCategory) -> ExpenseCategory:
        """
        Save a new expense category.

        Raises:
            DuplicateError: If the organization already has a category
                with the same name (case-insensitive)
        """
        pass

    @abstractmethod
    async def update_category(self, category: ExpenseCategory) -> ExpenseCategory:
        """
        Update an existing expense category.

        Raises:
            NotFoundError: If the category doesn't exist in its organization
            DuplicateError: If the new name collides with another category
        """
        pass

    @abstractmethod
    async def delete_category(self, organization_id: str, category_id: UUID) -> bool:
        """
        Delete an expense category.

        Returns:
            True if deleted, False if it did not exist

        Raises:
            IntegrityError: If bills still reference the category
        """
        pass

    @abstractmethod
    async def count_bills_in_category(
        self, organization_id: str, category_id: UUID
    ) -> int:
        pass

    # ------------------------------------------------------------------
    # Income categories
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_income_categories(self, organization_id: str) -> list[IncomeCategory]:
        pass

    @abstractmethod
    async def get_income_category(
        self, organization_id: str, category_id: UUID
    ) -> Optional[IncomeCategory]:
        pass

    @abstractmethod
    async def save_income_category(self, category: IncomeCategory) -> IncomeCategory:
        """
        Save a new income category.

        Raises:
            DuplicateError: If the name is already used in the organization
        """
        pass

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_bills(self, bills: list[Bill]) -> list[Bill]:
        """
        Save one or more bills.

        Installment purchases are saved together so a partial write never
        leaves an incomplete installment group.
        """
        pass

    @abstractmethod
    async def get_bill(self, organization_id: str, bill_id: UUID) -> Optional[Bill]:
        pass

    @abstractmethod
    async def update_bill(self, bill: Bill) -> Bill:
        """
        Update an existing bill.

        Raises:
            NotFoundError: If the bill doesn't exist in its organization
        """
        pass

    @abstractmethod
    async def delete_bill(self, organization_id: str, bill_id: UUID) -> bool:
        """Delete a bill. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_bills(
        self,
        organization_id: str,
        category_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        text: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Bill]:
        """
        List bills with optional filters.

        Args:
            organization_id: Owning organization
            category_id: Filter by expense category
            date_from: Bills paid on or after this date
            date_to: Bills paid on or before this date
            min_amount: Minimum amount (inclusive)
            max_amount: Maximum amount (inclusive)
            text: Case-insensitive match against label and notes
            limit: Maximum number of results (None for all)

        Returns:
            Matching bills, newest payment date first
        """
        pass

    # ------------------------------------------------------------------
    # Incomes
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_income(self, income: Income) -> Income:
        pass

    @abstractmethod
    async def get_income(self, organization_id: str, income_id: UUID) -> Optional[Income]:
        pass

    @abstractmethod
    async def update_income(self, income: Income) -> Income:
        """
        Update an existing income.

        Raises:
            NotFoundError: If the income doesn't exist in its organization
        """
        pass

    @abstractmethod
    async def delete_income(self, organization_id: str, income_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_incomes(
        self,
        organization_id: str,
        category_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        text: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Income]:
        """List incomes with the same filters as list_bills, newest first."""
        pass


class ConversationStorageInterface(ABC):
    """
    Storage for assistant conversations and their messages.

    Conversations are scoped to a (user, organization) pair. Messages are
    append-only.
    """

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        pass

    @abstractmethod
    async def get_conversation(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
    ) -> Optional[Conversation]:
        """
        Retrieve a conversation owned by the given user and organization.

        Returns:
            The conversation, or None if it doesn't exist or is owned
            by someone else
        """
        pass

    @abstractmethod
    async def list_conversations(
        self,
        user_id: str,
        organization_id: str,
    ) -> list[Conversation]:
        """List conversations, most recently updated first."""
        pass

    @abstractmethod
    async def touch_conversation(self, conversation_id: UUID) -> None:
        """Bump the conversation's updated_at timestamp."""
        pass

    @abstractmethod
    async def delete_conversation(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
    ) -> bool:
        """Delete a conversation and all its messages."""
        pass

    @abstractmethod
    async def append_message(self, message: Message) -> Message:
        pass

    @abstractmethod
    async def list_messages(
        self,
        conversation_id: UUID,
        limit: Optional[int] = None,
    ) -> list[Message]:
        """
        List messages in creation order (oldest first).

        Args:
            conversation_id: Parent conversation
            limit: Keep only the most recent `limit` messages

        Returns:
            Messages, oldest first
        """
        pass

    @abstractmethod
    async def count_messages(self, conversation_id: UUID) -> int:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class IntegrityError(StorageError):
    """Operation would leave dangling references."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
