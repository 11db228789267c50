"""
In-Memory Storage Implementation

Process-local storage used by the test suite and for local development
(`storage_backend=memory`). Records are copied on the way in and out so
callers can never mutate stored state by accident.
"""

from datetime import date, datetime
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
from expense_assistant.services.storage.interface import (
    AuditStorageInterface,
    ConversationStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    IntegrityError,
    NotFoundError,
)


def _matches(
    record,
    record_date: date,
    category_id: Optional[UUID],
    date_from: Optional[date],
    date_to: Optional[date],
    min_amount: Optional[Decimal],
    max_amount: Optional[Decimal],
    text: Optional[str],
) -> bool:
    if category_id and record.category_id != category_id:
        return False
    if date_from and record_date < date_from:
        return False
    if date_to and record_date > date_to:
        return False
    if min_amount is not None and record.amount < min_amount:
        return False
    if max_amount is not None and record.amount > max_amount:
        return False
    if text:
        needle = text.lower()
        haystack = f"{record.label} {record.notes or ''}".lower()
        if needle not in haystack:
            return False
    return True


class InMemoryFinanceStorage(FinanceStorageInterface):
    """Finance records kept in dictionaries keyed by id."""

    def __init__(self):
        self._members: list[Member] = []
        self._categories: dict[UUID, ExpenseCategory] = {}
        self._income_categories: dict[UUID, IncomeCategory] = {}
        self._bills: dict[UUID, Bill] = {}
        self._incomes: dict[UUID, Income] = {}

    def add_member(self, member: Member) -> Member:
        """Register a member (membership is managed outside the assistant)."""
        self._members.append(member.model_copy())
        return member

    def add_category(self, category: ExpenseCategory) -> ExpenseCategory:
        """Seed an expense category outside an event loop."""
        self._check_category_name(self._categories, category.organization_id, category.name)
        self._categories[category.id] = category.model_copy()
        return category

    def add_income_category(self, category: IncomeCategory) -> IncomeCategory:
        """Seed an income category outside an event loop."""
        self._check_category_name(
            self._income_categories, category.organization_id, category.name
        )
        self._income_categories[category.id] = category.model_copy()
        return category

    # Members

    async def list_members(self, organization_id: str) -> list[Member]:
        members = [m.model_copy() for m in self._members if m.organization_id == organization_id]
        return sorted(members, key=lambda m: m.name.lower())

    # Expense categories

    async def list_categories(self, organization_id: str) -> list[ExpenseCategory]:
        categories = [
            c.model_copy() for c in self._categories.values()
            if c.organization_id == organization_id
        ]
        return sorted(categories, key=lambda c: c.name.lower())

    async def get_category(
        self, organization_id: str, category_id: UUID
    ) -> Optional[ExpenseCategory]:
        category = self._categories.get(category_id)
        if category is None or category.organization_id != organization_id:
            return None
        return category.model_copy()

    def _check_category_name(
        self, pool: dict, organization_id: str, name: str, exclude: Optional[UUID] = None
    ) -> None:
        for existing in pool.values():
            if (
                existing.organization_id == organization_id
                and existing.id != exclude
                and existing.name.lower() == name.lower()
            ):
                raise DuplicateError(f'A category named "{existing.name}" already exists')

    async def save_category(self, category: ExpenseCategory) -> ExpenseCategory:
        return self.add_category(category)

    async def update_category(self, category: ExpenseCategory) -> ExpenseCategory:
        current = self._categories.get(category.id)
        if current is None or current.organization_id != category.organization_id:
            raise NotFoundError(f"Category not found: {category.id}")
        self._check_category_name(
            self._categories, category.organization_id, category.name, exclude=category.id
        )
        self._categories[category.id] = category.model_copy()
        return category

    async def delete_category(self, organization_id: str, category_id: UUID) -> bool:
        if await self.get_category(organization_id, category_id) is None:
            return False
        in_use = await self.count_bills_in_category(organization_id, category_id)
        if in_use:
            raise IntegrityError(f"Category is used by {in_use} bill(s)")
        del self._categories[category_id]
        return True

    async def count_bills_in_category(
        self, organization_id: str, category_id: UUID
    ) -> int:
        return sum(
            1 for b in self._bills.values()
            if b.organization_id == organization_id and b.category_id == category_id
        )

    # Income categories

    async def list_income_categories(self, organization_id: str) -> list[IncomeCategory]:
        categories = [
            c.model_copy() for c in self._income_categories.values()
            if c.organization_id == organization_id
        ]
        return sorted(categories, key=lambda c: c.name.lower())

    async def get_income_category(
        self, organization_id: str, category_id: UUID
    ) -> Optional[IncomeCategory]:
        category = self._income_categories.get(category_id)
        if category is None or category.organization_id != organization_id:
            return None
        return category.model_copy()

    async def save_income_category(self, category: IncomeCategory) -> IncomeCategory:
        return self.add_income_category(category)

    # Bills

    async def save_bills(self, bills: list[Bill]) -> list[Bill]:
        for bill in bills:
            if bill.id in self._bills:
                raise DuplicateError(f"Bill already exists: {bill.id}")
        for bill in bills:
            self._bills[bill.id] = bill.model_copy(deep=True)
        return bills

    async def get_bill(self, organization_id: str, bill_id: UUID) -> Optional[Bill]:
        bill = self._bills.get(bill_id)
        if bill is None or bill.organization_id != organization_id:
            return None
        return bill.model_copy(deep=True)

    async def update_bill(self, bill: Bill) -> Bill:
        current = self._bills.get(bill.id)
        if current is None or current.organization_id != bill.organization_id:
            raise NotFoundError(f"Bill not found: {bill.id}")
        bill.updated_at = datetime.utcnow()
        self._bills[bill.id] = bill.model_copy(deep=True)
        return bill

    async def delete_bill(self, organization_id: str, bill_id: UUID) -> bool:
        if await self.get_bill(organization_id, bill_id) is None:
            return False
        del self._bills[bill_id]
        return True

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
        bills = [
            b.model_copy(deep=True) for b in self._bills.values()
            if b.organization_id == organization_id
            and _matches(
                b, b.payment_date, category_id, date_from, date_to,
                min_amount, max_amount, text,
            )
        ]
        bills.sort(key=lambda b: (b.payment_date, b.created_at), reverse=True)
        return bills[:limit] if limit is not None else bills

    # Incomes

    async def save_income(self, income: Income) -> Income:
        if income.id in self._incomes:
            raise DuplicateError(f"Income already exists: {income.id}")
        self._incomes[income.id] = income.model_copy(deep=True)
        return income

    async def get_income(self, organization_id: str, income_id: UUID) -> Optional[Income]:
        income = self._incomes.get(income_id)
        if income is None or income.organization_id != organization_id:
            return None
        return income.model_copy(deep=True)

    async def update_income(self, income: Income) -> Income:
        current = self._incomes.get(income.id)
        if current is None or current.organization_id != income.organization_id:
            raise NotFoundError(f"Income not found: {income.id}")
        income.updated_at = datetime.utcnow()
        self._incomes[income.id] = income.model_copy(deep=True)
        return income

    async def delete_income(self, organization_id: str, income_id: UUID) -> bool:
        if await self.get_income(organization_id, income_id) is None:
            return False
        del self._incomes[income_id]
        return True

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
        incomes = [
            i.model_copy(deep=True) for i in self._incomes.values()
            if i.organization_id == organization_id
            and _matches(
                i, i.income_date, category_id, date_from, date_to,
                min_amount, max_amount, text,
            )
        ]
        incomes.sort(key=lambda i: (i.income_date, i.created_at), reverse=True)
        return incomes[:limit] if limit is not None else incomes


class InMemoryConversationStorage(ConversationStorageInterface):
    """Conversations and messages kept in process memory."""

    def __init__(self):
        self._conversations: dict[UUID, Conversation] = {}
        self._messages: dict[UUID, list[Message]] = {}

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        if conversation.id in self._conversations:
            raise DuplicateError(f"Conversation already exists: {conversation.id}")
        self._conversations[conversation.id] = conversation.model_copy()
        self._messages[conversation.id] = []
        return conversation

    async def get_conversation(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
    ) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        if (
            conversation is None
            or conversation.user_id != user_id
            or conversation.organization_id != organization_id
        ):
            return None
        return conversation.model_copy()

    async def list_conversations(
        self,
        user_id: str,
        organization_id: str,
    ) -> list[Conversation]:
        conversations = [
            c.model_copy() for c in self._conversations.values()
            if c.user_id == user_id and c.organization_id == organization_id
        ]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def touch_conversation(self, conversation_id: UUID) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        conversation.updated_at = datetime.utcnow()

    async def delete_conversation(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
    ) -> bool:
        if await self.get_conversation(conversation_id, user_id, organization_id) is None:
            return False
        del self._conversations[conversation_id]
        self._messages.pop(conversation_id, None)
        return True

    async def append_message(self, message: Message) -> Message:
        if message.conversation_id not in self._conversations:
            raise NotFoundError(f"Conversation not found: {message.conversation_id}")
        self._messages[message.conversation_id].append(message.model_copy(deep=True))
        return message

    async def list_messages(
        self,
        conversation_id: UUID,
        limit: Optional[int] = None,
    ) -> list[Message]:
        messages = [m.model_copy(deep=True) for m in self._messages.get(conversation_id, [])]
        if limit is not None:
            messages = messages[-limit:]
        return messages

    async def count_messages(self, conversation_id: UUID) -> int:
        return len(self._messages.get(conversation_id, []))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True
