"""
Tests for the Google Sheets backend.

Row conversion is tested directly; storage behaviour runs against an
in-process worksheet that mimics gspread's row/column API.
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from expense_assistant.models import (
    Assignment,
    Bill,
    Conversation,
    ExpenseCategory,
    Income,
    Message,
    Role,
    ToolCallRecord,
)
from expense_assistant.services.storage.google_sheets import (
    GoogleSheetsConversationStorage,
    GoogleSheetsFinanceStorage,
    _assignments_json,
    _parse_assignments,
)


class FakeWorksheet:
    """Just enough of gspread.Worksheet: all values are strings, rows are 1-based."""

    def __init__(self, columns):
        self.values = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.values]

    def append_row(self, row):
        self.values.append([str(v) for v in row])

    def append_rows(self, rows, value_input_option=None):
        for row in rows:
            self.append_row(row)

    def update_cell(self, row, col, value):
        cells = self.values[row - 1]
        cells.extend([""] * (col - len(cells)))
        cells[col - 1] = str(value)

    def delete_rows(self, index):
        del self.values[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {}
        self.settings = SimpleNamespace(
            members_sheet_name="Members",
            categories_sheet_name="Categories",
            income_categories_sheet_name="IncomeCategories",
            bills_sheet_name="Bills",
            incomes_sheet_name="Incomes",
            conversations_sheet_name="Conversations",
            messages_sheet_name="Messages",
            audit_sheet_name="AuditLog",
        )

    def get_sheet(self, title, columns):
        return self.sheets.setdefault(title, FakeWorksheet(columns))


def make_bill(**overrides) -> Bill:
    values = dict(
        organization_id="org-1",
        user_id="user-alice",
        label="Groceries",
        amount=Decimal("1234.56"),
        payment_date=date(2024, 3, 15),
        category_id=uuid4(),
    )
    values.update(overrides)
    return Bill(**values)


class TestRowConversion:
    """Rows read back exactly what was written."""

    def test_bill_with_installments(self):
        bill = make_bill(
            label="Laptop (2/12)",
            amount=Decimal("83.33"),
            assignments=[
                Assignment(user_id="user-alice", percentage=Decimal("33.33")),
                Assignment(user_id="user-bob", percentage=Decimal("66.67")),
            ],
            total_installments=12,
            current_installment=2,
            installment_group_id=uuid4(),
        )

        row = GoogleSheetsFinanceStorage._bill_to_row(bill)
        restored = GoogleSheetsFinanceStorage._row_to_bill(row)

        assert restored == bill
        assert restored.amount == Decimal("83.33")
        assert restored.assignments[0].percentage == Decimal("33.33")

    def test_bill_optional_fields_empty(self):
        bill = make_bill()

        row = GoogleSheetsFinanceStorage._bill_to_row(bill)
        restored = GoogleSheetsFinanceStorage._row_to_bill(row)

        assert row[6] == "" and row[10] == "" and row[12] == ""
        assert restored.due_date is None
        assert restored.notes is None
        assert restored.total_installments is None
        assert restored.installment_group_id is None
        assert restored == bill

    def test_bill_with_due_date_and_notes(self):
        bill = make_bill(due_date=date(2024, 4, 1), notes="Paid by card")
        restored = GoogleSheetsFinanceStorage._row_to_bill(GoogleSheetsFinanceStorage._bill_to_row(bill))
        assert restored.due_date == date(2024, 4, 1)
        assert restored.notes == "Paid by card"

    def test_income(self):
        income = Income(
            organization_id="org-1",
            user_id="user-bob",
            label="Salary",
            amount=Decimal("2500.10"),
            income_date=date(2024, 3, 1),
            category_id=uuid4(),
            assignments=[Assignment(user_id="user-bob", percentage=Decimal("100"))],
        )

        restored = GoogleSheetsFinanceStorage._row_to_income(
            GoogleSheetsFinanceStorage._income_to_row(income)
        )

        assert restored == income

    def test_category_flags(self):
        category = ExpenseCategory(organization_id="org-1", name="Visa Card", is_credit_card=True)
        row = GoogleSheetsFinanceStorage._category_to_row(category)
        assert GoogleSheetsFinanceStorage._row_to_category(row) == category

    def test_message_with_tool_calls(self):
        message = Message(
            conversation_id=uuid4(),
            role=Role.ASSISTANT,
            content="Done!",
            tool_calls=[ToolCallRecord(
                tool="create_bill",
                input={"label": "Groceries", "amount": 150, "categoryName": "Groceries"},
                result={"success": True, "data": {"count": 1}},
            )],
        )

        restored = GoogleSheetsConversationStorage._row_to_message(
            GoogleSheetsConversationStorage._message_to_row(message)
        )

        assert restored == message
        assert restored.tool_calls[0].input["amount"] == 150

    def test_message_without_tool_calls(self):
        message = Message(conversation_id=uuid4(), role=Role.USER, content="hello")
        row = GoogleSheetsConversationStorage._message_to_row(message)
        assert row[4] == ""
        assert GoogleSheetsConversationStorage._row_to_message(row).tool_calls is None

    def test_conversation(self):
        conversation = Conversation(user_id="user-alice", organization_id="org-1", title="Groceries")
        row = GoogleSheetsConversationStorage._conversation_to_row(conversation)
        assert GoogleSheetsConversationStorage._row_to_conversation(row) == conversation

    def test_assignments_keep_precision(self):
        assignments = [
            Assignment(user_id="a", percentage=Decimal("12.50")),
            Assignment(user_id="b", percentage=Decimal("87.5")),
        ]
        assert _parse_assignments(_assignments_json(assignments)) == assignments
        assert _parse_assignments("") == []
        assert _parse_assignments(_assignments_json([])) == []


class TestFinanceStorage:
    """Finance storage against a worksheet double."""

    @pytest.fixture
    def storage(self):
        return GoogleSheetsFinanceStorage(FakeSheetsClient())

    @pytest.mark.asyncio
    async def test_bills_scoped_to_organization(self, storage):
        mine = make_bill()
        theirs = make_bill(organization_id="org-2")
        await storage.save_bills([mine, theirs])

        assert [b.id for b in await storage.list_bills("org-1")] == [mine.id]
        assert await storage.get_bill("org-1", theirs.id) is None

    @pytest.mark.asyncio
    async def test_update_and_delete_bill(self, storage):
        bill = make_bill()
        await storage.save_bills([bill])

        bill.amount = Decimal("99.99")
        await storage.update_bill(bill)
        assert (await storage.get_bill("org-1", bill.id)).amount == Decimal("99.99")

        assert await storage.delete_bill("org-1", bill.id) is True
        assert await storage.list_bills("org-1") == []

    @pytest.mark.asyncio
    async def test_malformed_row_skipped(self, storage):
        bill = make_bill()
        await storage.save_bills([bill])
        storage._client.sheets["Bills"].values.append([str(uuid4()), "org-1", "x", "bad", "not-a-number"])

        assert [b.id for b in await storage.list_bills("org-1")] == [bill.id]


class TestConversationStorage:
    """Conversation storage against a worksheet double."""

    @pytest.mark.asyncio
    async def test_delete_cascades_messages(self):
        storage = GoogleSheetsConversationStorage(FakeSheetsClient())
        kept = await storage.create_conversation(
            Conversation(user_id="user-alice", organization_id="org-1", title="kept")
        )
        dropped = await storage.create_conversation(
            Conversation(user_id="user-alice", organization_id="org-1", title="dropped")
        )
        for conversation in (dropped, kept, dropped):
            await storage.append_message(
                Message(conversation_id=conversation.id, role=Role.USER, content=conversation.title)
            )

        assert await storage.delete_conversation(dropped.id, "user-alice", "org-1") is True

        assert await storage.list_messages(dropped.id) == []
        assert [m.content for m in await storage.list_messages(kept.id)] == ["kept"]
        assert await storage.get_conversation(dropped.id, "user-alice", "org-1") is None

    @pytest.mark.asyncio
    async def test_touch_bumps_updated_at(self):
        storage = GoogleSheetsConversationStorage(FakeSheetsClient())
        conversation = await storage.create_conversation(Conversation(
            user_id="user-alice",
            organization_id="org-1",
            title="t",
            updated_at=datetime(2024, 1, 1),
        ))

        await storage.touch_conversation(conversation.id)

        stored = await storage.get_conversation(conversation.id, "user-alice", "org-1")
        assert stored.updated_at > datetime(2024, 1, 1)
