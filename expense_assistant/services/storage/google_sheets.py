"""
Google Sheets Storage Implementation

Google Sheets is an optional storage backend (`storage_backend=sheets`):
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data
- No transactions (installment groups are appended in a single call)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interfaces, so the assistant
never knows which backend it talks to.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_assistant.config import get_settings
from expense_assistant.models.audit import AuditEvent
from expense_assistant.models.conversation import (
    Conversation,
    Message,
    Role,
    ToolCallRecord,
)
from expense_assistant.models.finance import (
    Assignment,
    Bill,
    ExpenseCategory,
    Income,
    IncomeCategory,
    Member,
)
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


logger = structlog.get_logger(__name__)


# Column mappings, one list per worksheet
MEMBER_COLUMNS = ["user_id", "organization_id", "name"]

CATEGORY_COLUMNS = [
    "id", "organization_id", "name", "description", "color", "icon", "is_credit_card",
]

INCOME_CATEGORY_COLUMNS = [
    "id", "organization_id", "name", "description", "color", "icon", "is_recurring",
]

BILL_COLUMNS = [
    "id",
    "organization_id",
    "user_id",
    "label",
    "amount",
    "payment_date",
    "due_date",
    "category_id",
    "notes",
    "assignments_json",
    "total_installments",
    "current_installment",
    "installment_group_id",
    "created_at",
    "updated_at",
]

INCOME_COLUMNS = [
    "id",
    "organization_id",
    "user_id",
    "label",
    "amount",
    "income_date",
    "category_id",
    "notes",
    "assignments_json",
    "created_at",
    "updated_at",
]

CONVERSATION_COLUMNS = [
    "id", "user_id", "organization_id", "title", "created_at", "updated_at",
]

MESSAGE_COLUMNS = [
    "id", "conversation_id", "role", "content", "tool_calls_json", "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "organization_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


def _safe_getter(row: list) -> Callable[..., str]:
    """Handle missing trailing columns gracefully."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _assignments_json(assignments: list[Assignment]) -> str:
    return json.dumps([
        {"user_id": a.user_id, "percentage": str(a.percentage)} for a in assignments
    ])


def _parse_assignments(raw: str) -> list[Assignment]:
    if not raw:
        return []
    return [Assignment(**item) for item in json.loads(raw)]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    @property
    def settings(self):
        return self._settings


class _SheetTable:
    """
    One worksheet treated as a table whose first column is the key.

    Row indexes are 1-based and row 1 is the header, as in the Sheets API.
    """

    def __init__(self, client: GoogleSheetsClient, title: str, columns: list[str]):
        self._client = client
        self._title = title
        self._columns = columns

    def sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(self._title, self._columns)

    def rows(self) -> list[list]:
        return [row for row in self.sheet().get_all_values()[1:] if row and row[0]]

    def find_row_index(self, key: str) -> Optional[int]:
        all_rows = self.sheet().get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == key:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append(self, rows: list[list]) -> None:
        self.sheet().append_rows(rows, value_input_option="RAW")

    def replace(self, key: str, row: list) -> bool:
        idx = self.find_row_index(key)
        if idx is None:
            return False
        sheet = self.sheet()
        for col_idx, value in enumerate(row, start=1):
            sheet.update_cell(idx, col_idx, value)
        return True

    def delete(self, key: str) -> bool:
        idx = self.find_row_index(key)
        if idx is None:
            return False
        self.sheet().delete_rows(idx)
        return True


def _parse_rows(rows: list[list], parse: Callable):
    """Parse rows, skipping malformed ones."""
    parsed = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except Exception as e:
            logger.warning("sheets_row_skipped", error=str(e), row_key=row[0])
    return parsed


class GoogleSheetsFinanceStorage(FinanceStorageInterface):
    """
    Google Sheets implementation of finance storage.

    One worksheet per record type; assignments are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._members = _SheetTable(self._client, names.members_sheet_name, MEMBER_COLUMNS)
        self._categories = _SheetTable(
            self._client, names.categories_sheet_name, CATEGORY_COLUMNS
        )
        self._income_categories = _SheetTable(
            self._client, names.income_categories_sheet_name, INCOME_CATEGORY_COLUMNS
        )
        self._bills = _SheetTable(self._client, names.bills_sheet_name, BILL_COLUMNS)
        self._incomes = _SheetTable(self._client, names.incomes_sheet_name, INCOME_COLUMNS)

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _category_to_row(category: ExpenseCategory) -> list:
        return [
            str(category.id),
            category.organization_id,
            category.name,
            category.description or "",
            category.color,
            category.icon or "",
            str(category.is_credit_card),
        ]

    @staticmethod
    def _row_to_category(row: list) -> ExpenseCategory:
        safe_get = _safe_getter(row)
        return ExpenseCategory(
            id=UUID(safe_get(0)),
            organization_id=safe_get(1),
            name=safe_get(2),
            description=safe_get(3) or None,
            color=safe_get(4),
            icon=safe_get(5) or None,
            is_credit_card=safe_get(6).lower() == "true",
        )

    @staticmethod
    def _income_category_to_row(category: IncomeCategory) -> list:
        return [
            str(category.id),
            category.organization_id,
            category.name,
            category.description or "",
            category.color,
            category.icon or "",
            str(category.is_recurring),
        ]

    @staticmethod
    def _row_to_income_category(row: list) -> IncomeCategory:
        safe_get = _safe_getter(row)
        return IncomeCategory(
            id=UUID(safe_get(0)),
            organization_id=safe_get(1),
            name=safe_get(2),
            description=safe_get(3) or None,
            color=safe_get(4),
            icon=safe_get(5) or None,
            is_recurring=safe_get(6).lower() == "true",
        )

    @staticmethod
    def _bill_to_row(bill: Bill) -> list:
        return [
            str(bill.id),
            bill.organization_id,
            bill.user_id,
            bill.label,
            str(bill.amount),
            bill.payment_date.isoformat(),
            bill.due_date.isoformat() if bill.due_date else "",
            str(bill.category_id),
            bill.notes or "",
            _assignments_json(bill.assignments),
            str(bill.total_installments) if bill.total_installments else "",
            str(bill.current_installment) if bill.current_installment else "",
            str(bill.installment_group_id) if bill.installment_group_id else "",
            bill.created_at.isoformat(),
            bill.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_bill(row: list) -> Bill:
        safe_get = _safe_getter(row)
        return Bill(
            id=UUID(safe_get(0)),
            organization_id=safe_get(1),
            user_id=safe_get(2),
            label=safe_get(3),
            amount=Decimal(safe_get(4)),
            payment_date=date.fromisoformat(safe_get(5)),
            due_date=date.fromisoformat(safe_get(6)) if safe_get(6) else None,
            category_id=UUID(safe_get(7)),
            notes=safe_get(8) or None,
            assignments=_parse_assignments(safe_get(9)),
            total_installments=int(safe_get(10)) if safe_get(10) else None,
            current_installment=int(safe_get(11)) if safe_get(11) else None,
            installment_group_id=UUID(safe_get(12)) if safe_get(12) else None,
            created_at=datetime.fromisoformat(safe_get(13)),
            updated_at=datetime.fromisoformat(safe_get(14)),
        )

    @staticmethod
    def _income_to_row(income: Income) -> list:
        return [
            str(income.id),
            income.organization_id,
            income.user_id,
            income.label,
            str(income.amount),
            income.income_date.isoformat(),
            str(income.category_id),
            income.notes or "",
            _assignments_json(income.assignments),
            income.created_at.isoformat(),
            income.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_income(row: list) -> Income:
        safe_get = _safe_getter(row)
        return Income(
            id=UUID(safe_get(0)),
            organization_id=safe_get(1),
            user_id=safe_get(2),
            label=safe_get(3),
            amount=Decimal(safe_get(4)),
            income_date=date.fromisoformat(safe_get(5)),
            category_id=UUID(safe_get(6)),
            notes=safe_get(7) or None,
            assignments=_parse_assignments(safe_get(8)),
            created_at=datetime.fromisoformat(safe_get(9)),
            updated_at=datetime.fromisoformat(safe_get(10)),
        )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def list_members(self, organization_id: str) -> list[Member]:
        try:
            members = [
                Member(user_id=row[0], organization_id=row[1], name=row[2])
                for row in self._members.rows()
                if len(row) > 2 and row[1] == organization_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to list members: {e}")
        return sorted(members, key=lambda m: m.name.lower())

    # ------------------------------------------------------------------
    # Expense categories
    # ------------------------------------------------------------------

    async def list_categories(self, organization_id: str) -> list[ExpenseCategory]:
        try:
            categories = _parse_rows(self._categories.rows(), self._row_to_category)
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")
        return sorted(
            (c for c in categories if c.organization_id == organization_id),
            key=lambda c: c.name.lower(),
        )

    async def get_category(
        self, organization_id: str, category_id: UUID
    ) -> Optional[ExpenseCategory]:
        for category in await self.list_categories(organization_id):
            if category.id == category_id:
                return category
        return None

    async def _ensure_unique_name(self, existing: list, name: str, exclude: Optional[UUID] = None):
        for category in existing:
            if category.id != exclude and category.name.lower() == name.lower():
                raise DuplicateError(f'A category named "{category.name}" already exists')

    async def save_category(self, category: ExpenseCategory) -> ExpenseCategory:
        await self._ensure_unique_name(
            await self.list_categories(category.organization_id), category.name
        )
        try:
            self._categories.append([self._category_to_row(category)])
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")
        return category

    async def update_category(self, category: ExpenseCategory) -> ExpenseCategory:
        existing = await self.list_categories(category.organization_id)
        if not any(c.id == category.id for c in existing):
            raise NotFoundError(f"Category not found: {category.id}")
        await self._ensure_unique_name(existing, category.name, exclude=category.id)
        try:
            self._categories.replace(str(category.id), self._category_to_row(category))
        except Exception as e:
            raise StorageError(f"Failed to update category: {e}")
        return category

    async def delete_category(self, organization_id: str, category_id: UUID) -> bool:
        if await self.get_category(organization_id, category_id) is None:
            return False
        in_use = await self.count_bills_in_category(organization_id, category_id)
        if in_use:
            raise IntegrityError(f"Category is used by {in_use} bill(s)")
        try:
            return self._categories.delete(str(category_id))
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    async def count_bills_in_category(
        self, organization_id: str, category_id: UUID
    ) -> int:
        bills = await self.list_bills(organization_id, category_id=category_id)
        return len(bills)

    # ------------------------------------------------------------------
    # Income categories
    # ------------------------------------------------------------------

    async def list_income_categories(self, organization_id: str) -> list[IncomeCategory]:
        try:
            categories = _parse_rows(
                self._income_categories.rows(), self._row_to_income_category
            )
        except Exception as e:
            raise StorageError(f"Failed to list income categories: {e}")
        return sorted(
            (c for c in categories if c.organization_id == organization_id),
            key=lambda c: c.name.lower(),
        )

    async def get_income_category(
        self, organization_id: str, category_id: UUID
    ) -> Optional[IncomeCategory]:
        for category in await self.list_income_categories(organization_id):
            if category.id == category_id:
                return category
        return None

    async def save_income_category(self, category: IncomeCategory) -> IncomeCategory:
        await self._ensure_unique_name(
            await self.list_income_categories(category.organization_id), category.name
        )
        try:
            self._income_categories.append([self._income_category_to_row(category)])
        except Exception as e:
            raise StorageError(f"Failed to save income category: {e}")
        return category

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    async def save_bills(self, bills: list[Bill]) -> list[Bill]:
        try:
            self._bills.append([self._bill_to_row(bill) for bill in bills])
        except Exception as e:
            raise StorageError(f"Failed to save bills: {e}")
        return bills

    async def get_bill(self, organization_id: str, bill_id: UUID) -> Optional[Bill]:
        try:
            for row in self._bills.rows():
                if row[0] == str(bill_id):
                    bill = self._row_to_bill(row)
                    return bill if bill.organization_id == organization_id else None
        except Exception as e:
            raise StorageError(f"Failed to get bill: {e}")
        return None

    async def update_bill(self, bill: Bill) -> Bill:
        if await self.get_bill(bill.organization_id, bill.id) is None:
            raise NotFoundError(f"Bill not found: {bill.id}")
        bill.updated_at = datetime.utcnow()
        try:
            self._bills.replace(str(bill.id), self._bill_to_row(bill))
        except Exception as e:
            raise StorageError(f"Failed to update bill: {e}")
        return bill

    async def delete_bill(self, organization_id: str, bill_id: UUID) -> bool:
        if await self.get_bill(organization_id, bill_id) is None:
            return False
        try:
            return self._bills.delete(str(bill_id))
        except Exception as e:
            raise StorageError(f"Failed to delete bill: {e}")

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
        try:
            bills = _parse_rows(self._bills.rows(), self._row_to_bill)
        except Exception as e:
            raise StorageError(f"Failed to list bills: {e}")

        needle = text.lower() if text else None
        matching = []
        for bill in bills:
            if bill.organization_id != organization_id:
                continue
            if category_id and bill.category_id != category_id:
                continue
            if date_from and bill.payment_date < date_from:
                continue
            if date_to and bill.payment_date > date_to:
                continue
            if min_amount is not None and bill.amount < min_amount:
                continue
            if max_amount is not None and bill.amount > max_amount:
                continue
            if needle and needle not in f"{bill.label} {bill.notes or ''}".lower():
                continue
            matching.append(bill)

        # Sort by date descending (newest first)
        matching.sort(key=lambda b: (b.payment_date, b.created_at), reverse=True)
        return matching[:limit] if limit is not None else matching

    # ------------------------------------------------------------------
    # Incomes
    # ------------------------------------------------------------------

    async def save_income(self, income: Income) -> Income:
        try:
            self._incomes.append([self._income_to_row(income)])
        except Exception as e:
            raise StorageError(f"Failed to save income: {e}")
        return income

    async def get_income(self, organization_id: str, income_id: UUID) -> Optional[Income]:
        try:
            for row in self._incomes.rows():
                if row[0] == str(income_id):
                    income = self._row_to_income(row)
                    return income if income.organization_id == organization_id else None
        except Exception as e:
            raise StorageError(f"Failed to get income: {e}")
        return None

    async def update_income(self, income: Income) -> Income:
        if await self.get_income(income.organization_id, income.id) is None:
            raise NotFoundError(f"Income not found: {income.id}")
        income.updated_at = datetime.utcnow()
        try:
            self._incomes.replace(str(income.id), self._income_to_row(income))
        except Exception as e:
            raise StorageError(f"Failed to update income: {e}")
        return income

    async def delete_income(self, organization_id: str, income_id: UUID) -> bool:
        if await self.get_income(organization_id, income_id) is None:
            return False
        try:
            return self._incomes.delete(str(income_id))
        except Exception as e:
            raise StorageError(f"Failed to delete income: {e}")

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
        try:
            incomes = _parse_rows(self._incomes.rows(), self._row_to_income)
        except Exception as e:
            raise StorageError(f"Failed to list incomes: {e}")

        needle = text.lower() if text else None
        matching = []
        for income in incomes:
            if income.organization_id != organization_id:
                continue
            if category_id and income.category_id != category_id:
                continue
            if date_from and income.income_date < date_from:
                continue
            if date_to and income.income_date > date_to:
                continue
            if min_amount is not None and income.amount < min_amount:
                continue
            if max_amount is not None and income.amount > max_amount:
                continue
            if needle and needle not in f"{income.label} {income.notes or ''}".lower():
                continue
            matching.append(income)

        matching.sort(key=lambda i: (i.income_date, i.created_at), reverse=True)
        return matching[:limit] if limit is not None else matching


class GoogleSheetsConversationStorage(ConversationStorageInterface):
    """
    Google Sheets implementation of conversation storage.

    Tool call records are JSON-serialized into the message row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._conversations = _SheetTable(
            self._client, names.conversations_sheet_name, CONVERSATION_COLUMNS
        )
        self._messages = _SheetTable(
            self._client, names.messages_sheet_name, MESSAGE_COLUMNS
        )

    @staticmethod
    def _conversation_to_row(conversation: Conversation) -> list:
        return [
            str(conversation.id),
            conversation.user_id,
            conversation.organization_id,
            conversation.title,
            conversation.created_at.isoformat(),
            conversation.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_conversation(row: list) -> Conversation:
        safe_get = _safe_getter(row)
        return Conversation(
            id=UUID(safe_get(0)),
            user_id=safe_get(1),
            organization_id=safe_get(2),
            title=safe_get(3),
            created_at=datetime.fromisoformat(safe_get(4)),
            updated_at=datetime.fromisoformat(safe_get(5)),
        )

    @staticmethod
    def _message_to_row(message: Message) -> list:
        tool_calls = (
            json.dumps([call.model_dump(mode="json") for call in message.tool_calls])
            if message.tool_calls
            else ""
        )
        return [
            str(message.id),
            str(message.conversation_id),
            message.role.value,
            message.content,
            tool_calls,
            message.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_message(row: list) -> Message:
        safe_get = _safe_getter(row)
        tool_calls = None
        if safe_get(4):
            tool_calls = [ToolCallRecord(**item) for item in json.loads(safe_get(4))]
        return Message(
            id=UUID(safe_get(0)),
            conversation_id=UUID(safe_get(1)),
            role=Role(safe_get(2)),
            content=safe_get(3),
            tool_calls=tool_calls,
            created_at=datetime.fromisoformat(safe_get(5)),
        )

    def _all_conversations(self) -> list[Conversation]:
        try:
            return _parse_rows(self._conversations.rows(), self._row_to_conversation)
        except Exception as e:
            raise StorageError(f"Failed to read conversations: {e}")

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        try:
            self._conversations.append([self._conversation_to_row(conversation)])
        except Exception as e:
            raise StorageError(f"Failed to create conversation: {e}")
        return conversation

    async def get_conversation(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
    ) -> Optional[Conversation]:
        for conversation in self._all_conversations():
            if (
                conversation.id == conversation_id
                and conversation.user_id == user_id
                and conversation.organization_id == organization_id
            ):
                return conversation
        return None

    async def list_conversations(
        self,
        user_id: str,
        organization_id: str,
    ) -> list[Conversation]:
        owned = [
            c for c in self._all_conversations()
            if c.user_id == user_id and c.organization_id == organization_id
        ]
        return sorted(owned, key=lambda c: c.updated_at, reverse=True)

    async def touch_conversation(self, conversation_id: UUID) -> None:
        for conversation in self._all_conversations():
            if conversation.id == conversation_id:
                conversation.updated_at = datetime.utcnow()
                try:
                    self._conversations.replace(
                        str(conversation_id), self._conversation_to_row(conversation)
                    )
                except Exception as e:
                    raise StorageError(f"Failed to update conversation: {e}")
                return
        raise NotFoundError(f"Conversation not found: {conversation_id}")

    async def delete_conversation(
        self,
        conversation_id: UUID,
        user_id: str,
        organization_id: str,
    ) -> bool:
        if await self.get_conversation(conversation_id, user_id, organization_id) is None:
            return False
        try:
            # Delete bottom-up so row indexes stay valid
            sheet = self._messages.sheet()
            all_rows = sheet.get_all_values()
            indexes = [
                idx for idx, row in enumerate(all_rows[1:], start=2)
                if len(row) > 1 and row[1] == str(conversation_id)
            ]
            for idx in reversed(indexes):
                sheet.delete_rows(idx)
            return self._conversations.delete(str(conversation_id))
        except Exception as e:
            raise StorageError(f"Failed to delete conversation: {e}")

    async def append_message(self, message: Message) -> Message:
        try:
            self._messages.append([self._message_to_row(message)])
        except Exception as e:
            raise StorageError(f"Failed to save message: {e}")
        return message

    async def list_messages(
        self,
        conversation_id: UUID,
        limit: Optional[int] = None,
    ) -> list[Message]:
        try:
            rows = [
                row for row in self._messages.rows()
                if len(row) > 1 and row[1] == str(conversation_id)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list messages: {e}")
        # Rows are appended in creation order
        messages = _parse_rows(rows, self._row_to_message)
        if limit is not None:
            messages = messages[-limit:]
        return messages

    async def count_messages(self, conversation_id: UUID) -> int:
        return len(await self.list_messages(conversation_id))


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client, self._client.settings.audit_sheet_name, AUDIT_COLUMNS
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._table.append([event.to_sheets_row()])
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_event_write_failed", error=str(e))
            return False
