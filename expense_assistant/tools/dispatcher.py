"""
Tool Dispatcher

Executes a tool call requested by the model on behalf of the acting user.

GUARANTEES:
- Every write is scoped to the acting organization. The organization id
  comes from the session, never from model-authored arguments.
- Creations and updates go through the SAME form schemas as the manual
  forms (BillInput, IncomeInput, CategoryInput, ...). Invalid input is
  rejected, never clamped or fixed.
- Destructive tools follow a two-phase protocol: `confirmed=false` is a
  dry run that mutates nothing and returns `needsConfirmation: true`;
  only `confirmed=true` deletes.
- Business failures come back as `{"success": False, "error": ...}` so
  the model can recover in its follow-up turn. Only an unknown tool
  name raises.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_assistant.audit import AuditLogger
from expense_assistant.config import AssistantSettings
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
)
from expense_assistant.queries.analytics import (
    CENT,
    AnalyticsEngine,
    AnalyticsError,
    AnalyticsType,
    GroupBy,
    Period,
    as_number,
)
from expense_assistant.services.storage import (
    DuplicateError,
    FinanceStorageInterface,
    IntegrityError,
    StorageError,
)
from expense_assistant.tools.installments import expand_installments
from expense_assistant.tools.resolver import NameResolver, ResolutionError
from expense_assistant.tools.schema import ToolName


logger = structlog.get_logger(__name__)

ToolResult = dict[str, Any]


class UnknownToolError(Exception):
    """The model asked for a tool that is not in the catalogue."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolArgumentError(Exception):
    """A model-authored argument is missing or malformed."""
    pass


@dataclass
class ToolCall:
    """Who is acting, and the per-turn resolver they share."""
    user_id: str
    organization_id: str
    resolver: NameResolver
    today: date


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def _failure(error: str) -> ToolResult:
    return {"success": False, "error": error}


def _require(args: dict, key: str) -> Any:
    value = args.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ToolArgumentError(f"Missing required field: {key}")
    return value


def _text(args: dict, key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    return str(value)


def _date(args: dict, key: str) -> Optional[date]:
    value = args.get(key)
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ToolArgumentError(f"Invalid {key} '{value}'. Use the YYYY-MM-DD format.")


def _required_date(args: dict, key: str) -> date:
    _require(args, key)
    return _date(args, key)


def _amount(value: Any, key: str = "amount") -> Decimal:
    """Convert a JSON number to Decimal without binary float noise."""
    if isinstance(value, bool):
        raise ToolArgumentError(f"Invalid {key}: {value}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ToolArgumentError(f"Invalid {key}: {value}")


def _optional_amount(args: dict, key: str) -> Optional[Decimal]:
    value = args.get(key)
    return None if value is None else _amount(value, key)


def _integer(args: dict, key: str) -> Optional[int]:
    value = args.get(key)
    if value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ToolArgumentError(f"Invalid {key}: {value}")
    if number != number.to_integral_value():
        raise ToolArgumentError(f"{key} must be a whole number")
    return int(number)


def _uuid(value: Any) -> Optional[UUID]:
    """Parse an id; a malformed id simply matches nothing."""
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _confirmed(args: dict) -> bool:
    # Anything but an explicit true is a dry run
    value = args.get("confirmed")
    return value is True or (isinstance(value, str) and value.lower() == "true")


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    message = first["msg"].removeprefix("Value error, ")
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {message}" if location else message


# =============================================================================
# DISPATCHER
# =============================================================================

class ToolDispatcher:
    """
    Routes tool calls to their handlers.

    Every ToolName must have a handler; this is checked when the
    dispatcher is built, so a catalogue entry without an implementation
    fails at startup rather than mid-conversation.
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AssistantSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or AssistantSettings()
        self._clock = clock
        self._analytics = AnalyticsEngine(storage)

        self._handlers: dict[ToolName, Callable[[dict, ToolCall], Awaitable[ToolResult]]] = {
            ToolName.CREATE_BILL: self._create_bill,
            ToolName.UPDATE_BILL: self._update_bill,
            ToolName.DELETE_BILL: self._delete_bill,
            ToolName.SEARCH_BILLS: self._search_bills,
            ToolName.CREATE_INCOME: self._create_income,
            ToolName.UPDATE_INCOME: self._update_income,
            ToolName.DELETE_INCOME: self._delete_income,
            ToolName.SEARCH_INCOMES: self._search_incomes,
            ToolName.CREATE_CATEGORY: self._create_category,
            ToolName.UPDATE_CATEGORY: self._update_category,
            ToolName.DELETE_CATEGORY: self._delete_category,
            ToolName.CREATE_INCOME_CATEGORY: self._create_income_category,
            ToolName.LIST_CATEGORIES: self._list_categories,
            ToolName.GET_ANALYTICS: self._get_analytics,
            ToolName.SUGGEST_INCOME_SPLIT: self._suggest_income_split,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Tools without handlers: {sorted(m.value for m in missing)}")

    def new_resolver(self, organization_id: str) -> NameResolver:
        """A fresh resolver; share one across all tool calls of a turn."""
        return NameResolver(self._storage, organization_id)

    async def execute(
        self,
        tool_name: str,
        args: Optional[dict],
        user_id: str,
        organization_id: str,
        resolver: Optional[NameResolver] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ToolResult:
        """
        Execute one tool call.

        Returns:
            A ToolResult, always carrying a boolean `success`

        Raises:
            UnknownToolError: If tool_name is not in the catalogue
        """
        try:
            name = ToolName(tool_name)
        except ValueError:
            raise UnknownToolError(tool_name)

        call = ToolCall(
            user_id=user_id,
            organization_id=organization_id,
            resolver=resolver or self.new_resolver(organization_id),
            today=self._clock(),
        )

        try:
            result = await self._handlers[name](args or {}, call)
        except (ResolutionError, ToolArgumentError, AnalyticsError) as e:
            result = _failure(str(e))
        except ValidationError as e:
            result = _failure(_validation_message(e))
        except StorageError as e:
            logger.error("tool_storage_failed", tool=name.value, error=str(e))
            result = _failure(f"Could not complete {name.value}: {e}")

        if result.get("success"):
            await self._audit.log_tool_executed(
                name.value, user_id, organization_id, correlation_id
            )
        elif not result.get("needsConfirmation"):
            await self._audit.log_tool_failed(
                name.value, user_id, organization_id, result.get("error", ""), correlation_id
            )
        return result

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _assignments(self, raw: Any, call: ToolCall) -> list[Assignment]:
        """Resolve model assignments; none given means 100% to the acting user."""
        if not raw:
            return [Assignment(user_id=call.user_id, percentage=Decimal("100"))]
        if not isinstance(raw, list):
            raise ToolArgumentError("assignments must be a list")

        resolved = []
        for item in raw:
            if not isinstance(item, dict):
                raise ToolArgumentError("Each assignment needs userName and percentage")
            member = await call.resolver.member(str(_require(item, "userName")))
            resolved.append(Assignment(
                user_id=member.user_id,
                percentage=_amount(_require(item, "percentage"), "percentage"),
            ))
        return resolved

    async def _assignment_view(self, assignments: list[Assignment], call: ToolCall) -> list[dict]:
        return [
            {"user": await call.resolver.member_name(a.user_id), "percentage": float(a.percentage)}
            for a in assignments
        ]

    async def _bill_view(self, bill: Bill, call: ToolCall) -> dict:
        view = {
            "id": str(bill.id),
            "label": bill.label,
            "amount": as_number(bill.amount),
            "category": await call.resolver.category_name(bill.category_id),
            "paymentDate": bill.payment_date.isoformat(),
            "dueDate": bill.due_date.isoformat() if bill.due_date else None,
            "notes": bill.notes,
            "addedBy": await call.resolver.member_name(bill.user_id),
            "assignments": await self._assignment_view(bill.assignments, call),
        }
        if bill.installment_group_id:
            view["installment"] = f"{bill.current_installment}/{bill.total_installments}"
        return view

    async def _income_view(self, income: Income, call: ToolCall) -> dict:
        return {
            "id": str(income.id),
            "label": income.label,
            "amount": as_number(income.amount),
            "category": await call.resolver.income_category_name(income.category_id),
            "incomeDate": income.income_date.isoformat(),
            "notes": income.notes,
            "addedBy": await call.resolver.member_name(income.user_id),
            "assignments": await self._assignment_view(income.assignments, call),
        }

    @staticmethod
    def _category_view(category: ExpenseCategory) -> dict:
        return {
            "id": str(category.id),
            "name": category.name,
            "description": category.description,
            "color": category.color,
            "icon": category.icon,
            "isCreditCard": category.is_credit_card,
        }

    @staticmethod
    def _income_category_view(category: IncomeCategory) -> dict:
        return {
            "id": str(category.id),
            "name": category.name,
            "description": category.description,
            "color": category.color,
            "icon": category.icon,
            "isRecurring": category.is_recurring,
        }

    def _search_limit(self, args: dict) -> int:
        limit = _integer(args, "limit") or self._settings.default_search_limit
        return max(1, min(limit, self._settings.max_search_limit))

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    async def _create_bill(self, args: dict, call: ToolCall) -> ToolResult:
        category = await call.resolver.category(str(_require(args, "categoryName")))
        form = BillInput(
            label=str(_require(args, "label")),
            amount=_amount(_require(args, "amount")),
            payment_date=_required_date(args, "paymentDate"),
            due_date=_date(args, "dueDate"),
            category_id=category.id,
            notes=_text(args, "notes"),
            assignments=await self._assignments(args.get("assignments"), call),
            total_installments=_integer(args, "totalInstallments"),
        )

        if form.total_installments:
            if not category.is_credit_card:
                return _failure(
                    f'Installments are only allowed on credit card categories. '
                    f'"{category.name}" is not a credit card category, so no bill was created.'
                )
            if form.amount < CENT * form.total_installments:
                return _failure(
                    f"An amount of {form.amount} cannot be split into "
                    f"{form.total_installments} installments."
                )
            bills = expand_installments(
                organization_id=call.organization_id,
                user_id=call.user_id,
                label=form.label,
                total=form.amount,
                first_payment_date=form.payment_date,
                category_id=category.id,
                count=form.total_installments,
                assignments=form.assignments,
                notes=form.notes,
                due_date=form.due_date,
            )
        else:
            bills = [Bill(
                organization_id=call.organization_id,
                user_id=call.user_id,
                **form.model_dump(exclude={"total_installments"}),
            )]

        await self._storage.save_bills(bills)
        for bill in bills:
            await self._audit.log_record_mutation(
                "created", "bill", str(bill.id), call.user_id, call.organization_id,
                f"{bill.label} ({bill.amount})",
            )

        if len(bills) > 1:
            return {
                "success": True,
                "message": (
                    f"Created {len(bills)} monthly installments for {form.label} "
                    f"(total {as_number(form.amount):.2f})"
                ),
                "bill": await self._bill_view(bills[0], call),
                "installments": [await self._bill_view(b, call) for b in bills],
            }
        return {
            "success": True,
            "message": f"Created bill: {bills[0].label}",
            "bill": await self._bill_view(bills[0], call),
        }

    async def _find_bill(self, args: dict, call: ToolCall) -> Optional[Bill]:
        bill_id = _uuid(_require(args, "billId"))
        if bill_id is None:
            return None
        return await self._storage.get_bill(call.organization_id, bill_id)

    async def _update_bill(self, args: dict, call: ToolCall) -> ToolResult:
        bill = await self._find_bill(args, call)
        if bill is None:
            return _failure("Bill not found")

        category_id = bill.category_id
        if args.get("categoryName"):
            category = await call.resolver.category(str(args["categoryName"]))
            if bill.installment_group_id and not category.is_credit_card:
                return _failure(
                    f'This bill is an installment and must stay in a credit card category. '
                    f'"{category.name}" is not one.'
                )
            category_id = category.id

        amount = _optional_amount(args, "amount")
        form = BillInput(
            label=_text(args, "label") or bill.label,
            amount=bill.amount if amount is None else amount,
            payment_date=_date(args, "paymentDate") or bill.payment_date,
            due_date=_date(args, "dueDate") or bill.due_date,
            category_id=category_id,
            notes=_text(args, "notes") if "notes" in args else bill.notes,
            assignments=(
                await self._assignments(args["assignments"], call)
                if args.get("assignments") else bill.assignments
            ),
        )
        updated = Bill.model_validate({
            **bill.model_dump(),
            **form.model_dump(exclude={"total_installments"}),
        })
        await self._storage.update_bill(updated)
        await self._audit.log_record_mutation(
            "updated", "bill", str(bill.id), call.user_id, call.organization_id, updated.label
        )
        return {
            "success": True,
            "message": f"Updated bill: {updated.label}",
            "bill": await self._bill_view(updated, call),
        }

    async def _delete_bill(self, args: dict, call: ToolCall) -> ToolResult:
        bill = await self._find_bill(args, call)
        if bill is None:
            return _failure("Bill not found")

        if not _confirmed(args):
            await self._audit.log_confirmation_requested(
                ToolName.DELETE_BILL.value, "bill", str(bill.id),
                call.user_id, call.organization_id,
            )
            return {
                "success": False,
                "needsConfirmation": True,
                "message": (
                    f'Are you sure you want to delete the bill "{bill.label}" '
                    f"(${as_number(bill.amount):.2f}) from {bill.payment_date.strftime('%b %d, %Y')}? "
                    "This action cannot be undone."
                ),
                "billDetails": await self._bill_view(bill, call),
            }

        if not await self._storage.delete_bill(call.organization_id, bill.id):
            return _failure("Bill not found")
        await self._audit.log_record_mutation(
            "deleted", "bill", str(bill.id), call.user_id, call.organization_id, bill.label
        )
        return {"success": True, "message": f"Successfully deleted bill: {bill.label}"}

    async def _search_bills(self, args: dict, call: ToolCall) -> ToolResult:
        category_id = None
        if args.get("categoryName"):
            category_id = (await call.resolver.category(str(args["categoryName"]))).id
        assignee = None
        if args.get("assignedToUser"):
            assignee = await call.resolver.member(str(args["assignedToUser"]))

        bills = await self._storage.list_bills(
            call.organization_id,
            category_id=category_id,
            date_from=_date(args, "startDate"),
            date_to=_date(args, "endDate"),
            min_amount=_optional_amount(args, "minAmount"),
            max_amount=_optional_amount(args, "maxAmount"),
            text=_text(args, "searchText"),
        )
        if args.get("createdByMe") is True:
            bills = [b for b in bills if b.user_id == call.user_id]
        if assignee is not None:
            bills = [
                b for b in bills
                if any(a.user_id == assignee.user_id for a in b.assignments)
                or (not b.assignments and b.user_id == assignee.user_id)
            ]

        bills = bills[:self._search_limit(args)]
        return {
            "success": True,
            "bills": [await self._bill_view(b, call) for b in bills],
            "count": len(bills),
        }

    # ------------------------------------------------------------------
    # Incomes
    # ------------------------------------------------------------------

    async def _create_income(self, args: dict, call: ToolCall) -> ToolResult:
        category = await call.resolver.income_category(str(_require(args, "categoryName")))
        form = IncomeInput(
            label=str(_require(args, "label")),
            amount=_amount(_require(args, "amount")),
            income_date=_required_date(args, "incomeDate"),
            category_id=category.id,
            notes=_text(args, "notes"),
            assignments=await self._assignments(args.get("assignments"), call),
        )
        income = Income(
            organization_id=call.organization_id,
            user_id=call.user_id,
            **form.model_dump(),
        )
        await self._storage.save_income(income)
        await self._audit.log_record_mutation(
            "created", "income", str(income.id), call.user_id, call.organization_id,
            f"{income.label} ({income.amount})",
        )
        return {
            "success": True,
            "message": f"Created income: {income.label}",
            "income": await self._income_view(income, call),
        }

    async def _find_income(self, args: dict, call: ToolCall) -> Optional[Income]:
        income_id = _uuid(_require(args, "incomeId"))
        if income_id is None:
            return None
        return await self._storage.get_income(call.organization_id, income_id)

    async def _update_income(self, args: dict, call: ToolCall) -> ToolResult:
        income = await self._find_income(args, call)
        if income is None:
            return _failure("Income not found")

        category_id = income.category_id
        if args.get("categoryName"):
            category_id = (await call.resolver.income_category(str(args["categoryName"]))).id

        amount = _optional_amount(args, "amount")
        form = IncomeInput(
            label=_text(args, "label") or income.label,
            amount=income.amount if amount is None else amount,
            income_date=_date(args, "incomeDate") or income.income_date,
            category_id=category_id,
            notes=_text(args, "notes") if "notes" in args else income.notes,
            assignments=(
                await self._assignments(args["assignments"], call)
                if args.get("assignments") else income.assignments
            ),
        )
        updated = Income.model_validate({**income.model_dump(), **form.model_dump()})
        await self._storage.update_income(updated)
        await self._audit.log_record_mutation(
            "updated", "income", str(income.id), call.user_id, call.organization_id, updated.label
        )
        return {
            "success": True,
            "message": f"Updated income: {updated.label}",
            "income": await self._income_view(updated, call),
        }

    async def _delete_income(self, args: dict, call: ToolCall) -> ToolResult:
        income = await self._find_income(args, call)
        if income is None:
            return _failure("Income not found")

        if not _confirmed(args):
            await self._audit.log_confirmation_requested(
                ToolName.DELETE_INCOME.value, "income", str(income.id),
                call.user_id, call.organization_id,
            )
            return {
                "success": False,
                "needsConfirmation": True,
                "message": (
                    f'Are you sure you want to delete the income "{income.label}" '
                    f"(${as_number(income.amount):.2f}) from {income.income_date.strftime('%b %d, %Y')}? "
                    "This action cannot be undone."
                ),
                "incomeDetails": await self._income_view(income, call),
            }

        if not await self._storage.delete_income(call.organization_id, income.id):
            return _failure("Income not found")
        await self._audit.log_record_mutation(
            "deleted", "income", str(income.id), call.user_id, call.organization_id, income.label
        )
        return {"success": True, "message": f"Successfully deleted income: {income.label}"}

    async def _search_incomes(self, args: dict, call: ToolCall) -> ToolResult:
        category_id = None
        if args.get("categoryName"):
            category_id = (await call.resolver.income_category(str(args["categoryName"]))).id

        incomes = await self._storage.list_incomes(
            call.organization_id,
            category_id=category_id,
            date_from=_date(args, "startDate"),
            date_to=_date(args, "endDate"),
            min_amount=_optional_amount(args, "minAmount"),
            max_amount=_optional_amount(args, "maxAmount"),
            text=_text(args, "searchText"),
            limit=self._search_limit(args),
        )
        return {
            "success": True,
            "incomes": [await self._income_view(i, call) for i in incomes],
            "count": len(incomes),
        }

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def _create_category(self, args: dict, call: ToolCall) -> ToolResult:
        form = CategoryInput(
            name=str(_require(args, "name")),
            description=_text(args, "description"),
            color=_text(args, "color") or "#3b82f6",
            icon=_text(args, "icon"),
            is_credit_card=args.get("isCreditCard") is True,
        )
        category = ExpenseCategory(organization_id=call.organization_id, **form.model_dump())
        try:
            await self._storage.save_category(category)
        except DuplicateError:
            return _failure(f'Category "{form.name}" already exists.')

        await call.resolver.remember_category(category)
        await self._audit.log_record_mutation(
            "created", "category", str(category.id), call.user_id, call.organization_id,
            category.name,
        )
        return {
            "success": True,
            "message": f"Created category: {category.name}",
            "category": self._category_view(category),
        }

    async def _find_category(self, args: dict, call: ToolCall) -> Optional[ExpenseCategory]:
        """Locate a category by id, or by its current name."""
        if args.get("categoryId"):
            category_id = _uuid(args["categoryId"])
            if category_id is None:
                return None
            return await self._storage.get_category(call.organization_id, category_id)
        if args.get("categoryName"):
            return await call.resolver.category(str(args["categoryName"]))
        raise ToolArgumentError("Either categoryId or categoryName is required")

    async def _update_category(self, args: dict, call: ToolCall) -> ToolResult:
        category = await self._find_category(args, call)
        if category is None:
            return _failure("Category not found")

        form = CategoryInput(
            name=_text(args, "name") or category.name,
            description=_text(args, "description") if "description" in args else category.description,
            color=_text(args, "color") or category.color,
            icon=_text(args, "icon") if "icon" in args else category.icon,
            is_credit_card=(
                args["isCreditCard"] is True if "isCreditCard" in args else category.is_credit_card
            ),
        )
        updated = ExpenseCategory.model_validate({**category.model_dump(), **form.model_dump()})
        try:
            await self._storage.update_category(updated)
        except DuplicateError:
            return _failure(f'Category "{form.name}" already exists.')

        await call.resolver.remember_category(updated)
        await self._audit.log_record_mutation(
            "updated", "category", str(category.id), call.user_id, call.organization_id,
            updated.name,
        )
        return {
            "success": True,
            "message": f"Updated category: {updated.name}",
            "category": self._category_view(updated),
        }

    async def _delete_category(self, args: dict, call: ToolCall) -> ToolResult:
        category = await self._find_category(args, call)
        if category is None:
            return _failure("Category not found")

        bill_count = await self._storage.count_bills_in_category(
            call.organization_id, category.id
        )

        if not _confirmed(args):
            await self._audit.log_confirmation_requested(
                ToolName.DELETE_CATEGORY.value, "category", str(category.id),
                call.user_id, call.organization_id,
            )
            message = f'Are you sure you want to delete the category "{category.name}"?'
            if bill_count:
                message += (
                    f" It is used by {bill_count} bill(s), which must be moved or deleted first."
                )
            return {
                "success": False,
                "needsConfirmation": True,
                "message": message,
                "categoryDetails": {**self._category_view(category), "billCount": bill_count},
            }

        try:
            deleted = await self._storage.delete_category(call.organization_id, category.id)
        except IntegrityError:
            return _failure(
                f'Cannot delete category "{category.name}": it is used by {bill_count} bill(s). '
                "Move or delete those bills first."
            )
        if not deleted:
            return _failure("Category not found")

        await call.resolver.forget_category(category)
        await self._audit.log_record_mutation(
            "deleted", "category", str(category.id), call.user_id, call.organization_id,
            category.name,
        )
        return {"success": True, "message": f"Successfully deleted category: {category.name}"}

    async def _create_income_category(self, args: dict, call: ToolCall) -> ToolResult:
        form = IncomeCategoryInput(
            name=str(_require(args, "name")),
            description=_text(args, "description"),
            color=_text(args, "color") or "#3b82f6",
            icon=_text(args, "icon"),
            is_recurring=args.get("isRecurring") is True,
        )
        category = IncomeCategory(organization_id=call.organization_id, **form.model_dump())
        try:
            await self._storage.save_income_category(category)
        except DuplicateError:
            return _failure(f'Income category "{form.name}" already exists.')

        await call.resolver.remember_income_category(category)
        await self._audit.log_record_mutation(
            "created", "income_category", str(category.id), call.user_id,
            call.organization_id, category.name,
        )
        return {
            "success": True,
            "message": f"Created income category: {category.name}",
            "category": self._income_category_view(category),
        }

    async def _list_categories(self, args: dict, call: ToolCall) -> ToolResult:
        categories = await self._storage.list_categories(call.organization_id)
        income_categories = await self._storage.list_income_categories(call.organization_id)
        return {
            "success": True,
            "categories": [self._category_view(c) for c in categories],
            "incomeCategories": [self._income_category_view(c) for c in income_categories],
        }

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    @staticmethod
    def _period(args: dict, required: bool) -> Period:
        raw = _require(args, "period") if required else (args.get("period") or Period.CURRENT_MONTH.value)
        try:
            return Period(raw)
        except ValueError:
            raise ToolArgumentError(
                f"Invalid period '{raw}'. Use one of: {', '.join(p.value for p in Period)}"
            )

    async def _get_analytics(self, args: dict, call: ToolCall) -> ToolResult:
        period = self._period(args, required=True)
        try:
            group_by = GroupBy(args["groupBy"]) if args.get("groupBy") else None
            analytics_type = AnalyticsType(args.get("type") or AnalyticsType.EXPENSES.value)
        except ValueError as e:
            raise ToolArgumentError(str(e))

        analytics = await self._analytics.analytics(
            call.organization_id,
            period,
            call.today,
            group_by=group_by,
            analytics_type=analytics_type,
        )
        return {"success": True, "analytics": analytics}

    async def _suggest_income_split(self, args: dict, call: ToolCall) -> ToolResult:
        period = self._period(args, required=False)
        suggestion = await self._analytics.income_split(call.organization_id, period, call.today)
        return {"success": True, **suggestion}
