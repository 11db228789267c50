"""
Tool Schema Registry

The static catalogue of operations the model may request. Each entry is
handed VERBATIM to the LLM provider as its function-calling catalogue,
so the argument shapes here are exactly what the model must produce.

The catalogue is immutable at runtime. `get_tool_schemas` hands out
copies; nothing can alter the registry itself.

Argument names are camelCase because they are model-facing JSON.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ToolName(str, Enum):
    """Every tool the dispatcher knows how to execute."""
    CREATE_BILL = "create_bill"
    UPDATE_BILL = "update_bill"
    DELETE_BILL = "delete_bill"
    SEARCH_BILLS = "search_bills"
    CREATE_INCOME = "create_income"
    UPDATE_INCOME = "update_income"
    DELETE_INCOME = "delete_income"
    SEARCH_INCOMES = "search_incomes"
    CREATE_CATEGORY = "create_category"
    UPDATE_CATEGORY = "update_category"
    DELETE_CATEGORY = "delete_category"
    CREATE_INCOME_CATEGORY = "create_income_category"
    LIST_CATEGORIES = "list_categories"
    GET_ANALYTICS = "get_analytics"
    SUGGEST_INCOME_SPLIT = "suggest_income_split"


# Tools that require the two-phase confirmation protocol
DESTRUCTIVE_TOOLS = frozenset({
    ToolName.DELETE_BILL,
    ToolName.DELETE_INCOME,
    ToolName.DELETE_CATEGORY,
})


class ToolSchema(BaseModel):
    """One catalogue entry: name, purpose and JSON-schema argument shape."""
    model_config = ConfigDict(frozen=True)

    name: ToolName
    description: str
    parameters: dict[str, Any]


# =============================================================================
# FIELD BUILDERS
# =============================================================================

def _string(description: str, **extra) -> dict:
    return {"type": "string", "description": description, **extra}


def _date(description: str) -> dict:
    return {"type": "string", "format": "date", "description": f"{description} (YYYY-MM-DD)"}


def _number(description: str, minimum: Optional[float] = None, maximum: Optional[float] = None) -> dict:
    field = {"type": "number", "description": description}
    if minimum is not None:
        field["minimum"] = minimum
    if maximum is not None:
        field["maximum"] = maximum
    return field


def _boolean(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _object(properties: dict, required: Optional[list[str]] = None) -> dict:
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


_ASSIGNMENTS = {
    "type": "array",
    "description": (
        "Optional split among members. Omit to assign 100% to the current user. "
        "Percentages must total exactly 100."
    ),
    "items": _object(
        {
            "userName": _string("Member name exactly as listed in the context"),
            "percentage": _number("Share of the amount", minimum=0.01, maximum=100),
        },
        required=["userName", "percentage"],
    ),
}

_CONFIRMED = _boolean(
    "Whether the user has explicitly confirmed the deletion. The first call must be "
    "false to get the details; call again with true only after the user confirms."
)

_AMOUNT = _number("Amount with at most 2 decimals (e.g., 150.50)", minimum=0.01)

_SEARCH_FILTERS = {
    "categoryName": _string("Filter by category name"),
    "startDate": _date("Only records on or after this date"),
    "endDate": _date("Only records on or before this date"),
    "minAmount": _number("Minimum amount", minimum=0),
    "maxAmount": _number("Maximum amount", minimum=0),
    "searchText": _string("Text to search in labels and notes"),
    "limit": _number("Maximum number of results (default 10)", minimum=1, maximum=50),
}

_PERIOD = _string(
    "Time period. last_6_months is the current month and the five before it.",
    enum=["current_month", "last_month", "last_6_months", "year_to_date"],
)


# =============================================================================
# CATALOGUE
# =============================================================================

TOOL_SCHEMAS: tuple[ToolSchema, ...] = (
    ToolSchema(
        name=ToolName.CREATE_BILL,
        description=(
            "Create a new bill/expense. Use this when the user wants to add or record an expense. "
            "For credit-card purchases in installments, pass the total amount and totalInstallments."
        ),
        parameters=_object(
            {
                "label": _string("Brief description (e.g., 'Grocery shopping', 'Electric bill')"),
                "amount": _number(
                    "Amount with at most 2 decimals. For installments, the TOTAL purchase amount.",
                    minimum=0.01,
                ),
                "paymentDate": _date("Date the bill was paid. If the user says 'today', use the current date"),
                "categoryName": _string(
                    "Expense category (e.g., 'Groceries', 'Utilities'). If not specified, ask the user."
                ),
                "dueDate": _date("Optional due date"),
                "notes": _string("Optional notes"),
                "assignments": _ASSIGNMENTS,
                "totalInstallments": _number(
                    "Optional number of monthly installments. Only for credit-card categories.",
                    minimum=2,
                    maximum=24,
                ),
            },
            required=["label", "amount", "paymentDate", "categoryName"],
        ),
    ),
    ToolSchema(
        name=ToolName.UPDATE_BILL,
        description=(
            "Update an existing bill's label, amount, dates, category, notes or split. "
            "Use search_bills first if you don't have the bill ID."
        ),
        parameters=_object(
            {
                "billId": _string("ID of the bill to update"),
                "label": _string("New label"),
                "amount": _AMOUNT,
                "paymentDate": _date("New payment date"),
                "dueDate": _date("New due date"),
                "categoryName": _string("New category name"),
                "notes": _string("New notes"),
                "assignments": _ASSIGNMENTS,
            },
            required=["billId"],
        ),
    ),
    ToolSchema(
        name=ToolName.DELETE_BILL,
        description=(
            "Delete a bill. IMPORTANT: always call with confirmed=false first and ask the user "
            "to confirm before calling again with confirmed=true."
        ),
        parameters=_object(
            {
                "billId": _string("ID of the bill to delete. Use search_bills first if needed."),
                "confirmed": _CONFIRMED,
            },
            required=["billId", "confirmed"],
        ),
    ),
    ToolSchema(
        name=ToolName.SEARCH_BILLS,
        description="Search and filter bills, newest first. Use this to find bills or their IDs.",
        parameters=_object({
            **_SEARCH_FILTERS,
            "assignedToUser": _string("Only bills assigned to this member"),
            "createdByMe": _boolean("Only bills recorded by the current user"),
        }),
    ),
    ToolSchema(
        name=ToolName.CREATE_INCOME,
        description="Record a new income (salary, freelance payment, etc.).",
        parameters=_object(
            {
                "label": _string("Brief description (e.g., 'March salary')"),
                "amount": _AMOUNT,
                "incomeDate": _date("Date the income was received"),
                "categoryName": _string("Income category. If not specified, ask the user."),
                "notes": _string("Optional notes"),
                "assignments": _ASSIGNMENTS,
            },
            required=["label", "amount", "incomeDate", "categoryName"],
        ),
    ),
    ToolSchema(
        name=ToolName.UPDATE_INCOME,
        description="Update an existing income. Use search_incomes first if you don't have the ID.",
        parameters=_object(
            {
                "incomeId": _string("ID of the income to update"),
                "label": _string("New label"),
                "amount": _AMOUNT,
                "incomeDate": _date("New income date"),
                "categoryName": _string("New income category name"),
                "notes": _string("New notes"),
                "assignments": _ASSIGNMENTS,
            },
            required=["incomeId"],
        ),
    ),
    ToolSchema(
        name=ToolName.DELETE_INCOME,
        description=(
            "Delete an income. IMPORTANT: always call with confirmed=false first and ask the user "
            "to confirm before calling again with confirmed=true."
        ),
        parameters=_object(
            {
                "incomeId": _string("ID of the income to delete"),
                "confirmed": _CONFIRMED,
            },
            required=["incomeId", "confirmed"],
        ),
    ),
    ToolSchema(
        name=ToolName.SEARCH_INCOMES,
        description="Search and filter incomes, newest first.",
        parameters=_object(dict(_SEARCH_FILTERS)),
    ),
    ToolSchema(
        name=ToolName.CREATE_CATEGORY,
        description="Create a new expense category.",
        parameters=_object(
            {
                "name": _string("Category name (e.g., 'Groceries')"),
                "description": _string("Optional description"),
                "color": _string("Optional hex color like '#3b82f6'"),
                "icon": _string("Optional emoji icon"),
                "isCreditCard": _boolean("Whether this category is a credit card (allows installments)"),
            },
            required=["name"],
        ),
    ),
    ToolSchema(
        name=ToolName.UPDATE_CATEGORY,
        description="Update an expense category. Identify it by categoryId or its current categoryName.",
        parameters=_object({
            "categoryId": _string("ID of the category"),
            "categoryName": _string("Current name of the category (alternative to categoryId)"),
            "name": _string("New name"),
            "description": _string("New description"),
            "color": _string("New hex color like '#3b82f6'"),
            "icon": _string("New emoji icon"),
            "isCreditCard": _boolean("Whether this category is a credit card"),
        }),
    ),
    ToolSchema(
        name=ToolName.DELETE_CATEGORY,
        description=(
            "Delete an expense category that no bill uses. IMPORTANT: always call with "
            "confirmed=false first and ask the user to confirm."
        ),
        parameters=_object(
            {
                "categoryId": _string("ID of the category"),
                "categoryName": _string("Name of the category (alternative to categoryId)"),
                "confirmed": _CONFIRMED,
            },
            required=["confirmed"],
        ),
    ),
    ToolSchema(
        name=ToolName.CREATE_INCOME_CATEGORY,
        description="Create a new income category.",
        parameters=_object(
            {
                "name": _string("Category name (e.g., 'Salary')"),
                "description": _string("Optional description"),
                "color": _string("Optional hex color like '#22c55e'"),
                "icon": _string("Optional emoji icon"),
                "isRecurring": _boolean("Whether this income arrives every month"),
            },
            required=["name"],
        ),
    ),
    ToolSchema(
        name=ToolName.LIST_CATEGORIES,
        description="List the organization's expense and income categories with their IDs.",
        parameters=_object({}),
    ),
    ToolSchema(
        name=ToolName.GET_ANALYTICS,
        description=(
            "Get totals and breakdowns for expenses, incomes or the balance. "
            "Use this for any question about amounts, trends or statistics."
        ),
        parameters=_object(
            {
                "period": _PERIOD,
                "groupBy": _string("How to break down the totals", enum=["category", "user", "month"]),
                "type": _string(
                    "What to total (default expenses). balance = incomes minus expenses.",
                    enum=["expenses", "incomes", "balance"],
                ),
            },
            required=["period"],
        ),
    ),
    ToolSchema(
        name=ToolName.SUGGEST_INCOME_SPLIT,
        description=(
            "Suggest assignment percentages proportional to each member's income. "
            "Use this when the user wants to split a bill according to income."
        ),
        parameters=_object({"period": _PERIOD}),
    ),
)

_BY_NAME = {schema.name: schema for schema in TOOL_SCHEMAS}


def get_tool_schemas() -> list[ToolSchema]:
    """The full catalogue, in declaration order."""
    return list(TOOL_SCHEMAS)


def get_tool_schema(name: ToolName) -> ToolSchema:
    return _BY_NAME[name]
