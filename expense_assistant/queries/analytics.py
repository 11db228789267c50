"""
Analytics Engine

Analytics are DETERMINISTIC. The model never computes a number itself:
it calls a tool, this engine computes the figures from stored records,
and the model only phrases them.

The same period and grouping semantics back the `get_analytics` tool
and the totals in the system prompt, so the figures the assistant
quotes always agree with each other:

- A period covers whole calendar months.
- `last_6_months` is the current month plus the five before it
  (grouped by month it yields a zero-filled six-month trend).
- Per-user figures are assignment-weighted; a record without
  assignments counts 100% to the member who recorded it.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from expense_assistant.models.finance import Bill, Income
from expense_assistant.services.storage import FinanceStorageInterface


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class Period(str, Enum):
    CURRENT_MONTH = "current_month"
    LAST_MONTH = "last_month"
    LAST_6_MONTHS = "last_6_months"
    YEAR_TO_DATE = "year_to_date"


class GroupBy(str, Enum):
    CATEGORY = "category"
    USER = "user"
    MONTH = "month"


class AnalyticsType(str, Enum):
    EXPENSES = "expenses"
    INCOMES = "incomes"
    BALANCE = "balance"


class AnalyticsError(Exception):
    """The requested combination of options is not supported."""
    pass


@dataclass(frozen=True)
class MonthSummary:
    """Expense total and bill count of one calendar month."""
    total: Decimal
    bill_count: int


# =============================================================================
# DATE ARITHMETIC
# =============================================================================

def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def shift_months(day: date, months: int) -> date:
    """Move by whole months, clamping the day to the target month's end."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last_day))


def period_range(period: Period, today: date) -> tuple[date, date]:
    """First and last day (inclusive) covered by a period."""
    if period == Period.CURRENT_MONTH:
        return month_start(today), month_end(today)
    if period == Period.LAST_MONTH:
        previous = shift_months(month_start(today), -1)
        return previous, month_end(previous)
    if period == Period.LAST_6_MONTHS:
        return shift_months(month_start(today), -5), month_end(today)
    if period == Period.YEAR_TO_DATE:
        return date(today.year, 1, 1), month_end(today)
    raise AnalyticsError(f"Unknown period: {period}")


def months_between(start: date, end: date) -> list[date]:
    """First day of every month from start to end, inclusive."""
    months = []
    current = month_start(start)
    while current <= end:
        months.append(current)
        current = shift_months(current, 1)
    return months


# =============================================================================
# AGGREGATION HELPERS
# =============================================================================

Record = Union[Bill, Income]


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def as_number(amount: Decimal) -> float:
    """JSON-friendly amount rounded to the cent."""
    return float(to_cents(amount))


def weighted_shares(record: Record) -> list[tuple[str, Decimal]]:
    """Split a record's amount between its assignees."""
    if not record.assignments:
        return [(record.user_id, record.amount)]
    return [
        (a.user_id, record.amount * a.percentage / HUNDRED)
        for a in record.assignments
    ]


def record_date(record: Record) -> date:
    return record.payment_date if isinstance(record, Bill) else record.income_date


def _sum(records: Iterable[Record]) -> Decimal:
    return sum((r.amount for r in records), Decimal("0"))


def _breakdown(totals: dict[str, Decimal], grand_total: Decimal) -> list[dict]:
    rows = []
    for name, amount in totals.items():
        share = (amount / grand_total * HUNDRED) if grand_total else Decimal("0")
        rows.append({
            "name": name,
            "amount": as_number(amount),
            "percentage": float(share.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)),
        })
    rows.sort(key=lambda row: row["amount"], reverse=True)
    return rows


class AnalyticsEngine:
    """
    Computes organization-scoped analytics from stored bills and incomes.

    GUARANTEES:
    - Only returns figures derived from stored records
    - Never estimates
    - Zero totals (not errors) when a period has no data
    """

    def __init__(self, storage: FinanceStorageInterface):
        self._storage = storage

    async def current_month_summary(self, organization_id: str, today: date) -> MonthSummary:
        start, end = period_range(Period.CURRENT_MONTH, today)
        bills = await self._storage.list_bills(organization_id, date_from=start, date_to=end)
        return MonthSummary(total=to_cents(_sum(bills)), bill_count=len(bills))

    async def analytics(
        self,
        organization_id: str,
        period: Period,
        today: date,
        group_by: Optional[GroupBy] = None,
        analytics_type: AnalyticsType = AnalyticsType.EXPENSES,
    ) -> dict:
        """
        Totals for a period, optionally broken down.

        Raises:
            AnalyticsError: For a balance grouped by category (expense and
                income categories are different sets)
        """
        if analytics_type == AnalyticsType.BALANCE and group_by == GroupBy.CATEGORY:
            raise AnalyticsError(
                "Balance cannot be grouped by category. "
                "Group by user or month, or ask for expenses or incomes."
            )

        start, end = period_range(period, today)
        bills: list[Bill] = []
        incomes: list[Income] = []
        if analytics_type in (AnalyticsType.EXPENSES, AnalyticsType.BALANCE):
            bills = await self._storage.list_bills(organization_id, date_from=start, date_to=end)
        if analytics_type in (AnalyticsType.INCOMES, AnalyticsType.BALANCE):
            incomes = await self._storage.list_incomes(organization_id, date_from=start, date_to=end)

        total_expenses = _sum(bills)
        total_incomes = _sum(incomes)

        result = {
            "period": period.value,
            "periodLabel": f"{start.strftime('%b %d, %Y')} - {end.strftime('%b %d, %Y')}",
            "type": analytics_type.value,
        }
        if analytics_type == AnalyticsType.EXPENSES:
            result.update(total=as_number(total_expenses), count=len(bills))
        elif analytics_type == AnalyticsType.INCOMES:
            result.update(total=as_number(total_incomes), count=len(incomes))
        else:
            result.update(
                totalIncomes=as_number(total_incomes),
                totalExpenses=as_number(total_expenses),
                total=as_number(total_incomes - total_expenses),
                count=len(bills) + len(incomes),
            )

        if group_by is not None:
            result["groupBy"] = group_by.value
            result["breakdown"] = await self._group(
                organization_id, group_by, analytics_type, bills, incomes, start, end
            )
        return result

    async def _group(
        self,
        organization_id: str,
        group_by: GroupBy,
        analytics_type: AnalyticsType,
        bills: list[Bill],
        incomes: list[Income],
        start: date,
        end: date,
    ) -> list[dict]:
        # Expenses count negative in a balance
        signed: list[tuple[Record, Decimal]] = (
            [(b, Decimal("-1") if analytics_type == AnalyticsType.BALANCE else Decimal("1")) for b in bills]
            + [(i, Decimal("1")) for i in incomes]
        )

        if group_by == GroupBy.MONTH:
            totals = {m: Decimal("0") for m in months_between(start, end)}
            for record, sign in signed:
                totals[month_start(record_date(record))] += sign * record.amount
            return [
                {"name": m.strftime("%b %Y"), "amount": as_number(total)}
                for m, total in totals.items()
            ]

        if group_by == GroupBy.CATEGORY:
            if analytics_type == AnalyticsType.INCOMES:
                categories = await self._storage.list_income_categories(organization_id)
            else:
                categories = await self._storage.list_categories(organization_id)
            names = {c.id: c.name for c in categories}
            totals: dict[str, Decimal] = {}
            for record, _ in signed:
                name = names.get(record.category_id, "Unknown")
                totals[name] = totals.get(name, Decimal("0")) + record.amount
            return _breakdown(totals, sum(totals.values(), Decimal("0")))

        # GroupBy.USER
        members = {m.user_id: m.name for m in await self._storage.list_members(organization_id)}
        totals = {}
        for record, sign in signed:
            for user_id, share in weighted_shares(record):
                name = members.get(user_id, "Unknown")
                totals[name] = totals.get(name, Decimal("0")) + sign * share
        if analytics_type == AnalyticsType.BALANCE:
            return [
                {"name": name, "amount": as_number(amount)}
                for name, amount in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
            ]
        return _breakdown(totals, sum(totals.values(), Decimal("0")))

    async def income_split(
        self,
        organization_id: str,
        period: Period,
        today: date,
    ) -> dict:
        """
        Suggest assignment percentages proportional to each member's income.

        share_i = income_i / total_income * 100, rounded to 2 decimals, with
        the rounding remainder given to the largest earner so the
        suggestion always totals exactly 100.

        Raises:
            AnalyticsError: If nobody recorded income in the period
        """
        start, end = period_range(period, today)
        incomes = await self._storage.list_incomes(organization_id, date_from=start, date_to=end)

        per_user: dict[str, Decimal] = {}
        for income in incomes:
            for user_id, share in weighted_shares(income):
                per_user[user_id] = per_user.get(user_id, Decimal("0")) + share

        total = sum(per_user.values(), Decimal("0"))
        if total <= 0:
            raise AnalyticsError(
                "No incomes recorded in this period, so there is nothing to split by."
            )

        percentages = {
            user_id: (amount / total * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
            for user_id, amount in per_user.items()
        }
        largest = max(per_user, key=lambda user_id: per_user[user_id])
        percentages[largest] += HUNDRED - sum(percentages.values(), Decimal("0"))

        members = {m.user_id: m.name for m in await self._storage.list_members(organization_id)}
        split = [
            {
                "userName": members.get(user_id, "Unknown"),
                "income": as_number(per_user[user_id]),
                "percentage": float(percentages[user_id]),
            }
            for user_id in sorted(per_user, key=lambda u: per_user[u], reverse=True)
            if percentages[user_id] > 0
        ]
        return {
            "period": period.value,
            "totalIncome": as_number(total),
            "split": split,
        }
