"""Query and analytics package."""

from expense_assistant.queries.analytics import (
    AnalyticsEngine,
    AnalyticsError,
    AnalyticsType,
    GroupBy,
    MonthSummary,
    Period,
    period_range,
    shift_months,
)

__all__ = [
    "AnalyticsEngine",
    "AnalyticsError",
    "AnalyticsType",
    "GroupBy",
    "MonthSummary",
    "Period",
    "period_range",
    "shift_months",
]
