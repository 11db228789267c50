"""
Financial Record Models

These models define the schemas for the organization-scoped records the
assistant reads and writes: expense categories, income categories,
members, bills and incomes.

Two families live here:
1. Persisted records (ExpenseCategory, Bill, Income, ...) - what storage holds
2. Form schemas (BillInput, IncomeInput, CategoryInput, ...) - the SAME
   validation the manual forms use, so records created through the
   assistant obey identical invariants.

CRITICAL: Validation NEVER silently fixes input. A percentage split that
does not total 100 is rejected, not normalized.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


DEFAULT_CATEGORY_COLOR = "#3b82f6"

# Floating point tolerance when summing assignment percentages
PERCENTAGE_TOLERANCE = Decimal("0.01")

Money = Annotated[
    Decimal,
    Field(gt=0, decimal_places=2, description="Positive amount with at most 2 decimals")
]
Percentage = Annotated[
    Decimal,
    Field(ge=Decimal("0.01"), le=Decimal("100"), decimal_places=2)
]
HexColor = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]


# =============================================================================
# ORGANIZATION MEMBERS
# =============================================================================

class Member(BaseModel):
    """A user belonging to an organization."""

    user_id: str
    organization_id: str
    name: str = Field(..., min_length=1, max_length=100)


class Assignment(BaseModel):
    """Share of a bill or income attributed to one member."""

    user_id: str = Field(..., min_length=1)
    percentage: Percentage


def _check_assignments(assignments: list[Assignment]) -> None:
    """Assignments must be unique per user and total exactly 100%."""
    if not assignments:
        return

    user_ids = [a.user_id for a in assignments]
    if len(set(user_ids)) != len(user_ids):
        raise ValueError("Each user can only be assigned once")

    total = sum((a.percentage for a in assignments), Decimal("0"))
    if abs(total - Decimal("100")) >= PERCENTAGE_TOLERANCE:
        raise ValueError(f"Total percentage must equal 100% (got {total}%)")


# =============================================================================
# CATEGORIES
# =============================================================================

class ExpenseCategory(BaseModel):
    """
    Category for bills.

    Only credit-card categories accept installment purchases.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    organization_id: str
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    color: str = DEFAULT_CATEGORY_COLOR
    icon: Optional[str] = None
    is_credit_card: bool = False


class IncomeCategory(BaseModel):
    """Category for incomes."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    organization_id: str
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    color: str = DEFAULT_CATEGORY_COLOR
    icon: Optional[str] = None
    is_recurring: bool = False


# =============================================================================
# BILLS AND INCOMES
# =============================================================================

class Bill(BaseModel):
    """
    A persisted expense.

    Installment purchases are stored as one Bill per installment sharing
    an installment_group_id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    organization_id: str
    user_id: str = Field(..., description="Member who recorded the bill")
    label: str = Field(..., min_length=1, max_length=100)
    amount: Money
    payment_date: date
    due_date: Optional[date] = None
    category_id: UUID
    notes: Optional[str] = Field(default=None, max_length=1000)
    assignments: list[Assignment] = Field(default_factory=list)

    total_installments: Optional[int] = Field(default=None, ge=2, le=24)
    current_installment: Optional[int] = Field(default=None, ge=1, le=24)
    installment_group_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Income(BaseModel):
    """A persisted income."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    organization_id: str
    user_id: str = Field(..., description="Member who recorded the income")
    label: str = Field(..., min_length=1, max_length=100)
    amount: Money
    income_date: date
    category_id: UUID
    notes: Optional[str] = Field(default=None, max_length=1000)
    assignments: list[Assignment] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# FORM SCHEMAS
# =============================================================================

class BillInput(BaseModel):
    """Validated bill payload, shared by the bill form and the assistant."""
    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(..., min_length=1, max_length=100)
    amount: Money
    payment_date: date
    due_date: Optional[date] = None
    category_id: UUID
    notes: Optional[str] = Field(default=None, max_length=1000)
    assignments: list[Assignment] = Field(default_factory=list)
    total_installments: Optional[int] = Field(default=None, ge=2, le=24)

    @model_validator(mode='after')
    def validate_assignments(self) -> 'BillInput':
        _check_assignments(self.assignments)
        return self


class IncomeInput(BaseModel):
    """Validated income payload, shared by the income form and the assistant."""
    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(..., min_length=1, max_length=100)
    amount: Money
    income_date: date
    category_id: UUID
    notes: Optional[str] = Field(default=None, max_length=1000)
    assignments: list[Assignment] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_assignments(self) -> 'IncomeInput':
        _check_assignments(self.assignments)
        return self


class CategoryInput(BaseModel):
    """Validated expense category payload."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    color: HexColor = DEFAULT_CATEGORY_COLOR
    icon: Optional[str] = None
    is_credit_card: bool = False


class IncomeCategoryInput(BaseModel):
    """Validated income category payload."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    color: HexColor = DEFAULT_CATEGORY_COLOR
    icon: Optional[str] = None
    is_recurring: bool = False
