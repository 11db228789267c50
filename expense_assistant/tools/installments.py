"""
Installment Expansion

A credit-card purchase paid in N installments is stored as N bills that
share an installment group id:

- labels are "label (i/N)"; a long label is shortened so the suffix fits
  within the 100-character bill label
- installment i is dated i-1 calendar months after the purchase, with the
  day clamped to the end of shorter months (Jan 31 -> Feb 28)
- each amount is total / N rounded DOWN to the cent; the rounding
  remainder goes to the first installment, so the amounts always add up
  to the purchase total exactly
"""

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Optional
from uuid import uuid4

from expense_assistant.models.finance import Assignment, Bill
from expense_assistant.queries.analytics import CENT, shift_months


MIN_INSTALLMENTS = 2
MAX_INSTALLMENTS = 24
MAX_LABEL_LENGTH = 100


def split_amount(total: Decimal, count: int) -> list[Decimal]:
    """Split a total into `count` cent amounts that sum to the total."""
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    amounts = [base] * count
    amounts[0] = total - base * (count - 1)
    return amounts


def expand_installments(
    *,
    organization_id: str,
    user_id: str,
    label: str,
    total: Decimal,
    first_payment_date: date,
    category_id,
    count: int,
    assignments: list[Assignment],
    notes: Optional[str] = None,
    due_date: Optional[date] = None,
) -> list[Bill]:
    """Build the bills of one installment purchase. Nothing is saved here."""
    if not MIN_INSTALLMENTS <= count <= MAX_INSTALLMENTS:
        raise ValueError(
            f"Installments must be between {MIN_INSTALLMENTS} and {MAX_INSTALLMENTS}"
        )

    base_label = label[:MAX_LABEL_LENGTH - len(f" ({count}/{count})")].rstrip()
    group_id = uuid4()
    bills = []
    for index, amount in enumerate(split_amount(total, count)):
        bills.append(Bill(
            organization_id=organization_id,
            user_id=user_id,
            label=f"{base_label} ({index + 1}/{count})",
            amount=amount,
            payment_date=shift_months(first_payment_date, index),
            due_date=shift_months(due_date, index) if due_date else None,
            category_id=category_id,
            notes=notes,
            assignments=[a.model_copy() for a in assignments],
            total_installments=count,
            current_installment=index + 1,
            installment_group_id=group_id,
        ))
    return bills
