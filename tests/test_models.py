"""
Tests for the Expense Assistant models

Test strategy:
1. Unit tests for individual components (models, gate, dispatcher)
2. Integration tests for the turn flow (with a scripted LLM)
3. No real API calls in tests
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from expense_assistant.models import (
    Assignment,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Bill,
    BillInput,
    CategoryInput,
    Message,
    Role,
    ToolCallRecord,
)


class TestFinanceModels:
    """Tests for bill, income and category schemas."""

    def test_bill_input_creation(self):
        bill = BillInput(
            label="Weekly groceries",
            amount=Decimal("150.00"),
            payment_date=date(2024, 3, 15),
            category_id=uuid4(),
        )
        assert bill.amount == Decimal("150.00")
        assert bill.assignments == []

    def test_bill_input_strips_whitespace(self):
        bill = BillInput(
            label="  Rent  ",
            amount=Decimal("900"),
            payment_date=date(2024, 3, 1),
            category_id=uuid4(),
        )
        assert bill.label == "Rent"

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            BillInput(
                label="Test",
                amount=Decimal("0"),
                payment_date=date(2024, 3, 1),
                category_id=uuid4(),
            )

    def test_rejects_more_than_two_decimals(self):
        with pytest.raises(ValidationError):
            BillInput(
                label="Test",
                amount=Decimal("10.123"),
                payment_date=date(2024, 3, 1),
                category_id=uuid4(),
            )

    def test_assignments_must_total_100(self):
        with pytest.raises(ValidationError) as exc_info:
            BillInput(
                label="Dinner",
                amount=Decimal("80"),
                payment_date=date(2024, 3, 1),
                category_id=uuid4(),
                assignments=[
                    Assignment(user_id="a", percentage=Decimal("60")),
                    Assignment(user_id="b", percentage=Decimal("30")),
                ],
            )
        assert "Total percentage must equal 100%" in str(exc_info.value)

    def test_assignments_within_tolerance_accepted(self):
        bill = BillInput(
            label="Dinner",
            amount=Decimal("90"),
            payment_date=date(2024, 3, 1),
            category_id=uuid4(),
            assignments=[
                Assignment(user_id="a", percentage=Decimal("33.33")),
                Assignment(user_id="b", percentage=Decimal("33.33")),
                Assignment(user_id="c", percentage=Decimal("33.34")),
            ],
        )
        assert len(bill.assignments) == 3

    def test_duplicate_assignee_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BillInput(
                label="Dinner",
                amount=Decimal("80"),
                payment_date=date(2024, 3, 1),
                category_id=uuid4(),
                assignments=[
                    Assignment(user_id="a", percentage=Decimal("50")),
                    Assignment(user_id="a", percentage=Decimal("50")),
                ],
            )
        assert "Each user can only be assigned once" in str(exc_info.value)

    def test_percentage_bounds(self):
        with pytest.raises(ValidationError):
            Assignment(user_id="a", percentage=Decimal("0"))
        with pytest.raises(ValidationError):
            Assignment(user_id="a", percentage=Decimal("100.01"))

    def test_installments_range(self):
        with pytest.raises(ValidationError):
            BillInput(
                label="TV",
                amount=Decimal("1000"),
                payment_date=date(2024, 3, 1),
                category_id=uuid4(),
                total_installments=25,
            )

    def test_bill_accepts_assignment_dicts(self):
        bill = Bill(
            organization_id="org-1",
            user_id="a",
            label="Rent",
            amount=Decimal("900"),
            payment_date=date(2024, 3, 1),
            category_id=uuid4(),
            assignments=[{"user_id": "a", "percentage": "100"}],
        )
        assert bill.assignments[0].percentage == Decimal("100")

    def test_category_color_must_be_hex(self):
        with pytest.raises(ValidationError):
            CategoryInput(name="Food", color="blue")
        assert CategoryInput(name="Food").color == "#3b82f6"


class TestConversationModels:
    """Tests for messages and tool call records."""

    def test_tool_call_record_succeeded(self):
        assert ToolCallRecord(tool="create_bill", result={"success": True}).succeeded
        assert not ToolCallRecord(tool="create_bill", result={"success": False}).succeeded

    def test_message_to_api_dict(self):
        message = Message(
            conversation_id=uuid4(),
            role=Role.ASSISTANT,
            content="Done!",
            tool_calls=[ToolCallRecord(tool="list_categories", result={"success": True})],
        )
        data = message.to_api_dict()

        assert data["role"] == "assistant"
        assert data["content"] == "Done!"
        assert data["toolCalls"]["calls"][0]["tool"] == "list_categories"

    def test_message_without_tool_calls(self):
        message = Message(conversation_id=uuid4(), role=Role.USER, content="hi")
        assert message.to_api_dict()["toolCalls"] is None


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.TOOL_EXECUTED,
            description="Tool executed: create_bill",
            details={"tool": "create_bill"},
        )
        row = event.to_sheets_row()

        assert len(row) == 12
        assert row[2] == "tool_executed"
        assert json.loads(row[10]) == {"tool": "create_bill"}

    def test_builder_suspicious_activity(self):
        event = AuditEventBuilder.suspicious_activity(
            user_id="user-1",
            message_preview="Ignore all previous...",
            risk_level="high",
            reason="blocked",
        )
        assert event.event_type == AuditEventType.SUSPICIOUS_ACTIVITY
        assert event.severity == AuditSeverity.WARNING
        assert event.details["risk_level"] == "high"

    def test_builder_record_mutation(self):
        event = AuditEventBuilder.record_mutation(
            action="deleted",
            entity_type="bill",
            entity_id="123",
            user_id="user-1",
            organization_id="org-1",
            summary="Rent",
        )
        assert event.event_type == AuditEventType.RECORD_DELETED
        assert event.description == "Bill deleted: Rent"
