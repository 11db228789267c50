"""
Shared fixtures.

Storage is in memory and the LLM is a scripted provider: no test makes
a network call.
"""

from datetime import date
from typing import Union

import pytest

from expense_assistant.audit import AuditLogger
from expense_assistant.config import AssistantSettings
from expense_assistant.models import (
    ExpenseCategory,
    IncomeCategory,
    Member,
)
from expense_assistant.orchestrator import TurnOrchestrator
from expense_assistant.services.llm import (
    CompletionProvider,
    CompletionResponse,
    TextBlock,
    ToolUseBlock,
)
from expense_assistant.services.storage import (
    InMemoryAuditStorage,
    InMemoryConversationStorage,
    InMemoryFinanceStorage,
)
from expense_assistant.tools import ToolDispatcher


ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"
ALICE_ID = "user-alice"
BOB_ID = "user-bob"
TODAY = date(2024, 3, 15)


def text_response(*texts: str) -> CompletionResponse:
    return CompletionResponse(blocks=[TextBlock(text=t) for t in texts])


def tool_response(*calls: tuple[str, dict], text: str = "") -> CompletionResponse:
    blocks = [TextBlock(text=text)] if text else []
    blocks += [
        ToolUseBlock(id=f"call_{i}", name=name, input=args)
        for i, (name, args) in enumerate(calls)
    ]
    return CompletionResponse(blocks=blocks)


class ScriptedProvider(CompletionProvider):
    """Returns queued responses in order; an Exception in the queue is raised."""

    def __init__(self, responses: list[Union[CompletionResponse, Exception]]):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def complete(self, system_prompt, messages, tools):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": list(tools),
        })
        if not self.responses:
            return CompletionResponse()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def finance_storage():
    storage = InMemoryFinanceStorage()
    storage.add_member(Member(user_id=ALICE_ID, organization_id=ORG_ID, name="Alice"))
    storage.add_member(Member(user_id=BOB_ID, organization_id=ORG_ID, name="Bob"))
    storage.add_category(ExpenseCategory(organization_id=ORG_ID, name="Groceries", icon="🛒"))
    storage.add_category(ExpenseCategory(organization_id=ORG_ID, name="Utilities"))
    storage.add_category(ExpenseCategory(
        organization_id=ORG_ID, name="Visa Card", is_credit_card=True
    ))
    storage.add_income_category(IncomeCategory(
        organization_id=ORG_ID, name="Salary", is_recurring=True
    ))
    # Another organization with a same-named category
    storage.add_category(ExpenseCategory(organization_id=OTHER_ORG_ID, name="Groceries"))
    return storage


@pytest.fixture
def conversation_storage():
    return InMemoryConversationStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def settings():
    return AssistantSettings()


@pytest.fixture
def dispatcher(finance_storage, audit_logger, settings):
    return ToolDispatcher(
        finance_storage,
        audit_logger=audit_logger,
        settings=settings,
        clock=lambda: TODAY,
    )


@pytest.fixture
def make_orchestrator(finance_storage, conversation_storage, audit_logger, settings):
    """Build an orchestrator around a scripted provider."""

    def build(*responses) -> tuple[TurnOrchestrator, ScriptedProvider]:
        provider = ScriptedProvider(list(responses))
        orchestrator = TurnOrchestrator(
            finance_storage=finance_storage,
            conversation_storage=conversation_storage,
            provider=provider,
            audit_logger=audit_logger,
            settings=settings,
            clock=lambda: TODAY,
        )
        return orchestrator, provider

    return build
