"""
Turn Orchestrator for the Expense Assistant

This module ties together all the components and defines the
end-to-end flow of one chat turn:

    Validating → Loading → Generating → ExecutingTools → FollowUp
    → Persisting → Done            (or Failed)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the model before the safety gate has passed it
- The user message is persisted before the model answers
- Every tool call the model requests is executed, even after a sibling fails
- Exactly one follow-up call, carrying all tool results together
- A failed follow-up never loses the side effects already committed
- The stream always ends, with `done` or `error`

Validating and Loading run in the request handler, so authorization and
missing conversations are reported before any streaming starts. The rest
of the turn runs as a producer task writing to an EventChannel.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID

import structlog

from expense_assistant.audit import AuditLogger
from expense_assistant.config import AssistantSettings, Settings, get_settings
from expense_assistant.models.conversation import (
    Conversation,
    Message,
    Role,
    ToolCallRecord,
)
from expense_assistant.prompts import PromptContext, build_system_prompt
from expense_assistant.queries import AnalyticsEngine
from expense_assistant.safety import RiskLevel, validate
from expense_assistant.services.llm import (
    CompletionProvider,
    LLMMessage,
    ProviderError,
    ToolResultBlock,
)
from expense_assistant.services.storage import (
    ConversationStorageInterface,
    FinanceStorageInterface,
)
from expense_assistant.streaming import (
    DoneEvent,
    ErrorEvent,
    EventChannel,
    SafetyBlockResponse,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
)
from expense_assistant.tools import ToolDispatcher, UnknownToolError, get_tool_schemas


logger = structlog.get_logger(__name__)

DEFAULT_ACKNOWLEDGEMENT = "I've completed the requested action."
NO_RESPONSE_MESSAGE = "I'm sorry, I couldn't generate a response. Please try again."
FOLLOW_UP_ERROR = "Failed to process tool results"
TURN_ERROR = "An error occurred processing your request"


class TurnState(str, Enum):
    VALIDATING = "validating"
    LOADING = "loading"
    GENERATING = "generating"
    EXECUTING_TOOLS = "executing_tools"
    FOLLOW_UP = "follow_up"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class AuthorizationError(Exception):
    """The request carries no authenticated user or organization."""
    pass


class ConversationNotFoundError(Exception):
    """The conversation doesn't exist or belongs to someone else."""
    pass


@dataclass
class PreparedTurn:
    """A validated turn with its conversation and history loaded."""
    user_id: str
    organization_id: str
    message: str
    conversation: Conversation
    history: list[Message]


@dataclass
class TurnContext:
    """Turn-local state; discarded once the assistant message is persisted."""
    conversation_id: UUID
    state: TurnState = TurnState.GENERATING
    text_parts: list[str] = field(default_factory=list)
    tool_calls: list[ToolCallRecord] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


def parse_conversation_id(conversation_id: str) -> UUID:
    try:
        return UUID(str(conversation_id))
    except ValueError:
        raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")


def _history_message(message: Message) -> LLMMessage:
    if message.role == Role.ASSISTANT:
        return LLMMessage.assistant_text(message.content)
    return LLMMessage.user_text(message.content)


class TurnOrchestrator:
    """
    Runs chat turns and the conversation operations around them.

    Collaborators are injectable; tests pass in-memory storage and a
    scripted provider.
    """

    def __init__(
        self,
        finance_storage: FinanceStorageInterface,
        conversation_storage: ConversationStorageInterface,
        provider: CompletionProvider,
        dispatcher: Optional[ToolDispatcher] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AssistantSettings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self._finance = finance_storage
        self._conversations = conversation_storage
        self._provider = provider
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or AssistantSettings()
        self._clock = clock
        self._dispatcher = dispatcher or ToolDispatcher(
            finance_storage,
            audit_logger=self._audit,
            settings=self._settings,
            clock=clock,
        )
        self._analytics = AnalyticsEngine(finance_storage)

    @property
    def settings(self) -> AssistantSettings:
        return self._settings

    # =========================================================================
    # VALIDATING + LOADING
    # =========================================================================

    async def prepare_turn(
        self,
        user_id: Optional[str],
        organization_id: Optional[str],
        message: str,
        conversation_id: Optional[str] = None,
    ) -> Union[SafetyBlockResponse, PreparedTurn]:
        """
        Validate the input and load (or create) the conversation.

        Returns:
            SafetyBlockResponse if the safety gate refused the message,
            otherwise the prepared turn

        Raises:
            AuthorizationError: If user or organization is missing
            ConversationNotFoundError: If conversation_id is not owned by the user
        """
        if not user_id or not organization_id:
            raise AuthorizationError("Unauthorized")

        # Validating
        result = validate(message, max_length=self._settings.max_message_length)
        if not result.is_valid:
            if result.risk_level != RiskLevel.NONE:
                await self._audit.log_suspicious_activity(
                    user_id=user_id,
                    message=message,
                    risk_level=result.risk_level.value,
                    reason=result.reason or "",
                )
            return SafetyBlockResponse(message=result.reason or "")

        # Loading
        if conversation_id:
            conversation = await self._conversations.get_conversation(
                parse_conversation_id(conversation_id), user_id, organization_id
            )
            if conversation is None:
                raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
            history = await self._conversations.list_messages(
                conversation.id, limit=self._settings.history_limit
            )
        else:
            conversation = await self._conversations.create_conversation(Conversation(
                user_id=user_id,
                organization_id=organization_id,
                title=message[:self._settings.conversation_title_length],
            ))
            history = []
            logger.info("conversation_created", conversation_id=str(conversation.id))

        return PreparedTurn(
            user_id=user_id,
            organization_id=organization_id,
            message=message,
            conversation=conversation,
            history=history,
        )

    # =========================================================================
    # GENERATING → DONE (producer)
    # =========================================================================

    async def run_turn(self, turn: PreparedTurn, channel: EventChannel) -> TurnContext:
        """
        Produce the turn's events into the channel.

        Never raises: any failure becomes a terminal `error` event, and
        the channel is always finished.
        """
        context = TurnContext(conversation_id=turn.conversation.id)
        try:
            await self._generate(turn, context, channel)
        except Exception as e:
            failed_in = context.state
            context.state = TurnState.FAILED
            logger.exception("turn_failed", conversation_id=str(context.conversation_id))
            await self._audit.log_error(
                error_type="turn_failed",
                error_message=str(e),
                details={"state": failed_in.value},
                correlation_id=context.conversation_id,
            )
            await channel.send(ErrorEvent(error=TURN_ERROR))
        finally:
            await channel.finish()
        return context

    async def _generate(
        self,
        turn: PreparedTurn,
        context: TurnContext,
        channel: EventChannel,
    ) -> None:
        conversation_id = turn.conversation.id

        context.state = TurnState.GENERATING
        await self._conversations.append_message(Message(
            conversation_id=conversation_id,
            role=Role.USER,
            content=turn.message,
        ))

        system_prompt = build_system_prompt(await self._prompt_context(turn))
        tools = get_tool_schemas()
        messages = [_history_message(m) for m in turn.history]
        messages.append(LLMMessage.user_text(turn.message))

        try:
            first = await self._provider.complete(system_prompt, messages, tools)
        except ProviderError as e:
            await self._audit.log_provider_error("generate", str(e), conversation_id)
            raise

        for block in first.text_blocks:
            await self._emit_text(block.text, context, channel)

        if first.tool_uses:
            context.state = TurnState.EXECUTING_TOOLS
            results = await self._execute_tools(turn, context, channel, first.tool_uses)

            context.state = TurnState.FOLLOW_UP
            messages.append(LLMMessage(role="assistant", content=first.blocks))
            messages.append(LLMMessage(role="user", content=results))
            try:
                follow_up = await self._provider.complete(system_prompt, messages, tools)
            except Exception as e:
                logger.warning("follow_up_failed", error=str(e))
                await self._audit.log_provider_error("follow_up", str(e), conversation_id)
                await channel.send(ErrorEvent(error=FOLLOW_UP_ERROR))
            else:
                if follow_up.tool_uses:
                    logger.warning(
                        "follow_up_tool_calls_ignored",
                        tools=[u.name for u in follow_up.tool_uses],
                    )
                for block in follow_up.text_blocks:
                    await self._emit_text(block.text, context, channel)

        context.state = TurnState.PERSISTING
        content = context.text
        if not content:
            succeeded = any(call.succeeded for call in context.tool_calls)
            content = DEFAULT_ACKNOWLEDGEMENT if succeeded else NO_RESPONSE_MESSAGE
            await channel.send(TextEvent(content=content))

        await self._conversations.append_message(Message(
            conversation_id=conversation_id,
            role=Role.ASSISTANT,
            content=content,
            tool_calls=context.tool_calls or None,
        ))
        await self._conversations.touch_conversation(conversation_id)
        await self._audit.log_turn_completed(
            conversation_id, turn.user_id, turn.organization_id, len(context.tool_calls)
        )

        context.state = TurnState.DONE
        await channel.send(DoneEvent(conversation_id=str(conversation_id)))

    async def _emit_text(self, text: str, context: TurnContext, channel: EventChannel) -> None:
        if not text:
            return
        context.text_parts.append(text)
        await channel.send(TextEvent(content=text))

    async def _execute_tools(self, turn, context, channel, tool_uses) -> list[ToolResultBlock]:
        """Run every requested tool in order; failures become failed results."""
        resolver = self._dispatcher.new_resolver(turn.organization_id)
        results = []
        for use in tool_uses:
            await channel.send(ToolStartEvent(tool=use.name))
            try:
                result = await self._dispatcher.execute(
                    use.name,
                    use.input,
                    turn.user_id,
                    turn.organization_id,
                    resolver=resolver,
                    correlation_id=turn.conversation.id,
                )
            except UnknownToolError as e:
                result = {"success": False, "error": str(e)}
            except Exception as e:
                logger.exception("tool_execution_failed", tool=use.name)
                result = {"success": False, "error": f"Tool {use.name} failed: {e}"}

            context.tool_calls.append(ToolCallRecord(tool=use.name, input=use.input, result=result))
            await channel.send(ToolResultEvent(tool=use.name, result=result))
            results.append(ToolResultBlock(tool_use_id=use.id, name=use.name, content=result))
        return results

    async def _prompt_context(self, turn: PreparedTurn) -> PromptContext:
        today = self._clock()
        org = turn.organization_id
        members = await self._finance.list_members(org)
        summary = await self._analytics.current_month_summary(org, today)
        user_name = next((m.name for m in members if m.user_id == turn.user_id), turn.user_id)
        return PromptContext(
            categories=await self._finance.list_categories(org),
            income_categories=await self._finance.list_income_categories(org),
            current_month_total=summary.total,
            bill_count=summary.bill_count,
            member_names=[m.name for m in members],
            user_name=user_name,
            current_date=today,
        )

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    async def list_conversations(self, user_id: str, organization_id: str) -> list[dict]:
        """Conversations of the acting user, most recently updated first."""
        conversations = await self._conversations.list_conversations(user_id, organization_id)
        return [
            {
                "id": str(c.id),
                "title": c.title,
                "createdAt": c.created_at.isoformat(),
                "updatedAt": c.updated_at.isoformat(),
                "messageCount": await self._conversations.count_messages(c.id),
            }
            for c in conversations
        ]

    async def get_conversation(
        self,
        conversation_id: str,
        user_id: str,
        organization_id: str,
    ) -> dict:
        """
        A conversation with all its messages.

        Raises:
            ConversationNotFoundError: If not owned by the user
        """
        conversation = await self._conversations.get_conversation(
            parse_conversation_id(conversation_id), user_id, organization_id
        )
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        messages = await self._conversations.list_messages(conversation.id)
        return {
            "id": str(conversation.id),
            "title": conversation.title,
            "createdAt": conversation.created_at.isoformat(),
            "updatedAt": conversation.updated_at.isoformat(),
            "messages": [m.to_api_dict() for m in messages],
        }

    async def delete_conversation(
        self,
        conversation_id: str,
        user_id: str,
        organization_id: str,
    ) -> None:
        deleted = await self._conversations.delete_conversation(
            parse_conversation_id(conversation_id), user_id, organization_id
        )
        if not deleted:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        logger.info("conversation_deleted", conversation_id=conversation_id)


def create_app_components(
    settings: Optional[Settings] = None,
    provider: Optional[CompletionProvider] = None,
) -> TurnOrchestrator:
    """
    Factory function to create the orchestrator and its collaborators.

    Args:
        settings: Application settings (defaults to environment)
        provider: LLM provider (defaults to Gemini)

    Returns:
        A TurnOrchestrator wired to the configured storage backend
    """
    settings = settings or get_settings()

    if settings.app.storage_backend == "sheets":
        from expense_assistant.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsConversationStorage,
            GoogleSheetsFinanceStorage,
        )

        client = GoogleSheetsClient()
        finance_storage = GoogleSheetsFinanceStorage(client)
        conversation_storage = GoogleSheetsConversationStorage(client)
        audit_logger = AuditLogger(
            GoogleSheetsAuditStorage(client),
            preview_length=settings.assistant.message_preview_length,
        )
    else:
        from expense_assistant.services.storage import (
            InMemoryConversationStorage,
            InMemoryFinanceStorage,
        )

        finance_storage = InMemoryFinanceStorage()
        conversation_storage = InMemoryConversationStorage()
        audit_logger = AuditLogger(preview_length=settings.assistant.message_preview_length)

    if provider is None:
        from expense_assistant.services.llm.gemini import GeminiProvider
        provider = GeminiProvider(settings.gemini)

    return TurnOrchestrator(
        finance_storage=finance_storage,
        conversation_storage=conversation_storage,
        provider=provider,
        audit_logger=audit_logger,
        settings=settings.assistant,
    )
