"""
Chat Stream Consumer

Client side of the chat API. Posts a message, reads the NDJSON response
line by line as it arrives and folds each event into a ChatSession view
model, so a UI can re-render after every fragment.

Folding rules:
- text:        patch the in-progress assistant message (create it on the
               first fragment)
- tool_start:  remember the running tool
- tool_result: attach to the in-progress assistant message
- error:       append an assistant error message
- done:        record the conversation id and close the turn
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

import httpx
import structlog

from expense_assistant.streaming.events import (
    DoneEvent,
    ErrorEvent,
    SafetyBlockResponse,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
    decode_line,
)


logger = structlog.get_logger(__name__)

CHAT_PATH = "/api/ai/chat"
CONVERSATIONS_PATH = "/api/ai/conversations"


class ChatClientError(Exception):
    """The chat API rejected a request or the connection failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ChatMessage:
    role: str
    content: str = ""
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False
    in_progress: bool = False


@dataclass
class ChatSession:
    """What the chat page shows: the active conversation and its messages."""

    conversation_id: Optional[str] = None
    messages: list[ChatMessage] = field(default_factory=list)
    running_tool: Optional[str] = None

    def _current_reply(self) -> ChatMessage:
        if self.messages and self.messages[-1].in_progress:
            return self.messages[-1]
        reply = ChatMessage(role="assistant", in_progress=True)
        self.messages.append(reply)
        return reply

    def apply(self, event: StreamEvent) -> None:
        """Fold one stream event into the view."""
        if isinstance(event, TextEvent):
            self._current_reply().content += event.content
        elif isinstance(event, ToolStartEvent):
            self.running_tool = event.tool
        elif isinstance(event, ToolResultEvent):
            self._current_reply().tool_calls.append({"tool": event.tool, "result": event.result})
            self.running_tool = None
        elif isinstance(event, ErrorEvent):
            self.messages.append(ChatMessage(role="assistant", content=event.error, is_error=True))
        elif isinstance(event, DoneEvent):
            self.conversation_id = event.conversation_id
            self.finish()
        elif isinstance(event, SafetyBlockResponse):
            self.messages.append(ChatMessage(role="assistant", content=event.message))

    def finish(self) -> None:
        self.running_tool = None
        for message in self.messages:
            message.in_progress = False

    def reset(self) -> None:
        self.conversation_id = None
        self.messages = []
        self.running_tool = None


def _message_from_api(data: dict) -> ChatMessage:
    tool_calls = (data.get("toolCalls") or {}).get("calls") or []
    return ChatMessage(
        role=data["role"],
        content=data.get("content", ""),
        tool_calls=[{"tool": c.get("tool"), "result": c.get("result", {})} for c in tool_calls],
    )


class ChatStreamConsumer:
    """
    HTTP client for the assistant API.

    The session headers identify the acting user and organization, as
    forwarded by the upstream authentication provider.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        organization_id: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 120.0,
    ):
        headers = {"X-User-Id": user_id, "X-Organization-Id": organization_id}
        if client is None:
            client = httpx.Client(base_url=base_url, timeout=timeout)
        client.headers.update(headers)
        self._client = client

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        if response.status_code == 401:
            raise ChatClientError("Not signed in", response.status_code)
        if response.status_code == 404:
            raise ChatClientError("Conversation not found", response.status_code)
        raise ChatClientError(
            f"Request failed with status {response.status_code}", response.status_code
        )

    # Conversations

    def list_conversations(self) -> list[dict]:
        try:
            response = self._client.get(CONVERSATIONS_PATH)
        except httpx.HTTPError as e:
            raise ChatClientError(f"Connection failed: {e}") from e
        self._raise_for_status(response)
        return response.json()

    def select_conversation(self, session: ChatSession, conversation_id: str) -> None:
        """Load a persisted conversation into the session."""
        try:
            response = self._client.get(f"{CONVERSATIONS_PATH}/{conversation_id}")
        except httpx.HTTPError as e:
            raise ChatClientError(f"Connection failed: {e}") from e
        self._raise_for_status(response)
        data = response.json()
        session.conversation_id = data["id"]
        session.messages = [_message_from_api(m) for m in data.get("messages", [])]
        session.running_tool = None

    def delete_conversation(self, session: ChatSession, conversation_id: str) -> None:
        try:
            response = self._client.delete(f"{CONVERSATIONS_PATH}/{conversation_id}")
        except httpx.HTTPError as e:
            raise ChatClientError(f"Connection failed: {e}") from e
        self._raise_for_status(response)
        if session.conversation_id == conversation_id:
            session.reset()

    @staticmethod
    def new_conversation(session: ChatSession) -> None:
        session.reset()

    # Chat

    def stream(self, session: ChatSession, message: str) -> Iterator[StreamEvent]:
        """
        Send a message and yield events as they are folded into the session.

        The user message is shown immediately; malformed lines are skipped.
        """
        session.messages.append(ChatMessage(role="user", content=message))
        payload: dict[str, Any] = {"message": message}
        if session.conversation_id:
            payload["conversationId"] = session.conversation_id

        try:
            with self._client.stream("POST", CHAT_PATH, json=payload) as response:
                if not response.is_success:
                    response.read()
                    self._raise_for_status(response)

                for line in response.iter_lines():
                    event = decode_line(line)
                    if event is None:
                        if line.strip():
                            logger.warning("stream_line_skipped", line=line[:100])
                        continue
                    session.apply(event)
                    yield event
        except httpx.HTTPError as e:
            session.apply(ErrorEvent(error="Connection lost. Please try again."))
            raise ChatClientError(f"Connection failed: {e}") from e
        finally:
            session.finish()

    def send(
        self,
        session: ChatSession,
        message: str,
        on_event: Optional[Callable[[ChatSession, StreamEvent], None]] = None,
    ) -> ChatSession:
        """Send a message and consume the whole response."""
        for event in self.stream(session, message):
            if on_event is not None:
                on_event(session, event)
        return session
