"""
Streaming Package

NDJSON events between the turn orchestrator and the chat client.
"""

from expense_assistant.streaming.channel import EventChannel
from expense_assistant.streaming.consumer import (
    ChatClientError,
    ChatMessage,
    ChatSession,
    ChatStreamConsumer,
)
from expense_assistant.streaming.events import (
    NDJSON_MEDIA_TYPE,
    DoneEvent,
    ErrorEvent,
    SafetyBlockResponse,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
    decode_line,
    encode_event,
)

__all__ = [
    "ChatClientError",
    "ChatMessage",
    "ChatSession",
    "ChatStreamConsumer",
    "DoneEvent",
    "ErrorEvent",
    "EventChannel",
    "NDJSON_MEDIA_TYPE",
    "SafetyBlockResponse",
    "StreamEvent",
    "TextEvent",
    "ToolResultEvent",
    "ToolStartEvent",
    "decode_line",
    "encode_event",
]
