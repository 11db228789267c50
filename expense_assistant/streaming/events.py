"""
Stream Events

Typed events carried from the turn orchestrator to the client, one JSON
object per line (NDJSON), tagged by `type`:

    {"type": "text", "content": "..."}
    {"type": "tool_start", "tool": "create_bill"}
    {"type": "tool_result", "tool": "create_bill", "result": {...}}
    {"type": "error", "error": "..."}
    {"type": "done", "conversationId": "..."}

`safety_block` is not a stream event: it is the complete, non-streamed
response returned when the safety gate rejects the input.
"""

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


NDJSON_MEDIA_TYPE = "application/x-ndjson"


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TextEvent(_Event):
    type: Literal["text"] = "text"
    content: str


class ToolStartEvent(_Event):
    type: Literal["tool_start"] = "tool_start"
    tool: str


class ToolResultEvent(_Event):
    type: Literal["tool_result"] = "tool_result"
    tool: str
    result: dict[str, Any]


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    error: str


class DoneEvent(_Event):
    type: Literal["done"] = "done"
    conversation_id: str = Field(alias="conversationId")


class SafetyBlockResponse(_Event):
    type: Literal["safety_block"] = "safety_block"
    message: str


StreamEvent = Annotated[
    Union[TextEvent, ToolStartEvent, ToolResultEvent, ErrorEvent, DoneEvent, SafetyBlockResponse],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(StreamEvent)


def encode_event(event: _Event) -> str:
    """Serialize one event as a single NDJSON line."""
    return json.dumps(event.model_dump(by_alias=True, mode="json")) + "\n"


def decode_line(line: str) -> Optional[StreamEvent]:
    """
    Parse one NDJSON line.

    Returns:
        The event, or None for blank, malformed or unknown lines
    """
    line = line.strip()
    if not line:
        return None
    try:
        return _event_adapter.validate_json(line)
    except ValidationError:
        return None
