"""
Conversation Models

A Conversation belongs to exactly one (user, organization) pair.
Messages are immutable once persisted. Tool invocations of a turn are
embedded in the single assistant Message that closes the turn, never
stored as messages of their own.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Author of a message."""
    USER = "user"
    ASSISTANT = "assistant"


class ToolCallRecord(BaseModel):
    """
    One tool invocation within a turn, including failed ones.

    Records keep the order in which the model requested the calls.
    """

    tool: str
    input: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any]
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def succeeded(self) -> bool:
        return bool(self.result.get("success"))


class Conversation(BaseModel):
    """Chat conversation owned by one user within one organization."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    organization_id: str
    title: str = Field(
        ...,
        max_length=255,
        description="Derived from the first message; never changes"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Message(BaseModel):
    """A persisted chat message."""

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    role: Role
    content: str
    tool_calls: Optional[list[ToolCallRecord]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_api_dict(self) -> dict:
        """Shape used by the conversation endpoints and the stream consumer."""
        return {
            "id": str(self.id),
            "role": self.role.value,
            "content": self.content,
            "toolCalls": (
                {"calls": [call.model_dump(mode="json") for call in self.tool_calls]}
                if self.tool_calls
                else None
            ),
            "createdAt": self.created_at.isoformat(),
        }
