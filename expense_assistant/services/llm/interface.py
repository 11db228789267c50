"""
LLM Completion Interface

The orchestrator talks to the model through this provider-neutral
contract: a system prompt, a message history and the tool catalogue go
in; an ordered list of content blocks (text or tool-use requests) comes
out.

Tool results are sent back as ToolResultBlocks keyed by the id of the
ToolUseBlock that requested them.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from expense_assistant.tools.schema import ToolSchema


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool call requested by the model."""
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """The outcome of a ToolUseBlock, sent back to the model."""
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    name: str
    content: dict[str, Any]


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


class LLMMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: list[ContentBlock]

    @classmethod
    def user_text(cls, text: str) -> "LLMMessage":
        return cls(role="user", content=[TextBlock(text=text)])

    @classmethod
    def assistant_text(cls, text: str) -> "LLMMessage":
        return cls(role="assistant", content=[TextBlock(text=text)])


class CompletionResponse(BaseModel):
    """Ordered content blocks of one model response."""

    blocks: list[ContentBlock] = Field(default_factory=list)

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [b for b in self.blocks if isinstance(b, TextBlock)]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]


class ProviderError(Exception):
    """The LLM call failed (network, quota, blocked response, ...)."""
    pass


class CompletionProvider(ABC):
    """A hosted model with function calling."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: list[LLMMessage],
        tools: list[ToolSchema],
    ) -> CompletionResponse:
        """
        Run one completion.

        Args:
            system_prompt: Instruction block for this turn
            messages: History, oldest first
            tools: Catalogue the model may call

        Returns:
            The response's content blocks, in order

        Raises:
            ProviderError: If the call fails for any reason
        """
        pass
