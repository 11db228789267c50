"""LLM provider package."""

from expense_assistant.services.llm.interface import (
    CompletionProvider,
    CompletionResponse,
    ContentBlock,
    LLMMessage,
    ProviderError,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "CompletionProvider",
    "CompletionResponse",
    "ContentBlock",
    "LLMMessage",
    "ProviderError",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
]
