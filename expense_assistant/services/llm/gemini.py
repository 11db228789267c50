"""
Gemini Completion Provider

Function-calling completions through google-generativeai.

Gemini differences handled here:
- the assistant role is called "model"
- function calls carry no id, so ids are generated per call
- tool results are sent as `function_response` parts
- the parameter schema accepts a subset of JSON schema, with upper-case
  type names
"""

from typing import Any, Optional
from uuid import uuid4

import google.generativeai as genai
import structlog

from expense_assistant.config import GeminiSettings, get_settings
from expense_assistant.services.llm.interface import (
    CompletionProvider,
    CompletionResponse,
    LLMMessage,
    ProviderError,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from expense_assistant.tools.schema import ToolSchema


logger = structlog.get_logger(__name__)

# JSON-schema keys Gemini understands
_SCHEMA_KEYS = ("type", "description", "enum", "items", "properties", "required", "nullable")


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Reduce a JSON schema to the subset Gemini accepts."""
    converted: dict[str, Any] = {}
    for key in _SCHEMA_KEYS:
        if key not in schema:
            continue
        value = schema[key]
        if key == "type":
            value = value.upper()
        elif key == "properties":
            value = {name: to_gemini_schema(prop) for name, prop in value.items()}
        elif key == "items":
            value = to_gemini_schema(value)
        converted[key] = value
    return converted


def to_gemini_declaration(tool: ToolSchema) -> dict[str, Any]:
    declaration = {"name": tool.name.value, "description": tool.description}
    # Gemini rejects OBJECT parameters without properties
    if tool.parameters.get("properties"):
        declaration["parameters"] = to_gemini_schema(tool.parameters)
    return declaration


def to_gemini_contents(messages: list[LLMMessage]) -> list[dict[str, Any]]:
    """Convert provider-neutral history to Gemini `contents`."""
    contents = []
    for message in messages:
        parts = []
        for block in message.content:
            if isinstance(block, TextBlock):
                if block.text:
                    parts.append({"text": block.text})
            elif isinstance(block, ToolUseBlock):
                parts.append({"function_call": {"name": block.name, "args": block.input}})
            elif isinstance(block, ToolResultBlock):
                parts.append({
                    "function_response": {"name": block.name, "response": block.content}
                })
        if parts:
            contents.append({
                "role": "model" if message.role == "assistant" else "user",
                "parts": parts,
            })
    return contents


def parse_response(response) -> CompletionResponse:
    """Extract ordered text and function-call blocks from a Gemini response."""
    candidates = getattr(response, "candidates", None)
    if not candidates:
        raise ProviderError("Gemini returned no candidates")

    blocks = []
    for part in candidates[0].content.parts:
        function_call = getattr(part, "function_call", None)
        if function_call is not None and function_call.name:
            args = type(function_call).to_dict(function_call).get("args") or {}
            blocks.append(ToolUseBlock(
                id=f"call_{uuid4().hex}",
                name=function_call.name,
                input=dict(args),
            ))
        elif getattr(part, "text", ""):
            blocks.append(TextBlock(text=part.text))
    return CompletionResponse(blocks=blocks)


class GeminiProvider(CompletionProvider):
    """CompletionProvider backed by a Gemini model."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        genai.configure(api_key=self._settings.api_key)

    def _model(self, system_prompt: str, tools: list[ToolSchema]) -> genai.GenerativeModel:
        # Built per call: the system prompt changes every turn
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=system_prompt,
            tools=[{"function_declarations": [to_gemini_declaration(t) for t in tools]}],
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    async def complete(
        self,
        system_prompt: str,
        messages: list[LLMMessage],
        tools: list[ToolSchema],
    ) -> CompletionResponse:
        model = self._model(system_prompt, tools)
        try:
            response = await model.generate_content_async(to_gemini_contents(messages))
            return parse_response(response)
        except ProviderError:
            raise
        except Exception as e:
            logger.error("gemini_request_failed", error=str(e))
            raise ProviderError(f"Gemini request failed: {e}") from e
