"""System prompt construction."""

from expense_assistant.prompts.system_prompt import PromptContext, build_system_prompt

__all__ = ["PromptContext", "build_system_prompt"]
