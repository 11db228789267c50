"""External service integrations (storage, LLM)."""
