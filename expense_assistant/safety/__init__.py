"""Input safety gate."""

from expense_assistant.safety.gate import (
    JAILBREAK_REDIRECT,
    OFF_TOPIC_REDIRECT,
    RiskLevel,
    ValidationResult,
    is_likely_on_topic,
    validate,
)

__all__ = [
    "JAILBREAK_REDIRECT",
    "OFF_TOPIC_REDIRECT",
    "RiskLevel",
    "ValidationResult",
    "is_likely_on_topic",
    "validate",
]
