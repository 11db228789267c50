"""
Safety Gate

Every user message passes through `validate` before anything else runs:
no conversation is loaded, nothing is persisted and no model is called
for a message the gate rejects.

RULES (checked in this order):
1. Empty or overlong messages are rejected with low risk
2. Jailbreak / instruction-override attempts are rejected with high risk
3. Harmful or clearly off-topic requests are rejected with medium risk

The rejection reason IS the user-facing text. Callers show it verbatim
and never invent their own wording, so refusals are consistent and never
reveal which rule fired.

The gate is pure: it does no I/O and does not log. Callers audit every
rejection through AuditLogger.log_suspicious_activity.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


MAX_MESSAGE_LENGTH = 2000

# Messages shorter than this always count as on-topic (greetings, "yes", ...)
SHORT_MESSAGE_LENGTH = 20

JAILBREAK_REDIRECT = (
    "I can only help with expense tracking. "
    "How can I assist you with your bills or categories?"
)
OFF_TOPIC_REDIRECT = (
    "I'm your expense tracking assistant. I can help you with bills, "
    "incomes, categories, and spending analytics. What would you like to do?"
)
EMPTY_MESSAGE_REASON = "Please type a message."
TOO_LONG_REASON = "Message too long. Please keep messages under {limit} characters."


class RiskLevel(str, Enum):
    """How suspicious a message is."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ValidationResult(BaseModel):
    """Outcome of the safety gate for one message. Never persisted."""

    is_valid: bool
    reason: Optional[str] = Field(
        default=None,
        description="User-facing text explaining the rejection"
    )
    risk_level: RiskLevel = RiskLevel.NONE


# =============================================================================
# PATTERNS
# =============================================================================

_I = re.IGNORECASE

JAILBREAK_PATTERNS = [
    # Direct instruction override attempts
    re.compile(r"\b(ignore|forget|disregard)\s+(all\s+)?(the\s+|your\s+)?(previous|above|prior|earlier)\s+(instructions?|prompts?|rules?)", _I),
    re.compile(r"\boverride\s+(your\s+)?(instructions?|programming|rules?|restrictions?)", _I),

    # Role reassignment
    re.compile(r"\bpretend\s+(that\s+)?(you('re|\s+are)\s+)?(not\s+)?(an?\s+)?(ai|assistant|chatbot|human)\b", _I),
    re.compile(r"\bact\s+as\s+(if\s+you|an?\s+|my\s+|though\b)", _I),
    re.compile(r"\brole\s*-?\s*play\s+as\b", _I),
    re.compile(r"\byou\s+are\s+now\s+(a|an|my|in|no\s+longer)\b", _I),
    re.compile(r"\bfrom\s+now\s+on\s+(you('re|\s+are|\s+will)|act)\b", _I),

    # DAN and similar jailbreaks
    re.compile(r"\bdan\b.*\bmode\b", _I),
    re.compile(r"\bjailbreak", _I),
    re.compile(r"\bdeveloper\s+mode\b", _I),
    re.compile(r"\bdo\s+anything\s+now\b", _I),

    # System prompt extraction
    re.compile(r"\bwhat('s|\s+is|\s+are)\s+your\s+(system\s+)?(prompt|instructions?|rules?)", _I),
    re.compile(r"\b(show|reveal|repeat|print)\s+(me\s+)?(your\s+|the\s+)?(system\s+)?(prompt|instructions?)\b", _I),

    # Encoding/obfuscation attacks
    re.compile(r"\bbase64\b", _I),
    re.compile(r"\bdecode\s+this\b", _I),
    re.compile(r"\btranslate\s+from\s+(hex|binary|morse)\b", _I),
]

OFF_TOPIC_PATTERNS = [
    # Harmful content
    re.compile(r"\bhow\s+to\s+(make|build|create)\s+(a\s+)?(bomb|weapon|explosive|gun)", _I),
    re.compile(r"\bhow\s+to\s+(hack|exploit|attack)\b", _I),
    re.compile(r"\bhow\s+to\s+(hurt|harm|kill)\b", _I),

    # Creative writing unrelated to the domain
    re.compile(r"\bwrite\s+(me\s+)?(a\s+|an\s+)?(story|poem|essay|song|code)\b(?!\s*(about|for|to\s+track)\s+(my\s+)?(expenses?|bills?|budget|money|spending|income))", _I),
    re.compile(r"\btell\s+me\s+(a\s+)?joke\b", _I),
    re.compile(r"\bsing\s+(me\s+)?(a\s+)?song\b", _I),

    # General knowledge queries
    re.compile(r"\bwho\s+(is|was)\s+(the\s+)?(president|king|queen|ceo|prime\s+minister)\b", _I),
    re.compile(r"\bwhat\s+is\s+the\s+(capital|population)\s+of\b", _I),
    re.compile(r"\bexplain\s+(quantum|relativity|philosophy)\b", _I),
]

# English and Spanish vocabulary of the expense domain
ON_TOPIC_KEYWORDS = (
    "gasto", "expense", "bill",
    "categoria", "categoría", "category", "categories",
    "pago", "payment", "paid", "pagado", "pagar",
    "cuota", "installment",
    "ingreso", "income", "salary", "sueldo", "salario",
    "mes", "month", "mensual",
    "total", "suma", "sum", "amount", "monto",
    "crear", "create", "add", "agregar", "nuevo", "new",
    "borrar", "delete", "eliminar", "remove",
    "editar", "edit", "modificar", "update", "cambiar",
    "mostrar", "show", "ver", "list", "listar",
    "analítica", "analytics", "reporte", "report", "estadística",
    "presupuesto", "budget", "spend", "spent",
    "dinero", "money", "plata", "efectivo", "cash",
    "tarjeta", "card", "crédito", "credit", "débito", "debit",
    "factura", "invoice", "recibo", "receipt",
    "usuario", "user", "miembro", "member",
    "asignar", "assign", "dividir", "split",
    "hola", "hello", "hi", "hey", "gracias", "thanks",
    "ayuda", "help", "qué puedes", "what can you",
)


# =============================================================================
# GATE
# =============================================================================

def validate(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> ValidationResult:
    """
    Validate a raw user message against policy.

    Args:
        message: The message exactly as the user typed it
        max_length: Longest accepted message

    Returns:
        ValidationResult; when rejected, `reason` is the text to show the user
    """
    if not message or not message.strip():
        return ValidationResult(
            is_valid=False,
            reason=EMPTY_MESSAGE_REASON,
            risk_level=RiskLevel.LOW,
        )

    if len(message) > max_length:
        return ValidationResult(
            is_valid=False,
            reason=TOO_LONG_REASON.format(limit=max_length),
            risk_level=RiskLevel.LOW,
        )

    for pattern in JAILBREAK_PATTERNS:
        if pattern.search(message):
            return ValidationResult(
                is_valid=False,
                reason=JAILBREAK_REDIRECT,
                risk_level=RiskLevel.HIGH,
            )

    for pattern in OFF_TOPIC_PATTERNS:
        if pattern.search(message):
            return ValidationResult(
                is_valid=False,
                reason=OFF_TOPIC_REDIRECT,
                risk_level=RiskLevel.MEDIUM,
            )

    return ValidationResult(is_valid=True, risk_level=RiskLevel.NONE)


def is_likely_on_topic(message: str) -> bool:
    """
    Advisory keyword check for soft routing. Never blocks a request.

    Short messages (greetings, confirmations) always pass.
    """
    if len(message) < SHORT_MESSAGE_LENGTH:
        return True

    lowered = message.lower()
    return any(keyword in lowered for keyword in ON_TOPIC_KEYWORDS)
