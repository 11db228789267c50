"""HTTP surface of the expense assistant."""

from expense_assistant.api.server import create_app

__all__ = ["create_app"]
