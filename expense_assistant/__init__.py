"""
Expense Assistant - Source Package

A conversational assistant embedded in a household expense and income
tracker. Users manage bills, incomes and categories, and ask about
their spending, in natural language.

DESIGN PRINCIPLES:
1. The model suggests → the dispatcher validates → storage enforces
2. Destructive actions need an explicit confirmation
3. Every write is scoped to the acting organization
4. Every step must be auditable
5. Storage and LLM provider are swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Assistant Team"
