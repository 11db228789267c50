"""
Name Resolution

The model refers to categories and members by NAME. The resolver turns
those names into the organization's records, case-insensitively.

One resolver lives for one turn. Lookups are cached, so resolving the
same name twice in a turn always yields the same record; records created
during the turn are added to the cache so a later call in the same turn
can use them.

Unknown names raise ResolutionError whose message lists the valid
alternatives. The dispatcher hands that message back to the model so it
can ask the user or correct itself.
"""

from typing import Optional

from expense_assistant.models.finance import ExpenseCategory, IncomeCategory, Member
from expense_assistant.services.storage import FinanceStorageInterface


class ResolutionError(Exception):
    """A name did not match any record of the organization."""
    pass


def _key(name: str) -> str:
    return name.strip().casefold()


def _listing(names: list[str]) -> str:
    return ", ".join(names) if names else "none"


class NameResolver:
    """Per-turn, organization-scoped name lookup."""

    def __init__(self, storage: FinanceStorageInterface, organization_id: str):
        self._storage = storage
        self._organization_id = organization_id
        self._categories: Optional[dict[str, ExpenseCategory]] = None
        self._income_categories: Optional[dict[str, IncomeCategory]] = None
        self._members: Optional[dict[str, Member]] = None

    # ------------------------------------------------------------------
    # Cache loading
    # ------------------------------------------------------------------

    async def _category_index(self) -> dict[str, ExpenseCategory]:
        if self._categories is None:
            categories = await self._storage.list_categories(self._organization_id)
            self._categories = {_key(c.name): c for c in categories}
        return self._categories

    async def _income_category_index(self) -> dict[str, IncomeCategory]:
        if self._income_categories is None:
            categories = await self._storage.list_income_categories(self._organization_id)
            self._income_categories = {_key(c.name): c for c in categories}
        return self._income_categories

    async def _member_index(self) -> dict[str, Member]:
        if self._members is None:
            members = await self._storage.list_members(self._organization_id)
            self._members = {_key(m.name): m for m in members}
        return self._members

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def category(self, name: str) -> ExpenseCategory:
        index = await self._category_index()
        found = index.get(_key(name))
        if found is None:
            available = _listing([c.name for c in index.values()])
            raise ResolutionError(
                f'Category "{name}" doesn\'t exist. Available categories: {available}. '
                "Would you like me to create this category?"
            )
        return found

    async def income_category(self, name: str) -> IncomeCategory:
        index = await self._income_category_index()
        found = index.get(_key(name))
        if found is None:
            available = _listing([c.name for c in index.values()])
            raise ResolutionError(
                f'Income category "{name}" doesn\'t exist. Available income categories: '
                f"{available}. Would you like me to create this category?"
            )
        return found

    async def member(self, name: str) -> Member:
        index = await self._member_index()
        found = index.get(_key(name))
        if found is None:
            available = _listing([m.name for m in index.values()])
            raise ResolutionError(f'User "{name}" not found. Available users: {available}')
        return found

    async def member_name(self, user_id: str) -> str:
        """Display name for a user id (the id itself if unknown)."""
        for member in (await self._member_index()).values():
            if member.user_id == user_id:
                return member.name
        return user_id

    async def category_name(self, category_id) -> str:
        for category in (await self._category_index()).values():
            if category.id == category_id:
                return category.name
        return "Unknown"

    async def income_category_name(self, category_id) -> str:
        for category in (await self._income_category_index()).values():
            if category.id == category_id:
                return category.name
        return "Unknown"

    # ------------------------------------------------------------------
    # Cache maintenance after mutations in the same turn
    # ------------------------------------------------------------------

    async def remember_category(self, category: ExpenseCategory) -> None:
        index = await self._category_index()
        for key, existing in list(index.items()):
            if existing.id == category.id:
                del index[key]
        index[_key(category.name)] = category

    async def forget_category(self, category: ExpenseCategory) -> None:
        index = await self._category_index()
        index.pop(_key(category.name), None)

    async def remember_income_category(self, category: IncomeCategory) -> None:
        index = await self._income_category_index()
        index[_key(category.name)] = category
