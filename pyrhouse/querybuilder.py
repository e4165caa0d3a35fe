"""Collects filter conditions and maps them to qualified column names."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class QueryBuilder:
    """A set of ``key == value`` filters, one value per key."""

    def __init__(self) -> None:
        self._conditions: dict[str, Any] = {}

    def add_condition(self, key: str, value: Any) -> None:
        """Filter on ``key``; a later value for the same key replaces the earlier one."""
        self._conditions[key] = value

    def build_conditions(self, aliases: Mapping[str, str] | None = None) -> dict[str, Any]:
        """Return the filters, renaming keys found in ``aliases``."""
        aliases = aliases or {}
        return {aliases.get(key, key): value for key, value in self._conditions.items()}

    def has_conditions(self) -> bool:
        return bool(self._conditions)