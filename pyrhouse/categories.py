"""Storage of item categories."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from pyrhouse.database import (
    FOREIGN_KEY_VIOLATION,
    ForeignKeyViolationError,
    NotFoundError,
    UniqueViolationError,
    metadata,
    wrap_integrity_error,
)

_HAS_ITEMS_MESSAGE = "Nie można usunąć kategorii, ponieważ ma przypisane elementy"


@dataclass
class ItemCategory:
    """A kind of equipment kept in the warehouse."""

    name: str
    label: str | None = None
    pyr_id: str | None = None
    type: str | None = None
    id: int | None = None


class CategoryRepository:
    """Reads and writes the ``item_category`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._table = metadata.tables["item_category"]

    def get_categories(self) -> list[ItemCategory]:
        table = self._table
        query = select(
            table.c.id,
            table.c.item_category,
            table.c.category_type,
            table.c.label,
            table.c.pyr_id,
        ).order_by(table.c.id)
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
        return [
            ItemCategory(
                id=row.id,
                name=row.item_category,
                label=row.label,
                pyr_id=row.pyr_id,
                type=row.category_type,
            )
            for row in rows
        ]

    def persist_item_category(self, category: ItemCategory) -> ItemCategory:
        """Insert ``category`` and return a copy carrying its new id."""
        statement = self._table.insert().values(
            item_category=category.name,
            label=category.label,
            pyr_id=category.pyr_id,
            category_type=category.type,
        )
        try:
            with self._engine.begin() as conn:
                result = conn.execute(statement)
        except IntegrityError as exc:
            wrapped = wrap_integrity_error("Zduplikowane PyrID", exc)
            if isinstance(wrapped, UniqueViolationError):
                raise wrapped from exc
            raise
        return dataclasses.replace(category, id=result.inserted_primary_key[0])

    def _count_by_category(self, conn, table_name: str, category_id: Any) -> int:
        table = metadata.tables[table_name]
        query = select(func.count()).select_from(table).where(
            table.c.item_category_id == category_id
        )
        return conn.execute(query).scalar_one()

    def delete_item_category(self, category_id: int | str) -> None:
        """Delete a category that no item or stock entry refers to."""
        with self._engine.begin() as conn:
            stock_count = self._count_by_category(conn, "non_serialized_items", category_id)
            items_count = self._count_by_category(conn, "items", category_id)
            if stock_count > 0 or items_count > 0:
                raise ForeignKeyViolationError(_HAS_ITEMS_MESSAGE, FOREIGN_KEY_VIOLATION)
            try:
                result = conn.execute(
                    self._table.delete().where(self._table.c.id == category_id)
                )
            except IntegrityError as exc:
                wrapped = wrap_integrity_error(_HAS_ITEMS_MESSAGE, exc)
                if isinstance(wrapped, ForeignKeyViolationError):
                    raise wrapped from exc
                raise
            if result.rowcount == 0:
                raise NotFoundError(f"no category found with id: {category_id}")

    def get_category_type(self, category_id: int) -> str | None:
        """Return the category's equipment type, or None if there is no such category."""
        query = select(self._table.c.category_type).where(self._table.c.id == category_id)
        with self._engine.connect() as conn:
            return conn.execute(query).scalar_one_or_none()

    def update_item_category(self, category_id: int, updates: Mapping[str, Any]) -> None:
        """Set the given columns of one category."""
        if not updates:
            raise ValueError("no fields to update")
        unknown = set(updates) - set(self._table.c.keys())
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")
        statement = (
            self._table.update()
            .where(self._table.c.id == category_id)
            .values(**dict(updates))
        )
        with self._engine.begin() as conn:
            result = conn.execute(statement)
        if result.rowcount == 0:
            raise NotFoundError(f"no category found with id: {category_id}")

    def check_pyr_id_uniqueness(self, pyr_id: str, exclude_id: int | None = None) -> bool:
        """Report whether no category other than ``exclude_id`` uses ``pyr_id``."""
        table = self._table
        query = select(func.count()).select_from(table).where(table.c.pyr_id == pyr_id)
        if exclude_id is not None:
            query = query.where(table.c.id != exclude_id)
        with self._engine.connect() as conn:
            return conn.execute(query).scalar_one() == 0