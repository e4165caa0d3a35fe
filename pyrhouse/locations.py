"""Storage of warehouse locations and the equipment kept at them."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from pyrhouse.categories import ItemCategory
from pyrhouse.database import (
    NotFoundError,
    UniqueViolationError,
    metadata,
    wrap_integrity_error,
)


def _optional_text(data: Mapping[str, Any], name: str) -> str | None:
    value = data.get(name)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _category_dict(category: ItemCategory | None) -> dict[str, Any] | None:
    if category is None:
        return None
    return {"id": category.id, "name": category.name, "label": category.label}


def _category_from_row(row) -> ItemCategory | None:
    if row.item_category_id is None:
        return None
    return ItemCategory(
        id=row.item_category_id, name=row.item_category or "", label=row.label
    )


@dataclass
class Location:
    """A place where equipment is kept."""

    name: str = ""
    details: str | None = None
    pavilion: str | None = None
    id: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Location:
        if not isinstance(data, Mapping):
            raise ValueError("location must be an object")
        name = data.get("name", "")
        if not isinstance(name, str):
            raise ValueError("name must be a string")
        return cls(
            name=name,
            details=_optional_text(data, "details"),
            pavilion=_optional_text(data, "pavilion"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "details": self.details,
            "pavilion": self.pavilion,
        }


@dataclass
class LocationAsset:
    """A serialized item kept at a location."""

    id: int
    serial: str | None = None
    status: str | None = None
    pyr_code: str | None = None
    origin: str | None = None
    category: ItemCategory | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "serial": self.serial,
            "status": self.status,
            "pyr_code": self.pyr_code,
            "origin": self.origin,
            "category": _category_dict(self.category),
        }


@dataclass
class LocationStockItem:
    """A counted, non-serialized stock entry at a location."""

    id: int
    quantity: int
    category: ItemCategory | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "quantity": self.quantity,
            "category": _category_dict(self.category),
        }


@dataclass
class LocationEquipment:
    """Everything kept at one location."""

    assets: list[LocationAsset] = field(default_factory=list)
    stock_items: list[LocationStockItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "assets": [asset.to_dict() for asset in self.assets],
            "stock_items": [item.to_dict() for item in self.stock_items],
        }


@dataclass
class UpdateLocationRequest:
    """Fields of a location to change; None leaves a field as it is."""

    name: str | None = None
    details: str | None = None
    pavilion: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> UpdateLocationRequest:
        if not isinstance(data, Mapping):
            raise ValueError("request body must be an object")
        return cls(
            name=_optional_text(data, "name"),
            details=_optional_text(data, "details"),
            pavilion=_optional_text(data, "pavilion"),
        )

    def is_empty(self) -> bool:
        return self.name is None and self.details is None and self.pavilion is None

    def _values(self) -> dict[str, str]:
        return {
            key: value
            for key, value in (
                ("name", self.name),
                ("details", self.details),
                ("pavilion", self.pavilion),
            )
            if value is not None
        }


class LocationRepository:
    """Reads and writes locations and lists what is kept at them."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._locations = metadata.tables["locations"]
        self._items = metadata.tables["items"]
        self._stock = metadata.tables["non_serialized_items"]
        self._categories = metadata.tables["item_category"]

    def _location_query(self):
        table = self._locations
        return select(table.c.id, table.c.name, table.c.details, table.c.pavilion)

    @staticmethod
    def _to_location(row) -> Location:
        return Location(id=row.id, name=row.name, details=row.details, pavilion=row.pavilion)

    def get_locations(self) -> list[Location]:
        query = self._location_query().order_by(self._locations.c.id)
        with self._engine.connect() as conn:
            return [self._to_location(row) for row in conn.execute(query)]

    def get_location_details(self, location_id: int | str) -> Location:
        query = self._location_query().where(self._locations.c.id == location_id)
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            raise NotFoundError(f"no location found with id: {location_id}")
        return self._to_location(row)

    def persist_location(self, location: Location) -> Location:
        """Insert ``location`` and return a copy carrying its new id."""
        statement = self._locations.insert().values(
            name=location.name, details=location.details, pavilion=location.pavilion
        )
        try:
            with self._engine.begin() as conn:
                result = conn.execute(statement)
        except IntegrityError as exc:
            wrapped = wrap_integrity_error("Duplicate location", exc)
            if isinstance(wrapped, UniqueViolationError):
                raise wrapped from exc
            raise
        return dataclasses.replace(location, id=result.inserted_primary_key[0])

    def update_location(
        self, location_id: int | str, request: UpdateLocationRequest
    ) -> Location:
        """Apply ``request`` to one location and return it as stored."""
        if request.is_empty():
            raise ValueError("no fields to update")
        table = self._locations
        statement = table.update().where(table.c.id == location_id).values(**request._values())
        with self._engine.begin() as conn:
            result = conn.execute(statement)
            if result.rowcount == 0:
                raise NotFoundError(f"no location found with id: {location_id}")
            row = conn.execute(self._location_query().where(table.c.id == location_id)).one()
        return self._to_location(row)

    def remove_location(self, location_id: int | str) -> None:
        """Delete a location; one that still holds equipment cannot be removed."""
        statement = self._locations.delete().where(self._locations.c.id == location_id)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(statement)
        except IntegrityError as exc:
            wrapped = wrap_integrity_error("location still holds equipment", exc)
            if wrapped is exc:
                raise
            raise wrapped from exc
        if result.rowcount == 0:
            raise NotFoundError(f"no location found with id: {location_id}")

    def _asset_query(self):
        i = self._items.alias("i")
        c = self._categories.alias("c")
        query = select(
            i.c.id,
            i.c.item_serial,
            i.c.status,
            i.c.pyr_code,
            i.c.origin,
            i.c.item_category_id,
            c.c.item_category,
            c.c.label,
        ).select_from(i.outerjoin(c, i.c.item_category_id == c.c.id))
        return query, i, c

    @staticmethod
    def _to_asset(row) -> LocationAsset:
        return LocationAsset(
            id=row.id,
            serial=row.item_serial,
            status=row.status,
            pyr_code=row.pyr_code,
            origin=row.origin,
            category=_category_from_row(row),
        )

    def _assets_at(self, conn, location_id: int | str) -> list[LocationAsset]:
        query, i, _ = self._asset_query()
        query = query.where(i.c.location_id == location_id).order_by(i.c.id)
        return [self._to_asset(row) for row in conn.execute(query)]

    def _stock_at(self, conn, location_id: int | str) -> list[LocationStockItem]:
        s = self._stock.alias("i")
        c = self._categories.alias("c")
        query = (
            select(s.c.id, s.c.quantity, s.c.item_category_id, c.c.item_category, c.c.label)
            .select_from(s.outerjoin(c, s.c.item_category_id == c.c.id))
            .where(s.c.location_id == location_id)
            .order_by(s.c.id)
        )
        return [
            LocationStockItem(id=row.id, quantity=row.quantity, category=_category_from_row(row))
            for row in conn.execute(query)
        ]

    def get_location_equipment(self, location_id: int | str) -> LocationEquipment:
        with self._engine.connect() as conn:
            return LocationEquipment(
                assets=self._assets_at(conn, location_id),
                stock_items=self._stock_at(conn, location_id),
            )

    def search_location_items(self, location_id: int | str, query: str) -> list[LocationAsset]:
        """Find assets at a location whose serial, category, label or code contains ``query``."""
        pattern = f"%{query}%"
        statement, i, c = self._asset_query()
        statement = (
            statement.where(i.c.location_id == location_id)
            .where(
                or_(
                    i.c.item_serial.ilike(pattern),
                    c.c.item_category.ilike(pattern),
                    c.c.label.ilike(pattern),
                    i.c.pyr_code.ilike(pattern),
                )
            )
            .order_by(i.c.id)
        )
        with self._engine.connect() as conn:
            return [self._to_asset(row) for row in conn.execute(statement)]