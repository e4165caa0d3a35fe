"""Storage of user accounts."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, fields
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from pyrhouse.database import (
    ForeignKeyViolationError,
    NotFoundError,
    metadata,
    wrap_integrity_error,
)


@dataclass
class User:
    """A stored account; the password hash is only read for a single user."""

    id: int
    username: str
    fullname: str | None = None
    role: str = "user"
    points: int = 0
    active: bool = True
    password_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "fullname": self.fullname,
            "role": self.role,
            "points": self.points,
            "active": self.active,
        }


@dataclass
class NewUser:
    """An account about to be created."""

    username: str
    fullname: str | None = None
    role: str = "user"
    points: int = 0
    active: bool = True


@dataclass
class UserChanges:
    """Fields of an account to change; None leaves a field as it is."""

    password_hash: str | None = None
    role: str | None = None
    points: int | None = None
    fullname: str | None = None
    username: str | None = None
    active: bool | None = None

    def _values(self) -> dict[str, Any]:
        values = {field.name: getattr(self, field.name) for field in fields(self)}
        return {key: value for key, value in values.items() if value is not None}


class UserRepository:
    """Reads and writes the users table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._users = metadata.tables["users"]

    def persist_user(self, user: NewUser, password_hash: bytes | str) -> int:
        """Store a new account and return its id."""
        hashed = password_hash.decode() if isinstance(password_hash, bytes) else password_hash
        t = self._users
        statement = t.insert().values(
            {
                t.c.password_hash: hashed,
                t.c.username: user.username,
                t.c.fullname: user.fullname,
                t.c.role: user.role,
                t.c.points: user.points,
                t.c.active: user.active,
            }
        )
        with self._engine.begin() as conn:
            result = conn.execute(statement)
        return result.inserted_primary_key[0]

    def get_users(self) -> list[User]:
        t = self._users
        query = select(t.c.id, t.c.username, t.c.fullname, t.c.role, t.c.points, t.c.active)
        with self._engine.connect() as conn:
            rows = conn.execute(query.order_by(t.c.id)).all()
        return [
            User(
                id=row.id,
                username=row.username,
                fullname=row.fullname,
                role=row.role,
                points=row.points,
                active=bool(row.active),
            )
            for row in rows
        ]

    def get_user(self, user_id: int) -> User:
        t = self._users
        query = select(
            t.c.id,
            t.c.username,
            t.c.fullname,
            t.c.password_hash,
            t.c.role,
            t.c.points,
            t.c.active,
        ).where(t.c.id == user_id)
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            raise NotFoundError(f"no user found with id: {user_id}")
        user = User(
            id=row.id,
            username=row.username,
            fullname=row.fullname,
            role=row.role,
            points=row.points,
            active=bool(row.active),
        )
        user.password_hash = row.password_hash
        return user

    def set_user_active(self, user_id: int, active: bool) -> None:
        statement = self._users.update().where(self._users.c.id == user_id).values(active=active)
        with self._engine.begin() as conn:
            conn.execute(statement)

    def is_username_unique(self, username: str) -> bool:
        query = select(func.count()).select_from(self._users).where(
            self._users.c.username == username
        )
        with self._engine.connect() as conn:
            return conn.execute(query).scalar_one() == 0

    def add_user_points(self, user_id: int, points: int) -> None:
        t = self._users
        statement = t.update().where(t.c.id == user_id).values(points=t.c.points + points)
        with self._engine.begin() as conn:
            conn.execute(statement)

    def update_user(self, user_id: int, changes: UserChanges) -> None:
        values = changes._values()
        if not values:
            raise ValueError("no fields to update")
        statement = self._users.update().where(self._users.c.id == user_id).values(**values)
        with self._engine.begin() as conn:
            conn.execute(statement)

    def delete_user(self, user_id: int) -> None:
        """Delete an account; one still linked to transfers cannot be removed."""
        statement = self._users.delete().where(self._users.c.id == user_id)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(statement)
        except IntegrityError as exc:
            wrapped = wrap_integrity_error(
                "nie można usunąć użytkownika, ponieważ ma przypisane transfery", exc
            )
            if isinstance(wrapped, ForeignKeyViolationError):
                raise wrapped from exc
            raise
        if result.rowcount == 0:
            raise NotFoundError(f"nie znaleziono użytkownika o id: {user_id}")

    def users_exist(self, user_ids: Iterable[int]) -> bool:
        """Report whether every id in ``user_ids`` belongs to a stored account."""
        ids = list(user_ids)
        query = select(self._users.c.id).where(self._users.c.id.in_(ids))
        with self._engine.connect() as conn:
            found = conn.execute(query).all()
        return len(found) == len(ids)