"""Database engine, schema, transactions and constraint errors."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
)
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.pool import StaticPool

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class _ConstraintError(Exception):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class UniqueViolationError(_ConstraintError):
    """A value that must be unique is already taken."""


class ForeignKeyViolationError(_ConstraintError):
    """A row is still referenced, or refers to a missing row."""


class NotFoundError(LookupError):
    """The requested row does not exist."""


metadata = MetaData()

Table(
    "item_category",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("item_category", String, nullable=False),
    Column("label", String),
    Column("pyr_id", String, unique=True),
    Column("category_type", String),
)

Table(
    "locations",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String, nullable=False),
    Column("details", Text),
    Column("pavilion", String),
)

Table(
    "items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("item_serial", String),
    Column("status", String),
    Column("pyr_code", String),
    Column("origin", String),
    Column("item_category_id", Integer, ForeignKey("item_category.id")),
    Column("location_id", Integer, ForeignKey("locations.id")),
)

Table(
    "non_serialized_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("quantity", Integer, nullable=False, default=0),
    Column("origin", String),
    Column("item_category_id", Integer, ForeignKey("item_category.id")),
    Column("location_id", Integer, ForeignKey("locations.id")),
    UniqueConstraint("item_category_id", "location_id", "origin"),
)

Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String, nullable=False, unique=True),
    Column("fullname", String),
    Column("password_hash", String),
    Column("role", String, nullable=False, default="user"),
    Column("points", Integer, nullable=False, default=0),
    Column("active", Boolean, nullable=False, default=True),
)

Table(
    "transfers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("from_location_id", Integer, ForeignKey("locations.id")),
    Column("to_location_id", Integer, ForeignKey("locations.id")),
    Column("status", String),
    Column("transfer_date", DateTime(timezone=True), server_default=func.now()),
    Column("delivery_latitude", Float),
    Column("delivery_longitude", Float),
    Column("delivery_timestamp", DateTime(timezone=True)),
)

Table(
    "transfer_users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("transfer_id", Integer, ForeignKey("transfers.id"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
)

Table(
    "service_desk_requests",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String, nullable=False),
    Column("description", Text),
    Column("type", String),
    Column("status", String),
    Column("created_by", String),
    Column("created_by_id", Integer, ForeignKey("users.id")),
    Column("assigned_to_id", Integer, ForeignKey("users.id")),
    Column("priority", String),
    Column("location", String),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
)

Table(
    "service_desk_request_comments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("request_id", Integer, ForeignKey("service_desk_requests.id"), nullable=False),
    Column("comment", Text, nullable=False),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def connect(url: str) -> Engine:
    """Create an engine for ``url``; ``postgres://`` URLs are accepted too."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    sa_url = make_url(url)
    options: dict = {}
    is_sqlite = sa_url.get_backend_name() == "sqlite"
    if is_sqlite:
        options["connect_args"] = {"check_same_thread": False}
        if sa_url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    engine = create_engine(sa_url, **options)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_schema(engine: Engine) -> None:
    """Create every table that does not exist yet."""
    metadata.create_all(engine)


@contextmanager
def transaction(engine: Engine) -> Iterator[Connection]:
    """Yield a connection in a transaction, committed on success, rolled back on error."""
    with engine.begin() as connection:
        yield connection


def _error_code(error: BaseException) -> str | None:
    candidates = [error, getattr(error, "orig", None)]
    for candidate in candidates:
        if candidate is None:
            continue
        for attribute in ("pgcode", "sqlstate"):
            code = getattr(candidate, attribute, None)
            if code:
                return str(code)
    text = str(getattr(error, "orig", None) or error)
    if "UNIQUE constraint failed" in text:
        return UNIQUE_VIOLATION
    if "FOREIGN KEY constraint failed" in text:
        return FOREIGN_KEY_VIOLATION
    return None


def wrap_integrity_error(message: str, error: BaseException) -> BaseException:
    """Map a driver error to a constraint error carrying ``message``.

    Errors that are neither unique nor foreign-key violations come back unchanged.
    """
    code = _error_code(error)
    if code == UNIQUE_VIOLATION:
        return UniqueViolationError(message, code)
    if code == FOREIGN_KEY_VIOLATION:
        return ForeignKeyViolationError(message, code)
    return error