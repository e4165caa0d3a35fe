"""Storage of service desk requests and their comments."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Engine

from pyrhouse.database import NotFoundError, metadata
from pyrhouse.servicedesk_models import (
    Comment,
    FlatRequestResponse,
    Request,
    RequestComment,
    RequestResponse,
    User,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ServiceDeskRepository:
    """Reads and writes service desk tables."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = _now) -> None:
        self._engine = engine
        self._clock = clock
        self._requests = metadata.tables["service_desk_requests"]
        self._comments = metadata.tables["service_desk_request_comments"]
        self._users = metadata.tables["users"]

    def create_request(self, request: Request) -> int:
        """Store ``request`` and return its new id."""
        values: dict[str, Any] = {
            "title": request.title,
            "description": request.description,
            "type": request.type,
            "status": request.status,
            "created_by": request.created_by,
            "priority": request.priority,
        }
        if request.created_by_id is not None:
            values["created_by_id"] = request.created_by_id
        if request.assigned_to is not None:
            values["assigned_to_id"] = request.assigned_to
        if request.location is not None:
            values["location"] = request.location
        if request.created_at is not None:
            values["created_at"] = request.created_at
        if request.updated_at is not None:
            values["updated_at"] = request.updated_at
        with self._engine.begin() as conn:
            result = conn.execute(self._requests.insert().values(**values))
        return result.inserted_primary_key[0]

    def _update(self, request_id: int, values: dict[str, Any]) -> None:
        statement = (
            self._requests.update()
            .where(self._requests.c.id == request_id)
            .values(**values)
        )
        with self._engine.begin() as conn:
            conn.execute(statement)

    def update_request_status(self, request: Request) -> None:
        self._update(request.id, {"status": request.status, "updated_at": request.updated_at})

    def update_request_assigned_to(
        self, request_id: int, assigned_to_id: int, updated_at: datetime
    ) -> None:
        self._update(request_id, {"assigned_to_id": assigned_to_id, "updated_at": updated_at})

    def update_request_priority(self, request_id: int, priority: str) -> None:
        self._update(request_id, {"priority": priority, "updated_at": self._clock()})

    def _request_query(self):
        sdr = self._requests.alias("sdr")
        cu = self._users.alias("cu")
        au = self._users.alias("au")
        query = select(
            sdr.c.id,
            sdr.c.title,
            sdr.c.description,
            sdr.c.status,
            sdr.c.type,
            sdr.c.created_by,
            sdr.c.created_at,
            sdr.c.updated_at,
            sdr.c.priority,
            sdr.c.location,
            sdr.c.created_by_id,
            cu.c.username.label("request_user_username"),
            cu.c.fullname.label("request_user_fullname"),
            sdr.c.assigned_to_id,
            au.c.username.label("request_assigned_to_username"),
            au.c.fullname.label("request_assigned_to_fullname"),
        ).select_from(
            sdr.outerjoin(cu, sdr.c.created_by_id == cu.c.id).outerjoin(
                au, sdr.c.assigned_to_id == au.c.id
            )
        )
        return query, sdr

    @staticmethod
    def _to_response(row) -> RequestResponse:
        flat = FlatRequestResponse(
            id=row.id,
            title=row.title,
            type=row.type or "",
            description=row.description or "",
            status=row.status or "",
            created_by=row.created_by or "",
            created_at=row.created_at,
            updated_at=row.updated_at,
            priority=row.priority or "",
            location=row.location,
            user_id=row.created_by_id,
            user_username=row.request_user_username,
            user_fullname=row.request_user_fullname,
            assigned_to_id=row.assigned_to_id,
            assigned_to_username=row.request_assigned_to_username,
            assigned_to_fullname=row.request_assigned_to_fullname,
        )
        return flat.to_response()

    def get_request(self, request_id: int) -> RequestResponse:
        query, sdr = self._request_query()
        with self._engine.connect() as conn:
            row = conn.execute(query.where(sdr.c.id == request_id)).first()
        if row is None:
            raise NotFoundError("request not found")
        return self._to_response(row)

    def get_requests(
        self, status: str | None, limit: int, offset: int
    ) -> list[RequestResponse]:
        """Return a page of requests ordered by id, optionally with one status."""
        query, sdr = self._request_query()
        if status:
            query = query.where(sdr.c.status == status)
        query = query.order_by(sdr.c.id).limit(limit).offset(offset)
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
        return [self._to_response(row) for row in rows]

    def create_comment(self, comment: RequestComment) -> int:
        """Store ``comment`` and return its new id."""
        values: dict[str, Any] = {
            "request_id": comment.request_id,
            "comment": comment.content,
            "user_id": comment.user_id,
        }
        if comment.created_at is not None:
            values["created_at"] = comment.created_at
        with self._engine.begin() as conn:
            result = conn.execute(self._comments.insert().values(**values))
        return result.inserted_primary_key[0]

    def request_exists(self, request_id: int) -> bool:
        query = select(self._requests.c.id).where(self._requests.c.id == request_id)
        with self._engine.connect() as conn:
            return conn.execute(query).first() is not None

    def _comment_query(self):
        sc = self._comments.alias("sc")
        cu = self._users.alias("cu")
        query = select(
            sc.c.id,
            sc.c.request_id,
            sc.c.comment,
            sc.c.created_at,
            sc.c.user_id,
            cu.c.username.label("comment_user_username"),
            cu.c.fullname.label("comment_user_fullname"),
        ).select_from(sc.outerjoin(cu, sc.c.user_id == cu.c.id))
        return query, sc

    @staticmethod
    def _to_comment(row) -> Comment:
        return Comment(
            id=row.id,
            request_id=row.request_id,
            content=row.comment,
            created_at=row.created_at,
            user=User(
                id=row.user_id,
                username=row.comment_user_username or "",
                fullname=row.comment_user_fullname or "",
            ),
        )

    def get_comment(self, comment_id: int) -> Comment:
        query, sc = self._comment_query()
        with self._engine.connect() as conn:
            row = conn.execute(query.where(sc.c.id == comment_id)).first()
        if row is None:
            raise NotFoundError("comment not found")
        return self._to_comment(row)

    def get_comments(self, request_id: int) -> list[Comment]:
        query, sc = self._comment_query()
        query = query.where(sc.c.request_id == request_id).order_by(sc.c.id)
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
        return [self._to_comment(row) for row in rows]