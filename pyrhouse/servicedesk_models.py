"""Data carried by the service desk: requests, comments and their JSON forms."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Status(str, Enum):
    """Where a request stands in its life cycle."""

    NEW = "new"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RequestKind(str, Enum):
    """The kinds of request a user may file."""

    HARDWARE_ISSUE = "hardware_issue"
    REPLACEMENT = "replacement"
    TECHNICAL_PROBLEM = "technical_problem"
    OTHER = "other"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _optional_int(data: Mapping[str, Any], name: str) -> int | None:
    value = data.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    return value


@dataclass
class RequestType:
    """A kind of request as offered to users."""

    type: str
    name: str
    description: str
    category: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.type,
            "name": self.name,
            "description": self.description,
            "category": self.category,
        }


@dataclass
class Request:
    """A service desk request as filed and stored."""

    title: str = ""
    description: str = ""
    type: str = ""
    status: str = ""
    created_by: str = ""
    priority: str = ""
    id: int = 0
    assigned_to: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    location: str | None = None
    created_by_id: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Request:
        """Build a request from a decoded JSON body."""
        if not isinstance(data, Mapping):
            raise ValueError("request body must be an object")
        texts: dict[str, str] = {}
        for name in ("title", "description", "type", "status", "created_by", "priority"):
            value = data.get(name)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string")
            texts[name] = value
        location = data.get("location")
        if location is not None and not isinstance(location, str):
            raise ValueError("location must be a string")
        return cls(
            **texts,
            assigned_to=_optional_int(data, "assigned_to"),
            location=location,
            created_by_id=_optional_int(data, "created_by_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id:
            data["id"] = self.id
        data.update(
            title=self.title,
            description=self.description,
            type=self.type,
            status=self.status,
            created_by=self.created_by,
        )
        if self.assigned_to is not None:
            data["assigned_to"] = self.assigned_to
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        data["priority"] = self.priority
        if self.location is not None:
            data["location"] = self.location
        if self.created_by_id is not None:
            data["created_by_id"] = self.created_by_id
        return data


@dataclass
class RequestComment:
    """A comment about to be stored."""

    request_id: int
    content: str
    user_id: int
    created_at: datetime | None = None
    id: int = 0


@dataclass
class User:
    id: int
    username: str
    fullname: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username, "fullname": self.fullname}


@dataclass
class Comment:
    """A stored comment together with its author."""

    id: int
    request_id: int
    content: str
    created_at: datetime | None
    user: User | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
            "user": self.user.to_dict() if self.user is not None else None,
        }


@dataclass
class RequestResponse:
    """A request as shown to clients, with its creator and assignee."""

    id: int
    title: str
    description: str
    status: str
    created_by: str
    type: str
    created_at: datetime | None
    updated_at: datetime | None
    priority: str
    location: str | None = None
    created_by_user: User | None = None
    assigned_to_user: User | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id:
            data["id"] = self.id
        data.update(
            title=self.title,
            description=self.description,
            status=self.status,
            created_by=self.created_by,
            type=self.type,
            created_at=_iso(self.created_at),
            updated_at=_iso(self.updated_at),
            priority=self.priority,
        )
        if self.location is not None:
            data["location"] = self.location
        if self.created_by_user is not None:
            data["created_by_user"] = self.created_by_user.to_dict()
        if self.assigned_to_user is not None:
            data["assigned_to_user"] = self.assigned_to_user.to_dict()
        return data


@dataclass
class FlatRequestResponse:
    """One joined database row describing a request."""

    id: int
    title: str
    type: str
    description: str
    status: str
    created_by: str
    created_at: datetime | None
    updated_at: datetime | None
    priority: str
    location: str | None = None
    user_id: int | None = None
    user_username: str | None = None
    user_fullname: str | None = None
    assigned_to_id: int | None = None
    assigned_to_username: str | None = None
    assigned_to_fullname: str | None = None

    def to_response(self) -> RequestResponse:
        """Fold the joined user columns into nested users."""
        creator = None
        if self.user_id is not None:
            creator = User(self.user_id, self.user_username or "", self.user_fullname or "")
        assignee = None
        if self.assigned_to_id is not None:
            assignee = User(
                self.assigned_to_id,
                self.assigned_to_username or "",
                self.assigned_to_fullname or "",
            )
        return RequestResponse(
            id=self.id,
            title=self.title,
            description=self.description,
            status=self.status,
            created_by=self.created_by,
            type=self.type,
            created_at=self.created_at,
            updated_at=self.updated_at,
            priority=self.priority,
            location=self.location,
            created_by_user=creator,
            assigned_to_user=assignee,
        )