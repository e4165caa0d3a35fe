"""Rules for filing, routing and discussing service desk requests."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import datetime, timezone

from pyrhouse.servicedesk_models import (
    Comment,
    Request,
    RequestComment,
    RequestKind,
    RequestType,
    Status,
)
from pyrhouse.servicedesk_repository import ServiceDeskRepository


class RequestNotFoundError(LookupError):
    """No request has the given id."""

    def __init__(self, message: str = "zgłoszenie nie znalezione") -> None:
        super().__init__(message)


class InvalidStatusError(ValueError):
    """The status is not one a request can take."""

    def __init__(self, message: str = "nieprawidłowy status") -> None:
        super().__init__(message)


def _now() -> datetime:
    return datetime.now(timezone.utc)


_VALID_STATUSES = frozenset(status.value for status in Status)


class ServiceDeskService:
    """Service desk operations on top of the repository."""

    def __init__(
        self,
        repository: ServiceDeskRepository,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._repository = repository
        self._clock = clock

    def create_request(self, request: Request) -> Request:
        """File ``request`` as new and return it with its id and timestamps."""
        now = self._clock()
        filed = dataclasses.replace(
            request, created_at=now, updated_at=now, status=Status.NEW.value
        )
        request_id = self._repository.create_request(filed)
        return dataclasses.replace(filed, id=request_id)

    def change_status(self, request_id: int, new_status: str) -> None:
        """Move a request to ``new_status``; a status it already has is left alone."""
        current = self._repository.get_request(request_id)
        if current.status == new_status:
            return
        if new_status not in _VALID_STATUSES:
            raise InvalidStatusError()
        self._repository.update_request_status(
            Request(id=request_id, status=str(new_status), updated_at=self._clock())
        )

    def assign_request(self, request_id: int, user_id: int) -> None:
        if not self._repository.request_exists(request_id):
            raise RequestNotFoundError()
        self._repository.update_request_assigned_to(request_id, user_id, self._clock())

    def add_comment(self, request_id: int, content: str, user_id: int) -> Comment:
        """Store a comment and return it as read back, with its author."""
        comment_id = self._repository.create_comment(
            RequestComment(
                request_id=request_id,
                content=content,
                user_id=user_id,
                created_at=self._clock(),
            )
        )
        return self._repository.get_comment(comment_id)

    def get_request_types(self) -> list[RequestType]:
        return [
            RequestType(
                RequestKind.HARDWARE_ISSUE.value,
                "Awaria sprzętu",
                "Zgłoszenie problemu z działaniem sprzętu",
            ),
            RequestType(
                RequestKind.REPLACEMENT.value,
                "Wymiana sprzętu",
                "Prośba o wymianę sprzętu",
            ),
            RequestType(
                RequestKind.TECHNICAL_PROBLEM.value,
                "Problem techniczny",
                "Inny problem techniczny",
            ),
            RequestType(RequestKind.OTHER.value, "Inne", "Inne zgłoszenie"),
        ]