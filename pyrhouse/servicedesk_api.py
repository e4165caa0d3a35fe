"""HTTP endpoints of the service desk."""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from pyrhouse.ratelimit import RateLimiter
from pyrhouse.servicedesk_models import Priority, Request
from pyrhouse.servicedesk_repository import ServiceDeskRepository
from pyrhouse.servicedesk_service import ServiceDeskService

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

_INTEGER = re.compile(r"[+-]?\d+")
_FAILURES = (SQLAlchemyError, LookupError, ValueError)
_ALLOWED_PRIORITIES = frozenset(
    {Priority.LOW.value, Priority.MEDIUM.value, Priority.HIGH.value}
)
_BAD_ID = "Nieprawidłowy format ID"
_BAD_DATA = "Nieprawidłowy format danych"
_NOT_FOUND = "Zgłoszenie nie znalezione"


class _Reject(Exception):
    """Stops a view with a ready JSON error response."""

    def __init__(self, status: int, **body: Any) -> None:
        super().__init__(body.get("error", ""))
        self.status = status
        self.body = body


def _parse_int(value: Any) -> int | None:
    if value is None:
        return None
    text = str(value)
    if not _INTEGER.fullmatch(text):
        return None
    return int(text)


def pagination_params(args: Mapping[str, str]) -> tuple[int, int]:
    """Read ``limit`` and ``offset``, falling back to 20 and 0 when absent or out of range."""
    limit = _parse_int(args.get("limit"))
    offset = _parse_int(args.get("offset"))
    if limit is None or not 1 <= limit <= MAX_LIMIT:
        limit = DEFAULT_LIMIT
    if offset is None or offset < 0:
        offset = 0
    return limit, offset


def _required(name: str, kind: type) -> Any:
    """Return a required, non-zero field of the JSON body."""
    body = request.get_json(silent=True)
    if not isinstance(body, Mapping):
        raise _Reject(400, error=_BAD_DATA)
    value = body.get(name)
    if isinstance(value, bool) or not isinstance(value, kind) or not value:
        raise _Reject(400, error=_BAD_DATA)
    return value


def _request_id(raw_id: str) -> int:
    value = _parse_int(raw_id)
    if value is None:
        raise _Reject(400, error=_BAD_ID)
    return value


def create_blueprint(
    repository: ServiceDeskRepository,
    user_id_provider: Callable[[], Any],
    rate_limiter: RateLimiter | None = None,
) -> Blueprint:
    """Build the ``/service-desk`` routes.

    ``user_id_provider`` returns the signed-in user's id, or a false value
    for anonymous callers. Anonymous callers may only file requests, and
    only as often as ``rate_limiter`` allows.
    """
    service = ServiceDeskService(repository)
    limiter = rate_limiter if rate_limiter is not None else RateLimiter(15, timedelta(minutes=1))
    blueprint = Blueprint("service_desk", __name__, url_prefix="/service-desk")

    def reject(error: _Reject):
        return jsonify(error.body), error.status

    blueprint.register_error_handler(_Reject, reject)

    def signed_in(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if not user_id_provider():
                raise _Reject(401, error="Unauthorized")
            return view(*args, **kwargs)

        return wrapper

    def ensure_exists(request_id: int) -> None:
        try:
            exists = repository.request_exists(request_id)
        except _FAILURES as exc:
            raise _Reject(
                500,
                error="Błąd sprawdzania czy zgłoszenie istnieje",
                details=str(exc),
            ) from exc
        if not exists:
            raise _Reject(404, error=_NOT_FOUND)

    @blueprint.get("/requests")
    @signed_in
    def get_requests():
        limit, offset = pagination_params(request.args)
        status = request.args.get("status", "")
        try:
            found = repository.get_requests(status or None, limit, offset)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd pobierania zgłoszeń", details=str(exc)) from exc
        return jsonify([item.to_dict() for item in found])

    @blueprint.get("/requests/<raw_id>")
    @signed_in
    def get_request(raw_id: str):
        request_id = _request_id(raw_id)
        try:
            found = repository.get_request(request_id)
        except _FAILURES as exc:
            raise _Reject(404, error=_NOT_FOUND, details=str(exc)) from exc
        return jsonify(found.to_dict())

    @blueprint.post("/requests")
    def create_request():
        user_id = user_id_provider()
        if not user_id:
            client = request.remote_addr or ""
            if not limiter.is_allowed(client):
                remaining = limiter.get_remaining_requests(client)
                reset_at = (datetime.now().astimezone() + timedelta(minutes=1)).isoformat(
                    timespec="seconds"
                )
                response = jsonify(
                    error="Przekroczono limit zapytań. Spróbuj ponownie później lub zaloguj się.",
                    remaining=remaining,
                    reset_at=reset_at,
                )
                response.status_code = 429
                response.headers["X-RateLimit-Limit"] = str(limiter.limit)
                response.headers["X-RateLimit-Remaining"] = str(remaining)
                response.headers["X-RateLimit-Reset"] = reset_at
                return response

        try:
            filed = Request.from_dict(request.get_json(silent=True))
        except ValueError as exc:
            raise _Reject(400, error=_BAD_DATA) from exc

        if user_id:
            owner = _parse_int(user_id)
            if owner is None:
                raise _Reject(500, error="Błąd konwersji ID użytkownika")
            filed = dataclasses.replace(filed, created_by_id=owner)

        try:
            created = service.create_request(filed)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd tworzenia zgłoszenia", details=str(exc)) from exc
        return jsonify(created.to_dict()), 201

    @blueprint.get("/requests/<raw_id>/comments")
    @signed_in
    def get_comments(raw_id: str):
        request_id = _request_id(raw_id)
        try:
            comments = repository.get_comments(request_id)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd pobierania komentarzy", details=str(exc)) from exc
        return jsonify([comment.to_dict() for comment in comments])

    @blueprint.put("/requests/<raw_id>/status")
    @signed_in
    def change_status(raw_id: str):
        request_id = _request_id(raw_id)
        status = _required("status", str)
        try:
            service.change_status(request_id, status)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd zmiany statusu", details=str(exc)) from exc
        return jsonify(message="Status zmieniony")

    @blueprint.put("/requests/<raw_id>/assign")
    @signed_in
    def assign_request(raw_id: str):
        request_id = _request_id(raw_id)
        ensure_exists(request_id)
        assignee = _required("assigned_to_id", int)
        try:
            service.assign_request(request_id, assignee)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd przypisania zgłoszenia", details=str(exc)) from exc
        return jsonify(message="Zgłoszenie przypisane")

    @blueprint.put("/requests/<raw_id>/priority")
    @signed_in
    def change_priority(raw_id: str):
        request_id = _request_id(raw_id)
        ensure_exists(request_id)
        priority = _required("priority", str)
        if priority not in _ALLOWED_PRIORITIES:
            raise _Reject(400, error="Nieprawidłowy priorytet")
        try:
            repository.update_request_priority(request_id, priority)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd zmiany priorytetu", details=str(exc)) from exc
        return jsonify(message="Priorytet zmieniony")

    @blueprint.post("/requests/<raw_id>/comments")
    @signed_in
    def add_comment(raw_id: str):
        request_id = _request_id(raw_id)
        ensure_exists(request_id)
        content = _required("content", str)
        raw_user = user_id_provider()
        author = _parse_int(raw_user)
        if author is None:
            raise _Reject(
                500,
                error="Błąd konwersji ID użytkownika",
                details=f"invalid user id: {raw_user!r}",
            )
        try:
            comment = service.add_comment(request_id, content, author)
        except _FAILURES as exc:
            raise _Reject(500, error="Błąd dodawania komentarza", details=str(exc)) from exc
        return jsonify(comment.to_dict())

    @blueprint.get("/request-types")
    @signed_in
    def get_request_types():
        return jsonify([kind.to_dict() for kind in service.get_request_types()])

    return blueprint