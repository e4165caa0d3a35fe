"""HTTP endpoints for warehouse locations."""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from pyrhouse.database import ForeignKeyViolationError, UniqueViolationError
from pyrhouse.locations import Location, LocationRepository, UpdateLocationRequest

_FAILURES = (SQLAlchemyError, LookupError, ValueError)


def _location_id(raw: str) -> int | str:
    return int(raw) if raw.isdigit() else raw


def create_blueprint(
    repository: LocationRepository,
    guard: Callable[[str], bool] | None = None,
) -> Blueprint:
    """Build the ``/locations`` routes.

    ``guard`` is asked with a role name before changes are made and answers
    whether the caller holds that role; without a guard everyone may.
    """
    blueprint = Blueprint("locations", __name__)

    def requires(role: str):
        def decorator(view):
            @wraps(view)
            def wrapper(*args, **kwargs):
                if guard is not None and not guard(role):
                    return jsonify(error="Forbidden"), 403
                return view(*args, **kwargs)

            return wrapper

        return decorator

    @blueprint.get("/locations")
    def get_locations():
        try:
            found = repository.get_locations()
        except _FAILURES as exc:
            return jsonify(error="Could not list locations", details=str(exc)), 500
        return jsonify([location.to_dict() for location in found])

    @blueprint.get("/locations/<raw_id>")
    def get_location_details(raw_id: str):
        try:
            location = repository.get_location_details(_location_id(raw_id))
        except _FAILURES as exc:
            return jsonify(error="Could not get location details", details=str(exc)), 500
        return jsonify(location.to_dict())

    @blueprint.get("/locations/<raw_id>/search")
    def search_location_items(raw_id: str):
        query = request.args.get("q", "")
        if len(query) < 1:
            return jsonify(error="Search query must be at least 1 character long"), 400
        try:
            found = repository.search_location_items(_location_id(raw_id), query)
        except _FAILURES as exc:
            return jsonify(error="Unable to search location items", details=str(exc)), 500
        return jsonify([asset.to_dict() for asset in found])

    @blueprint.get("/locations/<raw_id>/assets")
    def get_location_items(raw_id: str):
        try:
            equipment = repository.get_location_equipment(_location_id(raw_id))
        except _FAILURES as exc:
            return jsonify(error="Could not get location items", details=str(exc)), 500
        return jsonify(equipment.to_dict())

    @blueprint.post("/locations")
    @requires("moderator")
    def create_location():
        try:
            location = Location.from_dict(request.get_json(silent=True))
        except ValueError:
            return jsonify(error="Invalid request payload"), 400
        try:
            stored = repository.persist_location(location)
        except UniqueViolationError as exc:
            return (
                jsonify(
                    error="Could not insert, location, name not unique",
                    details=str(exc),
                ),
                409,
            )
        except _FAILURES:
            return jsonify(error="Could not insert location"), 500
        return jsonify(stored.to_dict()), 201

    @blueprint.patch("/locations/<raw_id>")
    @requires("moderator")
    def update_location(raw_id: str):
        try:
            changes = UpdateLocationRequest.from_dict(request.get_json(silent=True))
        except ValueError as exc:
            return jsonify(error="Invalid request payload", details=str(exc)), 400
        if changes.is_empty():
            return jsonify(error="Invalid request payload, no fields to update"), 400
        try:
            location = repository.update_location(_location_id(raw_id), changes)
        except _FAILURES as exc:
            return (
                jsonify(error="Unable to update location, critical error", details=str(exc)),
                500,
            )
        return jsonify(location.to_dict())

    @blueprint.delete("/locations/<raw_id>")
    @requires("moderator")
    def remove_location(raw_id: str):
        try:
            repository.remove_location(_location_id(raw_id))
        except ForeignKeyViolationError as exc:
            return (
                jsonify(
                    error="Nie można usunąć lokalizacji, ponieważ ma przypisane elementy",
                    details=str(exc),
                ),
                409,
            )
        except _FAILURES as exc:
            return jsonify(error="Could not delete location", details=str(exc)), 500
        return jsonify(message="Location deleted successfully")

    return blueprint