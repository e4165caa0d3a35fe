"""Application assembly and the command that starts the server."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Iterable, MutableMapping
from pathlib import Path

from flask import Flask, Response, current_app, request

from pyrhouse.database import connect, create_schema
from pyrhouse.health import HealthMonitor
from pyrhouse.locations import LocationRepository
from pyrhouse.locations_api import create_blueprint as locations_blueprint
from pyrhouse.middleware import install_recovery, install_timeout
from pyrhouse.servicedesk_api import create_blueprint as service_desk_blueprint
from pyrhouse.servicedesk_repository import ServiceDeskRepository

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
DEFAULT_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5000",
    "https://pyrhouse-frontend-p2sbw.ondigitalocean.app",
)
ALLOWED_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
ALLOWED_HEADERS = "Origin, Content-Type, Authorization"
MAX_AGE_SECONDS = 12 * 3600


def install_cors(app: Flask, origins: Iterable[str]) -> None:
    """Allow credentialed cross-origin calls from ``origins`` and refuse others."""
    allowed = frozenset(origins)

    def foreign_origin() -> str | None:
        origin = request.headers.get("Origin")
        if not origin or origin == request.host_url.rstrip("/"):
            return None
        return origin

    @app.before_request
    def check_origin():
        origin = foreign_origin()
        if origin is None:
            return None
        if origin not in allowed:
            return Response(status=403)
        if request.method == "OPTIONS" and request.headers.get("Access-Control-Request-Method"):
            response = Response(status=204)
            response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
            response.headers["Access-Control-Max-Age"] = str(MAX_AGE_SECONDS)
            return response
        return None

    @app.after_request
    def add_headers(response: Response) -> Response:
        origin = foreign_origin()
        if origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            if request.method != "OPTIONS":
                response.headers["Access-Control-Expose-Headers"] = "Content-Length"
            response.headers.add("Vary", "Origin")
        return response


def _timeout_seconds(value: str | None) -> int | None:
    if not value:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def create_app(engine, environ=None) -> Flask:
    """Build the Flask application on ``engine``.

    ``REQUEST_TIMEOUT`` in ``environ`` sets a per-request time limit in
    seconds. Callers are identified through ``app.config``:
    ``USER_ID_PROVIDER`` returns the signed-in user's id or None, and
    ``ROLE_GUARD`` answers whether the caller holds a role. By default
    every caller is anonymous and holds no role.
    """
    environ = os.environ if environ is None else environ
    app = Flask("pyrhouse")
    app.config["USER_ID_PROVIDER"] = lambda: None
    app.config["ROLE_GUARD"] = lambda role: False

    install_recovery(app)
    timeout = _timeout_seconds(environ.get("REQUEST_TIMEOUT"))
    if timeout is not None:
        install_timeout(app, timeout)
    install_cors(app, DEFAULT_ORIGINS)

    monitor = HealthMonitor(version=VERSION)
    app.extensions["pyrhouse.health"] = monitor

    @app.get("/health")
    def health():
        return Response(monitor.check(), mimetype="application/json")

    def current_user_id():
        return current_app.config["USER_ID_PROVIDER"]()

    def has_role(role: str) -> bool:
        return bool(current_app.config["ROLE_GUARD"](role))

    app.register_blueprint(
        service_desk_blueprint(ServiceDeskRepository(engine), current_user_id)
    )
    app.register_blueprint(locations_blueprint(LocationRepository(engine), has_role))
    logger.info("[Router]: Setup completed")
    return app


def _load_dotenv(path: Path, environ: MutableMapping[str, str]) -> bool:
    """Read ``KEY=VALUE`` lines from ``path`` without overriding set variables."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Nie znaleziono pliku .env: %s", exc)
        return False
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        environ.setdefault(key.strip(), value)
    logger.info("Plik .env załadowany pomyślnie")
    return True


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pyrhouse")
    parser.add_argument(
        "-migrate",
        "--migrate",
        action="store_true",
        help="create the database schema without starting the server",
    )
    parser.add_argument(
        "-dir",
        "--dir",
        default="./migrations",
        help="accepted for compatibility; the schema is defined by the package",
    )
    return parser


def main(argv=None) -> int:
    """Start the server, or only prepare the schema with ``--migrate``."""
    logging.basicConfig(level=logging.INFO)
    _load_dotenv(Path(".env"), os.environ)
    args = _parser().parse_args(argv)

    url = os.environ.get("DATABASE_URL")
    if not url:
        raise SystemExit("DATABASE_URL environment variable is not set")
    engine = connect(url)
    logger.info("[DB]: Setup completed")
    try:
        if args.migrate:
            create_schema(engine)
            logger.info("[Migrations]: Completed successfully")
            return 0
        app = create_app(engine, os.environ)
        port = int(os.environ.get("PORT") or "8080")
        logger.info("Server starting on port %s", port)
        app.run(host="0.0.0.0", port=port)
    finally:
        engine.dispose()
    return 0