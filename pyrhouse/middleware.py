"""Crash recovery and request timeouts for Flask applications."""

from __future__ import annotations

import contextvars
import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

from flask import Flask, jsonify

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestTimeout(Exception):
    """Raised when a call does not finish within its time limit."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"call did not finish within {timeout} seconds")
        self.timeout = timeout


def _seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _is_http_error(error: Exception) -> bool:
    # HTTP errors raised by the framework carry their own response.
    return callable(getattr(error, "get_response", None)) and isinstance(
        getattr(error, "code", None), int
    )


def call_with_timeout(func: Callable[[], T], timeout: float | timedelta) -> T:
    """Run ``func`` in a worker thread and wait at most ``timeout`` seconds.

    The worker sees a copy of the caller's context variables, so request
    state stays available. A call that overruns keeps running in the
    background; the caller gets :class:`RequestTimeout`.
    """
    seconds = _seconds(timeout)
    outcome: dict[str, Any] = {}

    def run() -> None:
        try:
            outcome["value"] = func()
        except BaseException as exc:  # handed back to the caller
            outcome["error"] = exc

    context = contextvars.copy_context()
    worker = threading.Thread(target=context.run, args=(run,), daemon=True)
    worker.start()
    worker.join(seconds)
    if worker.is_alive():
        raise RequestTimeout(seconds)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def install_recovery(app: Flask) -> None:
    """Turn unhandled exceptions into a logged 500 JSON response."""

    def recover(error: Exception):
        if _is_http_error(error):
            return error
        logger.error("[Recovery] Panic recovered: %s", error, exc_info=error)
        response = jsonify(
            error="Internal Server Error",
            message=(
                "Aplikacja napotkała nieoczekiwany błąd. "
                "Został on zarejestrowany i zostanie naprawiony."
            ),
        )
        response.status_code = 500
        return response

    app.register_error_handler(Exception, recover)


def install_timeout(app: Flask, timeout: float | timedelta) -> None:
    """Answer 504 when a view takes longer than ``timeout``."""
    seconds = _seconds(timeout)
    if seconds <= 0:
        raise ValueError("timeout must be positive")

    dispatch = app.dispatch_request

    def dispatch_with_timeout():
        return call_with_timeout(dispatch, seconds)

    app.dispatch_request = dispatch_with_timeout  # type: ignore[method-assign]

    def on_timeout(error: RequestTimeout):
        response = jsonify(
            error="Request Timeout",
            message="Żądanie przekroczyło dozwolony czas oczekiwania.",
        )
        response.status_code = 504
        return response

    app.register_error_handler(RequestTimeout, on_timeout)