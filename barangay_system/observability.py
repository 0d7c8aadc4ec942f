"""
Request logging, error reporting and response hardening.

Every request gets an id (taken from `X-Request-ID` when the client sends
one) that is echoed back in the response and included in each log event.
With `LOG_JSON` on, events are written to `app.logger` as one JSON object
per line:

    {"event": "request", "request_id": "...", "method": "POST",
     "path": "/households/add", "status": 302, "duration_ms": 41, "user_id": 3}

Unhandled exceptions are logged as `error` events and, when
`ERROR_REPORT_EMAIL` is set, mailed through Flask-Mail.
"""
import json
import time
import uuid
from datetime import datetime, timezone

from flask import Flask, g, request
from flask_login import current_user
from flask_mail import Message
from werkzeug.exceptions import HTTPException

from .extensions import mail


def _current_user_id():
    return current_user.id if current_user.is_authenticated else None


def _event(kind: str, **fields) -> dict:
    payload = {"event": kind, "request_id": getattr(g, "request_id", None)}
    payload.update(fields)
    return payload


def _send_error_report(app: Flask, recipient: str, exc: BaseException) -> None:
    lines = [
        "An unhandled exception occurred.",
        "",
        f"Time (UTC): {datetime.now(timezone.utc).isoformat()}",
        f"Request ID: {getattr(g, 'request_id', None)}",
        f"User ID: {_current_user_id()}",
        f"Request: {request.method} {request.path}",
        f"Error: {exc!r}",
    ]
    message = Message(
        subject=f"[Barangay] Error {request.method} {request.path}",
        recipients=[recipient],
        body="\n".join(lines) + "\n",
    )
    try:
        mail.send(message)
    except Exception:
        app.logger.exception("Failed to send error report email.")


def init_request_logging(app: Flask) -> None:
    as_json = bool(app.config.get("LOG_JSON", True))

    @app.before_request
    def start_request_timer():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        g.request_start = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = getattr(g, "request_start", None)
        duration_ms = int((time.perf_counter() - started) * 1000) if started is not None else None
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        event = _event(
            "request",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=duration_ms,
            user_id=_current_user_id(),
        )
        if as_json:
            app.logger.info(json.dumps(event))
        else:
            app.logger.info(
                "%s %s %s %sms user=%s",
                event["method"],
                event["path"],
                event["status"],
                duration_ms,
                event["user_id"],
            )
        return response

    @app.teardown_request
    def log_unhandled_exception(exc):
        if exc is None or isinstance(exc, HTTPException):
            return
        event = _event("error", method=request.method, path=request.path, error=str(exc))
        if as_json:
            app.logger.exception(json.dumps(event))
        else:
            app.logger.exception("Unhandled exception on %s %s: %s", request.method, request.path, exc)

        recipient = str(app.config.get("ERROR_REPORT_EMAIL") or "").strip()
        if recipient:
            _send_error_report(app, recipient, exc)


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(self)",
}


def init_security_headers(app: Flask) -> None:
    if not app.config.get("SECURITY_HEADERS_ENABLED", True):
        return

    csp = app.config.get("CSP")
    hsts_seconds = int(app.config.get("HSTS_SECONDS", 0) or 0)

    @app.after_request
    def apply_security_headers(response):
        if csp:
            response.headers["Content-Security-Policy"] = csp
        response.headers.update(SECURITY_HEADERS)
        if request.is_secure and hsts_seconds > 0:
            response.headers["Strict-Transport-Security"] = f"max-age={hsts_seconds}; includeSubDomains"
        return response
