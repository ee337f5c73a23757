"""
HTTP API for userlog.

Thin Flask layer over the UserLog façade: parses request bodies and query
strings, calls one façade operation, renders JSON. Also serves liveness and
readiness probes for Kubernetes.

Routes:
    POST /users                  create a user
    GET  /users                  list users
    GET  /users/<id>             get one user
    PUT  /users/<id>             update a user
    GET  /events                 events across all users
    GET  /users/<id>/events      events of one user
    GET  /health/live, /health/ready, /health
"""

import re
from datetime import datetime
from typing import Any

from flask import Flask, Response, current_app, g, jsonify, request

from userlog.app import UserLog
from userlog.kernel.errors import (
    DecodeError,
    InvalidCommand,
    NotFound,
    PersistenceError,
    UpdateConflict,
    UserLogError,
)
from userlog.kernel.logging import (
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from userlog.kernel.time import to_utc
from userlog.users.models import MAX_USER_ID

logger = get_logger(__name__)

SERVICE_NAME = "userlog"
CORRELATION_HEADER = "X-Correlation-ID"

_DECODED_PLUS_OFFSET = re.compile(r"(T[\d:.]+) (\d{2}:?\d{2})$")

STATUS_BY_ERROR: list[tuple[type[UserLogError], int]] = [
    (InvalidCommand, 400),
    (NotFound, 404),
    (UpdateConflict, 409),
    (DecodeError, 500),
    (PersistenceError, 500),
]


def create_app(userlog: UserLog) -> Flask:
    """
    Build the Flask application around a UserLog instance

    Args:
        userlog: The façade every route delegates to

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.extensions["userlog"] = userlog

    app.before_request(_bind_correlation_id)
    app.after_request(add_security_headers)
    app.register_error_handler(UserLogError, _handle_userlog_error)

    app.add_url_rule("/users", view_func=create_user, methods=["POST"])
    app.add_url_rule("/users", view_func=list_users, methods=["GET"])
    app.add_url_rule("/users/<user_id>", view_func=get_user, methods=["GET"])
    app.add_url_rule("/users/<user_id>", view_func=update_user, methods=["PUT"])
    app.add_url_rule("/users/<user_id>/events", view_func=list_user_events, methods=["GET"])
    app.add_url_rule("/events", view_func=list_events, methods=["GET"])

    app.add_url_rule("/health/live", view_func=liveness, methods=["GET"])
    app.add_url_rule("/health/ready", view_func=readiness, methods=["GET"])
    app.add_url_rule("/health", view_func=detailed_health, methods=["GET"])

    return app


def _userlog() -> UserLog:
    return current_app.extensions["userlog"]


# =============================================================================
# Request plumbing
# =============================================================================


def _bind_correlation_id() -> None:
    cid = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
    set_correlation_id(cid)
    g.correlation_id = cid


def add_security_headers(response: Response) -> Response:
    """Add security headers (and the correlation id) to every response"""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    cid = g.get("correlation_id")
    if cid:
        response.headers[CORRELATION_HEADER] = cid
    return response


def _handle_userlog_error(error: UserLogError) -> tuple[Response, int]:
    status = next(
        (code for error_type, code in STATUS_BY_ERROR if isinstance(error, error_type)),
        500,
    )
    body: dict[str, Any] = {"error": str(error)}
    if isinstance(error, InvalidCommand) and error.errors:
        body["details"] = error.errors

    if status >= 500:
        logger.error("Request failed", path=request.path, status=status, error=str(error))
    else:
        logger.info("Request rejected", path=request.path, status=status, error=str(error))
    return jsonify(body), status


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidCommand("bad request: expected a JSON object body")
    return body


def _parse_user_id(raw: str) -> int:
    try:
        user_id = int(raw)
    except ValueError:
        raise InvalidCommand(f"invalid user id: {raw!r}") from None
    if not 1 <= user_id <= MAX_USER_ID:
        raise InvalidCommand(f"invalid user id: {raw!r}")
    return user_id


def _parse_time(raw: Any, field: str) -> datetime | None:
    if raw is None or raw == "":
        return None
    try:
        return to_utc(datetime.fromisoformat(raw))
    except (TypeError, ValueError):
        raise InvalidCommand(f"{field} must be an ISO-8601 timestamp, got {raw!r}") from None


def _parse_cursor(raw: str | None) -> datetime | None:
    # An unencoded "+" in a query string arrives as a space
    if raw:
        raw = _DECODED_PLUS_OFFSET.sub(r"\1+\2", raw)
    return _parse_time(raw, "since")


def _parse_limit(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidCommand(f"limit must be an integer, got {raw!r}") from None


# =============================================================================
# User routes
# =============================================================================


def create_user() -> tuple[Response, int]:
    body = _json_body()
    user = _userlog().create_user(body.get("name"), body.get("password"))
    return jsonify(user.to_public_dict()), 201


def list_users() -> Response:
    return jsonify([u.to_public_dict() for u in _userlog().list_users()])


def get_user(user_id: str) -> Response:
    user = _userlog().get_user(_parse_user_id(user_id))
    return jsonify(user.to_public_dict())


def update_user(user_id: str) -> tuple[Response, int]:
    uid = _parse_user_id(user_id)
    body = _json_body()
    user = _userlog().update_user(
        uid,
        body.get("name"),
        body.get("password"),
        expected_updated_at=_parse_time(body.get("expectedUpdatedAt"), "expectedUpdatedAt"),
    )
    return jsonify(user.to_public_dict()), 201


# =============================================================================
# Event routes
# =============================================================================


def list_events() -> Response:
    log = _userlog()
    events = log.list_events(
        since=_parse_cursor(request.args.get("since")),
        limit=_parse_limit(request.args.get("limit")),
    )
    logger.debug("Events served", count=len(events))
    return jsonify([log.describe_event(e) for e in events])


def list_user_events(user_id: str) -> Response:
    log = _userlog()
    events = log.list_user_events(
        _parse_user_id(user_id),
        since=_parse_cursor(request.args.get("since")),
        limit=_parse_limit(request.args.get("limit")),
    )
    logger.debug("Events served", user_id=user_id, count=len(events))
    return jsonify([log.describe_event(e) for e in events])


# =============================================================================
# Health routes
# =============================================================================


def liveness() -> tuple[Response, int]:
    """
    Liveness probe - checks if the process is running.

    Kubernetes will restart the pod if this fails.
    """
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


def readiness() -> tuple[Response, int]:
    """
    Readiness probe - checks the database answers a simple query.

    Kubernetes will not route traffic to the pod if this fails.
    """
    try:
        event_count = _userlog().event_store.count_events()
    except PersistenceError as e:
        logger.error("Readiness check failed", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_error",
                    "error": str(e),
                }
            ),
            503,
        )

    return (
        jsonify({"status": "ready", "database": "accessible", "event_count": event_count}),
        200,
    )


def detailed_health() -> tuple[Response, int]:
    """Detailed health check - database path, row counts and file size"""
    log = _userlog()
    health_data: dict[str, Any] = {"status": "healthy", "service": SERVICE_NAME}

    try:
        db_path = log.database.db_path
        health_data["database"] = {
            "status": "healthy",
            "path": str(db_path),
            "user_count": log.user_repository.count(),
            "event_count": log.event_store.count_events(),
            "size_mb": round(db_path.stat().st_size / (1024 * 1024), 2),
        }
    except (PersistenceError, OSError) as e:
        logger.error("Database health check failed", error=str(e))
        health_data["database"] = {"status": "unhealthy", "error": str(e)}
        health_data["status"] = "degraded"

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_api_server(userlog: UserLog, host: str = "0.0.0.0", port: int = 5000) -> None:
    """
    Run the HTTP API with Flask's threaded development server.

    One thread per request; every request opens its own connections.
    """
    logger.info("Starting HTTP API", host=host, port=port, db_path=str(userlog.sqlite_path))
    create_app(userlog).run(host=host, port=port, threaded=True)
