"""Standardised API error responses.

Every non-2xx body, from the assistant blueprint or the app-level
error handlers, has the same shape:

    {"error": "<human readable>", "code": "<E.* constant>", "details"?: {...}}

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.PLAN_TOKEN_INVALID, "This confirmation has expired.")
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes.

    ERR_ prefix for request / storage errors, PLAN_ prefix for the
    compile → confirm → execute handshake.
    """

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # 403
    FORBIDDEN = "ERR_FORBIDDEN"
    # 404
    NOT_FOUND = "ERR_NOT_FOUND"
    # 405 / 413 / 415
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"
    # 409
    CONFLICT = "ERR_CONFLICT"
    PLAN_TOKEN_INVALID = "PLAN_TOKEN_INVALID"
    # 429
    RATE_LIMITED = "ERR_RATE_LIMITED"
    # 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.CONFLICT: 409,
    E.PLAN_TOKEN_INVALID: 409,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(jsonify(body), http_status)``, ready to return from a view.

    The status falls back to the code's default, then to 400.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)
