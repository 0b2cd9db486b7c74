"""JSON error envelope shared by every endpoint.

Body shape::

    {"error": "<message>", "code": "ERR_…", "details": {...}}   # details optional

Usage::

    from orderflow.utils.errors import E, api_error

    return api_error(E.VALIDATION_REQUIRED, "folder_link is required")
    return api_error(exc.code, str(exc), details=exc.details)
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes.  Each exception class in ``core.exceptions`` carries one."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # 409: request conflicts with the current state of an order or work unit
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CAPACITY = "ERR_CAPACITY"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    ALREADY_COMPLETED = "ERR_ALREADY_COMPLETED"
    ORDER_LOCKED = "ERR_ORDER_LOCKED"
    DUPLICATE = "ERR_DUPLICATE"

    # 500
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.INTERNAL: 500,
}
_STATUS_BY_CODE.update(
    dict.fromkeys(
        (
            E.CONFLICT_STATE, E.CAPACITY, E.INVALID_TRANSITION,
            E.ALREADY_COMPLETED, E.ORDER_LOCKED, E.DUPLICATE,
        ),
        409,
    )
)


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a failed request.

    *status* wins when given; otherwise it comes from the code, and unknown
    codes fall back to 400.  Empty *details* are left out of the body.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)
