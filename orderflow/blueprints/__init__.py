"""
Order Workflow Engine
Blueprints and the helpers they share.
"""

from flask import request

from orderflow.core.exceptions import ValidationError


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def paginate_query(query, default_limit=50, max_limit=500):
    """Slice *query* with ``?limit=&offset=`` and return ``(items, total)``.

    ``limit`` is capped at *max_limit*; a negative ``offset`` becomes 0.
    """
    limit = max(1, min(_int_arg("limit", default_limit), max_limit))
    offset = max(_int_arg("offset", 0), 0)
    return query.limit(limit).offset(offset).all(), query.count()


def json_body() -> dict:
    """The request's JSON object, ``{}`` when the body is empty.

    Raises:
        ValidationError: The body is JSON but not an object (e.g. an array).
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": type(data).__name__})
    return data
