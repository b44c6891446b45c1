from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Dict

from flask import Flask, jsonify, request, session

from ..core.enums import Role
from ..core.exceptions import AuthenticationError, AuthorizationError, DomainError, ValidationError

logger = logging.getLogger(__name__)


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            raise AuthenticationError()
        return view(*args, **kwargs)

    return wrapper


def role_required(*roles: Role):
    allowed = {r.value for r in roles}

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                raise AuthenticationError()
            if session.get("role") not in allowed:
                raise AuthorizationError()
            return view(*args, **kwargs)

        return wrapper

    return decorator


def current_user_id() -> int:
    return int(session["user_id"])


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        # Let Flask render its own HTTP errors (404 routes, 405 methods).
        code = getattr(e, "code", None)
        if isinstance(code, int) and 400 <= code < 600:
            return jsonify({"success": False, "code": "http_error", "message": getattr(e, "description", str(e))}), code
        logger.exception("unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "code": "internal_error", "message": "Internal server error."}), 500
