from __future__ import annotations

import logging

from flask import Flask, jsonify, request, session
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)


def user_or_remote_address() -> str:
    """Rate-limit key: the signed-in user, else the client address."""
    user_id = session.get("user_id")
    if user_id is not None:
        return f"user:{user_id}"
    return get_remote_address()


def create_limiter(app: Flask, *, storage_uri: str = "memory://") -> Limiter:
    limiter = Limiter(
        key_func=user_or_remote_address,
        app=app,
        storage_uri=storage_uri,
        default_limits=[],
    )

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(e: RateLimitExceeded):
        logger.warning("rate limit hit: key=%s path=%s", user_or_remote_address(), request.path)
        return jsonify({"success": False, "code": "rate_limited", "message": e.description}), 429

    return limiter
