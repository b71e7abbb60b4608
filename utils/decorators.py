from __future__ import annotations
from functools import wraps
from flask import request, g, abort, current_app
from utils.security import TokenErr


def jwt_required():
    """
    Require a valid access token in the Authorization header.
    401 when no bearer token is presented, 403 when it fails verification.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                abort(401, description="Missing or invalid Authorization header")
            token = auth.split(" ", 1)[1].strip()
            if not token:
                abort(401, description="Missing or invalid Authorization header")

            result = current_app.extensions["token_codec"].verify_access(token)
            if isinstance(result, TokenErr):
                abort(403, description="Invalid or expired token")

            g.current_user_id = result.subject
            return fn(*args, **kwargs)

        return wrapper

    return decorator
