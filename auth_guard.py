# auth_guard.py
from __future__ import annotations

from functools import wraps

from flask import current_app, g, request

from services.auth import AuthOrchestrator
from services.errors import AuthError

__all__ = ["bearer_token", "get_auth", "require_role"]


def get_auth() -> AuthOrchestrator:
    return current_app.extensions["civic_auth"]


def bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def require_role(*roles):
    """
    Usage:
      @require_role()                    -> any authenticated user
      @require_role("worker")            -> only field workers (or admin)
      @require_role("worker", "citizen") -> either (or admin)
    """
    # Support passing a single list/tuple as well
    if len(roles) == 1 and isinstance(roles[0], (list, tuple, set)):
        roles = tuple(roles[0])
    allowed = {str(r).lower() for r in roles if r}

    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            token = bearer_token()
            if token is None:
                return {"success": False, "kind": "invalid_token", "message": "Missing token"}, 401

            try:
                user = get_auth().current_user(token)
            except AuthError as e:
                return e.to_dict(), e.status

            # Stash user for downstream handlers
            role = (user.role or "").lower()
            g.user = user  # type: ignore[attr-defined]
            g.role = role  # type: ignore[attr-defined]
            g.token = token  # type: ignore[attr-defined]

            current_app.logger.info(
                "[guard] %s %s uid=%s role=%s ip=%s",
                request.method, request.path, user.id, role, request.remote_addr,
            )

            # Role check (admin bypass)
            if allowed and role not in allowed and role != "admin":
                return {"success": False, "kind": "forbidden", "message": "Insufficient permissions"}, 403

            return f(*args, **kwargs)

        return wrapped

    return decorator
