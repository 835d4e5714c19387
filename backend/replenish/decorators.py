# Overview: Request decorators establishing the acting user for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.actor import Actor


def require_actor(f):
    """
    Require an authenticated actor.

    Authentication happens at the upstream gateway, which forwards the
    identity as X-Actor-Id / X-Actor-Name / X-Actor-Role headers.
    Sets g.actor for the route.

    Returns 401 if no actor name was forwarded.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = Actor.from_headers(request.headers)
        if actor is None:
            return jsonify({
                "error": "Authentication required",
                "code": "authentication_required",
                "retryable": False,
                "details": {},
            }), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the actor to carry the admin capability. Use after @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = getattr(g, "actor", None)
        if actor is None:
            return jsonify({
                "error": "Authentication required",
                "code": "authentication_required",
                "retryable": False,
                "details": {},
            }), 401
        if not actor.is_admin:
            return jsonify({
                "error": "Permission denied",
                "code": "permission_denied",
                "retryable": False,
                "details": {"required_role": "admin"},
            }), 403
        return f(*args, **kwargs)
    return decorated_function
