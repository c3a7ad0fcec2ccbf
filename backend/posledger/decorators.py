# Overview: Actor and capability decorators for API routes.

from functools import wraps

from flask import g, jsonify

from .services.container import get_services


def require_actor(f):
    """
    Require a signed-in actor on this terminal.

    Sets g.actor to the current Actor. Returns 401 when nobody is signed in.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = get_services().identity.current_actor()
        if actor is None:
            return jsonify({"error": "Authentication required"}), 401
        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission: str):
    """Require one capability string. Use after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401
            if not actor.has_permission(permission):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission,
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permissions):
    """Require at least one of the capability strings. Use after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401
            if not any(actor.has_permission(p) for p in permissions):
                return jsonify({
                    "error": "Permission denied",
                    "required_permissions": list(permissions),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
