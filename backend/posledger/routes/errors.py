# Overview: Maps service-layer exceptions onto JSON error responses.

from flask import current_app, jsonify

from ..services.identity import AuthenticationRequired, PermissionDeniedError
from ..validation import ConflictError, NotFoundError, ValidationError


def json_error(exc: Exception, context: str):
    """
    400 ValidationError, 401 no actor, 403 missing capability,
    404 NotFoundError, 409 ConflictError, 500 anything else (logged).
    """
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, AuthenticationRequired):
        return jsonify({"error": "Authentication required"}), 401
    if isinstance(exc, PermissionDeniedError):
        return jsonify({
            "error": "Permission denied",
            "required_permission": exc.permission,
            "message": str(exc),
        }), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    current_app.logger.exception("Failed to %s", context)
    return jsonify({"error": "Internal server error"}), 500
