# Overview: Flask API routes for the terminal's signed-in actor.

"""
Session API Routes

The login flow lives outside this service. Once it has authenticated a user
it hands the actor (id, name, location, capability strings) to the terminal
with PUT /api/session; DELETE signs the actor out.
"""

from flask import Blueprint, jsonify, request

from ..services.container import get_services
from ..services.identity import Actor
from ..validation import ValidationError, require_fields
from .errors import json_error

session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.get("")
def get_session_route():
    actor = get_services().identity.current_actor()
    return jsonify({"actor": actor.to_dict() if actor else None})


@session_bp.put("")
def sign_in_route():
    """
    Request body:
    {
        "id": "u-100",
        "name": "Jane Cashier",
        "location_id": "LOC001",
        "permissions": ["pos:sale.create", "pos:shift.open"],
        "role": "cashier"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        require_fields(data, "id", "location_id")
        permissions = data.get("permissions") or []
        if not isinstance(permissions, list):
            raise ValidationError("permissions must be a list")

        actor = get_services().identity.sign_in(Actor.from_dict(data))

        # A previous session may have left a cart open
        cart = get_services().carts.resume()
        return jsonify({
            "actor": actor.to_dict(),
            "cart": cart.to_dict() if cart else None,
        })
    except Exception as exc:
        return json_error(exc, "sign in")


@session_bp.delete("")
def sign_out_route():
    get_services().identity.sign_out()
    return jsonify({"actor": None})
