# Overview: Flask API routes for the terminal's active cart.

"""
Cart API Routes

One active cart per terminal. Every mutation returns the full cart with
freshly computed totals.

    GET    /api/cart                         active cart (or null)
    POST   /api/cart/items                   {"product_id", "quantity"}
    PATCH  /api/cart/items/<line_id>         {"quantity"}   (<= 0 removes)
    DELETE /api/cart/items/<line_id>
    PUT    /api/cart/items/<line_id>/discount {"discount_cents"}
    PUT    /api/cart/customer                {"customer_ref"}
    DELETE /api/cart                         cancel the active cart
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_permission
from ..services.container import get_services
from ..services.identity import CAP_SALE_CREATE
from ..validation import require_fields
from .errors import json_error

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _cart_response(cart, status=200):
    return jsonify({"cart": cart.to_dict() if cart else None}), status


@cart_bp.get("")
@require_actor
@require_permission(CAP_SALE_CREATE)
def get_cart_route():
    return _cart_response(get_services().carts.active_cart())


@cart_bp.post("/items")
@require_actor
@require_permission(CAP_SALE_CREATE)
def add_item_route():
    try:
        data = require_fields(request.get_json(silent=True), "product_id")
        cart = get_services().carts.add_item(data["product_id"], data.get("quantity", 1))
        return _cart_response(cart, 201)
    except Exception as exc:
        return json_error(exc, "add cart item")


@cart_bp.patch("/items/<line_id>")
@require_actor
@require_permission(CAP_SALE_CREATE)
def update_item_route(line_id):
    try:
        data = require_fields(request.get_json(silent=True), "quantity")
        return _cart_response(get_services().carts.update_quantity(line_id, data["quantity"]))
    except Exception as exc:
        return json_error(exc, "update cart item")


@cart_bp.delete("/items/<line_id>")
@require_actor
@require_permission(CAP_SALE_CREATE)
def remove_item_route(line_id):
    try:
        return _cart_response(get_services().carts.remove_item(line_id))
    except Exception as exc:
        return json_error(exc, "remove cart item")


@cart_bp.put("/items/<line_id>/discount")
@require_actor
@require_permission(CAP_SALE_CREATE)
def discount_item_route(line_id):
    try:
        data = require_fields(request.get_json(silent=True), "discount_cents")
        return _cart_response(get_services().carts.apply_line_discount(line_id, data["discount_cents"]))
    except Exception as exc:
        return json_error(exc, "apply line discount")


@cart_bp.put("/customer")
@require_actor
@require_permission(CAP_SALE_CREATE)
def set_customer_route():
    try:
        data = request.get_json(silent=True) or {}
        return _cart_response(get_services().carts.set_customer_ref(data.get("customer_ref")))
    except Exception as exc:
        return json_error(exc, "set customer reference")


@cart_bp.delete("")
@require_actor
@require_permission(CAP_SALE_CREATE)
def clear_cart_route():
    try:
        cart = get_services().carts.clear()
        return jsonify({"cancelled": cart.to_dict() if cart else None})
    except Exception as exc:
        return json_error(exc, "clear cart")
