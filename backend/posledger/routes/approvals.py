# Overview: Flask API routes for approval-gated stock and cash changes.

"""
Approval API Routes

WHY: Stock corrections and drawer <-> safe cash movements change money or
stock outside a sale. Anyone with the request capability may submit; only
pos:approval.grant may approve or reject. A granter's own submission is
approved on the spot.

    POST /api/inventory-adjustments                 submit
    GET  /api/inventory-adjustments                 list (location, status)
    POST /api/inventory-adjustments/<id>/approve
    POST /api/inventory-adjustments/<id>/reject     {"reason"}

    POST /api/cash-movements                        submit (needs an open shift)
    GET  /api/cash-movements                        list (shift, status)
    POST /api/cash-movements/<id>/approve
    POST /api/cash-movements/<id>/reject            {"reason"}

    GET  /api/dashboard                             supervisor overview
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_any_permission, require_permission
from ..services.container import get_services
from ..services.identity import (
    CAP_APPROVAL_GRANT,
    CAP_CASH_MOVEMENT,
    CAP_INVENTORY_ADJUST,
    CAP_REPORTS_VIEW,
)
from ..time_utils import parse_iso_datetime, to_utc_z
from ..validation import ValidationError, require_fields
from .errors import json_error

approvals_bp = Blueprint("approvals", __name__, url_prefix="/api")


# =============================================================================
# INVENTORY ADJUSTMENTS
# =============================================================================

@approvals_bp.post("/inventory-adjustments")
@require_actor
@require_any_permission(CAP_INVENTORY_ADJUST, CAP_APPROVAL_GRANT)
def submit_adjustment_route():
    """
    Request body:
    {
        "product_id": "...",
        "quantity_change": -2,
        "reason": "damage" | "theft" | "correction" | "received" | "return",
        "notes": "Dropped during restock"
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "product_id", "quantity_change", "reason")
        adjustment = get_services().approvals.submit_inventory_adjustment(
            data["product_id"], data["quantity_change"], data["reason"], data.get("notes"),
        )
        return jsonify({"adjustment": adjustment.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "submit inventory adjustment")


@approvals_bp.get("/inventory-adjustments")
@require_actor
@require_any_permission(CAP_INVENTORY_ADJUST, CAP_APPROVAL_GRANT, CAP_REPORTS_VIEW)
def list_adjustments_route():
    location_id = request.args.get("location_id") or g.actor.location_id
    adjustments = get_services().approvals.list_adjustments(location_id, status=request.args.get("status"))
    return jsonify({"adjustments": [a.to_dict() for a in adjustments], "count": len(adjustments)})


@approvals_bp.post("/inventory-adjustments/<adjustment_id>/approve")
@require_actor
@require_permission(CAP_APPROVAL_GRANT)
def approve_adjustment_route(adjustment_id):
    try:
        adjustment = get_services().approvals.approve_adjustment(adjustment_id)
        return jsonify({"adjustment": adjustment.to_dict()})
    except Exception as exc:
        return json_error(exc, "approve inventory adjustment")


@approvals_bp.post("/inventory-adjustments/<adjustment_id>/reject")
@require_actor
@require_permission(CAP_APPROVAL_GRANT)
def reject_adjustment_route(adjustment_id):
    try:
        data = request.get_json(silent=True) or {}
        adjustment = get_services().approvals.reject_adjustment(adjustment_id, data.get("reason"))
        return jsonify({"adjustment": adjustment.to_dict()})
    except Exception as exc:
        return json_error(exc, "reject inventory adjustment")


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

@approvals_bp.post("/cash-movements")
@require_actor
@require_any_permission(CAP_CASH_MOVEMENT, CAP_APPROVAL_GRANT)
def submit_movement_route():
    """
    Request body:
    {
        "type": "drop" | "pickup" | "float_adjustment",
        "amount_cents": 5000,
        "reason": "Mid-day drop"
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "type", "amount_cents", "reason")
        movement = get_services().approvals.submit_cash_movement(data["type"], data["amount_cents"], data["reason"])
        return jsonify({"movement": movement.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "submit cash movement")


@approvals_bp.get("/cash-movements")
@require_actor
@require_any_permission(CAP_CASH_MOVEMENT, CAP_APPROVAL_GRANT, CAP_REPORTS_VIEW)
def list_movements_route():
    limit = request.args.get("limit", default=20, type=int)
    movements = get_services().approvals.list_cash_movements(
        request.args.get("shift_id"),
        status=request.args.get("status"),
        limit=max(1, min(limit, 200)),
    )
    return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)})


@approvals_bp.post("/cash-movements/<movement_id>/approve")
@require_actor
@require_permission(CAP_APPROVAL_GRANT)
def approve_movement_route(movement_id):
    try:
        movement = get_services().approvals.approve_cash_movement(movement_id)
        return jsonify({"movement": movement.to_dict()})
    except Exception as exc:
        return json_error(exc, "approve cash movement")


@approvals_bp.post("/cash-movements/<movement_id>/reject")
@require_actor
@require_permission(CAP_APPROVAL_GRANT)
def reject_movement_route(movement_id):
    try:
        data = request.get_json(silent=True) or {}
        movement = get_services().approvals.reject_cash_movement(movement_id, data.get("reason"))
        return jsonify({"movement": movement.to_dict()})
    except Exception as exc:
        return json_error(exc, "reject cash movement")


# =============================================================================
# SUPERVISOR DASHBOARD
# =============================================================================

@approvals_bp.get("/dashboard")
@require_actor
def dashboard_route():
    """Query params: location_id, since (ISO 8601; default start of today)."""
    try:
        try:
            since = parse_iso_datetime(request.args.get("since"))
        except ValueError:
            raise ValidationError("since must be an ISO 8601 datetime")
        summary = get_services().approvals.dashboard(request.args.get("location_id"), since=since)
        summary["since"] = to_utc_z(summary["since"])
        summary["open_shifts"] = [s.to_dict() for s in summary["open_shifts"]]
        return jsonify(summary)
    except Exception as exc:
        return json_error(exc, "load dashboard")
