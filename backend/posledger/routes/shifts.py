# Overview: Flask API routes for the cashier shift ledger.

"""
Shift API Routes

WHY: Cashier accountability. The signed-in actor opens a shift on a register
with a counted float, takes X reports during the day and closes with a Z
report (or a plain close) against the counted drawer.

SECURITY:
- pos:shift.open / pos:shift.close for the lifecycle
- pos:shift.xreport / pos:shift.zreport for reports
- pos:reports.view to browse other shifts
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor, require_any_permission, require_permission
from ..services.container import get_services
from ..services.identity import (
    CAP_APPROVAL_GRANT,
    CAP_REPORTS_VIEW,
    CAP_SHIFT_CLOSE,
    CAP_SHIFT_OPEN,
    CAP_SHIFT_XREPORT,
    CAP_SHIFT_ZREPORT,
)
from ..validation import require_fields
from .errors import json_error

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.get("/current")
@require_actor
def current_shift_route():
    shift = get_services().shifts.current_shift(g.actor)
    return jsonify({"shift": shift.to_dict() if shift else None})


@shifts_bp.post("")
@require_actor
@require_permission(CAP_SHIFT_OPEN)
def open_shift_route():
    """
    Request body:
    {
        "register_id": "REG-LOC001-1",
        "opening_float_cents": 10000
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "register_id", "opening_float_cents")
        shift = get_services().shifts.open_shift(data["register_id"], data["opening_float_cents"])
        return jsonify({"shift": shift.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "open shift")


@shifts_bp.post("/current/close")
@require_actor
@require_permission(CAP_SHIFT_CLOSE)
def close_shift_route():
    try:
        data = require_fields(request.get_json(silent=True), "actual_cash_cents")
        shift = get_services().shifts.close_shift(data["actual_cash_cents"])
        return jsonify({"shift": shift.to_dict()})
    except Exception as exc:
        return json_error(exc, "close shift")


@shifts_bp.post("/current/x-report")
@require_actor
@require_permission(CAP_SHIFT_XREPORT)
def x_report_route():
    try:
        report = get_services().shifts.generate_x_report()
        return jsonify({"report": report.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "generate X report")


@shifts_bp.post("/current/z-report")
@require_actor
@require_permission(CAP_SHIFT_ZREPORT)
def z_report_route():
    """
    Request body:
    {
        "actual_cash_cents": 15230,
        "approved_by": "Sam Supervisor"  (optional co-sign)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "actual_cash_cents")
        report = get_services().shifts.generate_z_report(
            data["actual_cash_cents"],
            approved_by=data.get("approved_by"),
        )
        return jsonify({"report": report.to_dict(), "shift": report.shift.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "generate Z report")


@shifts_bp.get("")
@require_actor
@require_any_permission(CAP_REPORTS_VIEW, CAP_APPROVAL_GRANT)
def list_shifts_route():
    location_id = request.args.get("location_id") or g.actor.location_id
    status = request.args.get("status")
    limit = request.args.get("limit", default=50, type=int)
    shifts = get_services().shifts.list_shifts(location_id, status=status, limit=max(1, min(limit, 200)))
    return jsonify({"shifts": [s.to_dict() for s in shifts], "count": len(shifts)})


@shifts_bp.get("/<shift_id>")
@require_actor
@require_any_permission(CAP_REPORTS_VIEW, CAP_APPROVAL_GRANT)
def get_shift_route(shift_id):
    try:
        return jsonify({"shift": get_services().shifts.get(shift_id).to_dict()})
    except Exception as exc:
        return json_error(exc, "load shift")
