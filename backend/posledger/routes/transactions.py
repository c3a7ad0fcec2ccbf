# Overview: Flask API routes for settling the active cart and reading sales.

"""
Transaction API Routes

POST /api/transactions settles the active cart:
{
    "payment_method": "CASH" | "BANK_TRANSFER" | "CARD" | "MOBILE",
    "tendered_cents": 1000,
    "reference_number": "TRF-778"  (optional)
}

payment_amount_cents on the result is the cart's grand total, never the
tendered amount; only CASH gives change.
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_permission
from ..services.container import get_services
from ..services.identity import CAP_SALE_CREATE
from ..validation import require_fields
from .errors import json_error

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_actor
@require_permission(CAP_SALE_CREATE)
def complete_transaction_route():
    try:
        data = require_fields(request.get_json(silent=True), "payment_method", "tendered_cents")
        transaction = get_services().transactions.complete(
            data["payment_method"],
            data["tendered_cents"],
            reference_number=data.get("reference_number"),
        )
        return jsonify({"transaction": transaction.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "complete transaction")


@transactions_bp.get("")
@require_actor
@require_permission(CAP_SALE_CREATE)
def recent_transactions_route():
    limit = request.args.get("limit", default=50, type=int)
    transactions = get_services().transactions.recent(limit=max(1, min(limit, 200)))
    return jsonify({"transactions": [t.to_dict() for t in transactions], "count": len(transactions)})


@transactions_bp.get("/<transaction_id>")
@require_actor
@require_permission(CAP_SALE_CREATE)
def get_transaction_route(transaction_id):
    try:
        transaction = get_services().transactions.get(transaction_id)
        return jsonify({"transaction": transaction.to_dict()})
    except Exception as exc:
        return json_error(exc, "load transaction")


@transactions_bp.post("/<transaction_id>/audit")
@require_actor
@require_permission(CAP_SALE_CREATE)
def append_audit_route(transaction_id):
    """Request body: {"action": "RECEIPT_PRINTED", "details": {...}}"""
    try:
        data = require_fields(request.get_json(silent=True), "action")
        entry = get_services().transactions.append_audit(transaction_id, data["action"], data.get("details"))
        return jsonify({"audit_entry": entry.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, "append audit entry")
