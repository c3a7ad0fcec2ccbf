# Overview: Flask API routes for inspecting and driving the sync outbox.

from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_any_permission, require_permission
from ..extensions import db
from ..models import SyncQueueItem
from ..models.sync import QUEUE_DEAD, QUEUE_PENDING
from ..services.container import get_services
from ..services.identity import CAP_APPROVAL_GRANT, CAP_REPORTS_VIEW
from ..validation import ValidationError
from .errors import json_error

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@require_actor
def sync_status_route():
    return jsonify(get_services().processor.status())


@sync_bp.get("/queue")
@require_actor
@require_any_permission(CAP_REPORTS_VIEW, CAP_APPROVAL_GRANT)
def sync_queue_route():
    """Query params: status (pending | dead, default pending), limit."""
    try:
        status = request.args.get("status", QUEUE_PENDING)
        if status not in (QUEUE_PENDING, QUEUE_DEAD):
            raise ValidationError("status must be pending or dead")
        limit = request.args.get("limit", default=100, type=int)
        items = db.session.query(SyncQueueItem).filter_by(status=status).order_by(
            SyncQueueItem.created_at, SyncQueueItem.id
        ).limit(max(1, min(limit, 500))).all()
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})
    except Exception as exc:
        return json_error(exc, "load sync queue")


@sync_bp.post("/run")
@require_actor
def run_sync_route():
    """Manual trigger. 202 when a pass is already running (a follow-up is queued)."""
    try:
        result = get_services().processor.run_pass()
        if result is None:
            return jsonify({"queued": True}), 202
        return jsonify({"result": result.to_dict()})
    except Exception as exc:
        return json_error(exc, "run sync pass")


@sync_bp.post("/requeue-dead")
@require_actor
@require_permission(CAP_APPROVAL_GRANT)
def requeue_dead_route():
    try:
        return jsonify({"requeued": get_services().processor.requeue_dead_letters()})
    except Exception as exc:
        return json_error(exc, "requeue dead letters")


@sync_bp.put("/connectivity")
@require_actor
def set_connectivity_route():
    """
    Connectivity signal from the shell: {"online": true}.

    Going offline -> online triggers a sync pass.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("online"), bool):
        return jsonify({"error": "online must be a boolean"}), 400
    monitor = get_services().connectivity
    changed = monitor.set_online(data["online"])
    return jsonify({"online": monitor.is_online, "changed": changed})
