# backend/posledger/routes/system.py
"""
System health and version endpoints.

Reports local store health, sync backlog and the connectivity flag for
terminal diagnostics.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Location, Product, SyncQueueItem
from ..models.sync import QUEUE_DEAD, QUEUE_PENDING
from ..services.container import get_services
from ..time_utils import to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check local store connectivity and basic operations."""
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        product_count = db.session.query(Product).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "products": product_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sync_health() -> dict:
    """
    Sync backlog. Dead-lettered items need manual review, so they degrade
    the terminal; a pending backlog while offline is normal.
    """
    start_time = time.time()
    try:
        pending = db.session.query(SyncQueueItem).filter_by(status=QUEUE_PENDING).count()
        dead = db.session.query(SyncQueueItem).filter_by(status=QUEUE_DEAD).count()
        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "degraded" if dead else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending": pending,
                "dead_lettered": dead,
                "online": get_services().connectivity.is_online,
            }
        }
        if dead:
            result["warning"] = f"{dead} sync item(s) dead-lettered"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Sync health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Sync queue error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: local store unavailable
    """
    start_time = time.time()

    database_health = check_database_health()
    sync_health = check_sync_health()

    all_checks = [database_health, sync_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "terminal_id": current_app.config["TERMINAL_ID"],
        "timestamp": to_utc_z(get_services().clock.now()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sync": sync_health,
        }
    }
    return response, http_status
