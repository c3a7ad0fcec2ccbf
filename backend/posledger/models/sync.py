from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Entity sync status (transactions, shifts, adjustments, movements)
SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"

# Queue item status
QUEUE_PENDING = "pending"
QUEUE_DEAD = "dead"

ENTITY_TRANSACTION = "transaction"
ENTITY_SHIFT = "shift"
ENTITY_INVENTORY_ADJUSTMENT = "inventory_adjustment"
ENTITY_CASH_MOVEMENT = "cash_movement"

ENTITY_TYPES = (
    ENTITY_TRANSACTION,
    ENTITY_SHIFT,
    ENTITY_INVENTORY_ADJUSTMENT,
    ENTITY_CASH_MOVEMENT,
)


class SyncQueueItem(db.Model):
    """
    Outbox row: one locally committed mutation awaiting remote delivery.

    Written in the same DB transaction as the mutation it records.
    Deleted only after the remote side acknowledges it; failures bump
    retries and push next_attempt_at out. Items that exhaust their retries
    are dead-lettered (kept, status=dead) for manual review.
    """
    __tablename__ = "sync_queue"
    __table_args__ = (
        db.Index("ix_sync_queue_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False, index=True)
    entity_id = db.Column(db.String(36), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=QUEUE_PENDING)
    retries = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_attempt = db.Column(db.DateTime(timezone=True), nullable=True)
    next_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_error = db.Column(db.String(255), nullable=True)
    dead_lettered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "status": self.status,
            "retries": self.retries,
            "created_at": to_utc_z(self.created_at),
            "last_attempt": to_utc_z(self.last_attempt),
            "next_attempt_at": to_utc_z(self.next_attempt_at),
            "last_error": self.last_error,
            "dead_lettered_at": to_utc_z(self.dead_lettered_at),
        }
