"""
Sync Queue (outbox)

WHY: Every local mutation that the remote system of record must learn about
is written to sync_queue in the same DB transaction as the mutation itself.
The processor later replays the queue, oldest first.

DELIVERY SEMANTICS:
- At-least-once: an item is deleted only after the remote side acknowledges
  it; a lost acknowledgment means it is sent again. The remote side must be
  idempotent per entity id (and per Idempotency-Key for a given item).
- Failures (including exceptions from the transport) bump retries, stamp
  last_attempt and schedule next_attempt_at with bounded exponential backoff.
- After max_retries failures the item is dead-lettered: kept for manual
  review with status=dead, and the entity's sync_status becomes failed.
- At most one pass runs at a time. A pass requested while one is running is
  folded into a single follow-up pass.
"""

from __future__ import annotations

import enum
import logging
import threading
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol

import httpx
from flask import has_app_context
from sqlalchemy import update

from ..extensions import db
from ..models import CashMovement, InventoryAdjustment, SaleTransaction, Shift, SyncQueueItem
from ..models.sync import (
    ENTITY_CASH_MOVEMENT,
    ENTITY_INVENTORY_ADJUSTMENT,
    ENTITY_SHIFT,
    ENTITY_TRANSACTION,
    ENTITY_TYPES,
    QUEUE_DEAD,
    QUEUE_PENDING,
    SYNC_FAILED,
    SYNC_PENDING,
    SYNC_SYNCED,
)
from ..signals import connectivity_changed, sync_pass_finished
from ..time_utils import SystemClock
from ..validation import ValidationError

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    ENTITY_TRANSACTION: SaleTransaction,
    ENTITY_SHIFT: Shift,
    ENTITY_INVENTORY_ADJUSTMENT: InventoryAdjustment,
    ENTITY_CASH_MOVEMENT: CashMovement,
}

# Client errors that are worth retrying: request timeout, rate limited
RETRYABLE_CLIENT_ERRORS = (408, 429)


class SyncError(Exception):
    """
    Failure delivering a queued item. Never surfaced as a failed sale.

    retryable=False marks a permanent rejection: the item is dead-lettered
    on the first attempt instead of backing off.
    """

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


# =============================================================================
# ENQUEUE
# =============================================================================

def mark_entity(session, entity_type: str, entity_id: str, **values) -> None:
    """
    Set sync bookkeeping columns on the entity behind a queue item.

    Plain UPDATE: sync status sits outside the business version counter, so
    it never conflicts with a concurrent ledger write.
    """
    model = ENTITY_MODELS.get(entity_type)
    if model is None:
        return
    session.execute(update(model).where(model.id == entity_id).values(**values))


def enqueue(entity_type: str, entity_id: str, payload: dict, *, session=None, clock=None) -> SyncQueueItem:
    """
    Append an outbox item inside the caller's DB transaction.

    Does not commit: the item becomes durable together with the mutation
    it describes, or not at all.
    """
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(f"Unknown sync entity type: {entity_type}")
    session = session or db.session
    clock = clock or SystemClock()

    item = SyncQueueItem(
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload,
        status=QUEUE_PENDING,
        retries=0,
        created_at=clock.now(),
    )
    session.add(item)
    session.flush()

    # A new mutation makes an already synced entity pending again
    values = {"sync_status": SYNC_PENDING}
    if entity_type == ENTITY_TRANSACTION:
        values["synced_at"] = None
    mark_entity(session, entity_type, entity_id, **values)
    return item


# =============================================================================
# TRANSPORT
# =============================================================================

class DeliveryOutcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    status_code: Optional[int] = None
    error: Optional[str] = None
    # Delivery was cut off because the network went away
    connectivity_lost: bool = False
    # False for a permanent rejection that no retry can fix
    retryable: bool = True

    @property
    def ok(self) -> bool:
        return self.outcome is DeliveryOutcome.SUCCESS


class SyncTransport(Protocol):
    def deliver(self, item: SyncQueueItem) -> DeliveryResult: ...


class HttpSyncTransport:
    """
    POSTs one queue item to the remote sync endpoint.

    Body: {"entityType", "entityId", "payload", "terminalId", "queueItemId"}
    Header: Idempotency-Key "<terminal>:<queue item id>"

    2xx is an acknowledgment; 409 means the remote already applied this
    item and is treated as one too. Any other 4xx except 408 and 429 is a
    permanent rejection of the payload.
    """

    def __init__(self, base_url: str | None, *, terminal_id: str, timeout: float = 10.0,
                 client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.terminal_id = terminal_id
        self.timeout = timeout
        self._client = client

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def idempotency_key(self, item: SyncQueueItem) -> str:
        return f"{self.terminal_id}:{item.id}"

    def deliver(self, item: SyncQueueItem) -> DeliveryResult:
        if not self.base_url:
            raise SyncError("Remote sync endpoint not configured")

        body = {
            "entityType": item.entity_type,
            "entityId": item.entity_id,
            "payload": item.payload,
            "terminalId": self.terminal_id,
            "queueItemId": item.id,
        }
        try:
            response = self._http().post(
                f"{self.base_url}/sync/{item.entity_type}",
                json=body,
                headers={"Idempotency-Key": self.idempotency_key(item)},
            )
        except httpx.TimeoutException as exc:
            return DeliveryResult(DeliveryOutcome.TIMEOUT, error=f"Timed out: {exc}")
        except httpx.TransportError as exc:
            return DeliveryResult(DeliveryOutcome.FAILURE, error=f"Network error: {exc}", connectivity_lost=True)

        if response.is_success or response.status_code == 409:
            return DeliveryResult(DeliveryOutcome.SUCCESS, status_code=response.status_code)
        return DeliveryResult(
            DeliveryOutcome.FAILURE,
            status_code=response.status_code,
            error=f"Remote rejected item: HTTP {response.status_code}",
            retryable=not 400 <= response.status_code < 500 or response.status_code in RETRYABLE_CLIENT_ERRORS,
        )


# =============================================================================
# PROCESSOR
# =============================================================================

@dataclass
class SyncPassResult:
    synced: int = 0
    failed: int = 0
    dead_lettered: int = 0
    deferred: int = 0
    passes: int = 0
    offline: bool = False

    def merge(self, other: "SyncPassResult") -> None:
        self.synced += other.synced
        self.failed += other.failed
        self.dead_lettered += other.dead_lettered
        self.deferred += other.deferred
        self.passes += other.passes
        self.offline = other.offline

    def to_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "dead_lettered": self.dead_lettered,
            "deferred": self.deferred,
            "passes": self.passes,
            "offline": self.offline,
        }


class SyncQueueProcessor:
    def __init__(
        self,
        transport: SyncTransport,
        *,
        app=None,
        clock=None,
        connectivity=None,
        max_retries: int = 10,
        backoff_base_seconds: float = 2.0,
        backoff_max_seconds: float = 300.0,
    ):
        self.transport = transport
        self.app = app
        self.clock = clock or SystemClock()
        self.connectivity = connectivity
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds

        self._state_lock = threading.Lock()
        self._running = False
        self._follow_up = False

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def attach(self, connectivity) -> None:
        """
        Run a pass whenever the connectivity monitor reports offline -> online.

        The receiver is held weakly; the owning ServiceContainer keeps the
        processor alive for the lifetime of its app.
        """
        self.connectivity = connectivity
        connectivity_changed.connect(self._on_connectivity_changed, sender=connectivity)

    def _on_connectivity_changed(self, sender, online: bool, **kwargs) -> None:
        if online:
            logger.info("Connection restored, processing sync queue")
            self.run_pass()

    def start(self) -> SyncPassResult | None:
        """Startup trigger: drain once if already online."""
        if self.connectivity is None or self.connectivity.is_online:
            return self.run_pass()
        return None

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    def run_pass(self) -> SyncPassResult | None:
        """
        Drain the queue.

        Returns the combined result, or None when a pass was already running;
        in that case the running pass performs one more drain before it exits.
        """
        with self._state_lock:
            if self._running:
                self._follow_up = True
                logger.debug("Sync pass already running, follow-up queued")
                return None
            self._running = True
            self._follow_up = False

        result = SyncPassResult()
        try:
            while True:
                with self._app_scope():
                    result.merge(self._drain())
                with self._state_lock:
                    if not self._follow_up:
                        self._running = False
                        break
                    self._follow_up = False
        except BaseException:
            with self._state_lock:
                self._running = False
                self._follow_up = False
            raise

        logger.info(
            "Sync completed: %d synced, %d failed, %d dead-lettered, %d deferred",
            result.synced, result.failed, result.dead_lettered, result.deferred,
        )
        sync_pass_finished.send(self, result=result)
        return result

    def _app_scope(self):
        if self.app is None or has_app_context():
            return nullcontext()
        return self.app.app_context()

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    def _backoff(self, retries: int) -> timedelta:
        seconds = min(self.backoff_base_seconds * (2 ** max(retries - 1, 0)), self.backoff_max_seconds)
        return timedelta(seconds=seconds)

    def _drain(self) -> SyncPassResult:
        result = SyncPassResult(passes=1)
        if self.connectivity is not None and not self.connectivity.is_online:
            result.offline = True
            logger.info("Offline, skipping sync pass")
            return result

        session = db.session
        pending_ids = [
            row.id for row in session.query(SyncQueueItem.id).filter_by(status=QUEUE_PENDING).order_by(
                SyncQueueItem.created_at, SyncQueueItem.id
            ).all()
        ]

        for item_id in pending_ids:
            item = session.get(SyncQueueItem, item_id)
            if item is None or item.status != QUEUE_PENDING:
                continue

            now = self.clock.now()
            if item.next_attempt_at is not None and item.next_attempt_at > now:
                result.deferred += 1
                continue

            try:
                delivery = self.transport.deliver(item)
            except SyncError as exc:
                delivery = DeliveryResult(
                    DeliveryOutcome.FAILURE,
                    status_code=exc.status_code,
                    error=str(exc),
                    retryable=exc.retryable,
                )
            except Exception as exc:
                logger.warning("Sync failed for %s:%s", item.entity_type, item.entity_id, exc_info=True)
                delivery = DeliveryResult(DeliveryOutcome.FAILURE, error=str(exc) or type(exc).__name__)

            if delivery.ok:
                self._acknowledge(session, item)
                result.synced += 1
                continue

            if self._record_failure(session, item, delivery):
                result.dead_lettered += 1
            else:
                result.failed += 1

            if delivery.connectivity_lost:
                if self.connectivity is not None:
                    self.connectivity.set_online(False)
                result.offline = True
                logger.info("Connectivity lost mid-pass, stopping")
                break

        return result

    def _acknowledge(self, session, item: SyncQueueItem) -> None:
        entity_type, entity_id = item.entity_type, item.entity_id
        session.delete(item)
        session.flush()

        # An entity is synced once none of its mutations are still queued
        remaining = session.query(SyncQueueItem).filter_by(
            entity_type=entity_type, entity_id=entity_id
        ).count()
        if remaining == 0:
            values = {"sync_status": SYNC_SYNCED}
            if entity_type == ENTITY_TRANSACTION:
                values["synced_at"] = self.clock.now()
            mark_entity(session, entity_type, entity_id, **values)
        session.commit()
        logger.debug("Synced %s:%s", entity_type, entity_id)

    def _record_failure(self, session, item: SyncQueueItem, delivery: DeliveryResult) -> bool:
        now = self.clock.now()
        item.retries += 1
        item.last_attempt = now
        item.last_error = (delivery.error or delivery.outcome.value)[:255]
        item.next_attempt_at = now + self._backoff(item.retries)

        dead = not delivery.retryable or item.retries >= self.max_retries
        if dead:
            item.status = QUEUE_DEAD
            item.dead_lettered_at = now
            mark_entity(session, item.entity_type, item.entity_id, sync_status=SYNC_FAILED)
            logger.error("Dead-lettered %s:%s after %d attempts: %s",
                         item.entity_type, item.entity_id, item.retries, item.last_error)
        else:
            logger.warning("Delivery of %s:%s failed (attempt %d): %s",
                           item.entity_type, item.entity_id, item.retries, item.last_error)
        session.commit()
        return dead

    # ------------------------------------------------------------------
    # Inspection / manual review
    # ------------------------------------------------------------------

    def status(self) -> dict:
        with self._app_scope():
            session = db.session
            pending = session.query(SyncQueueItem).filter_by(status=QUEUE_PENDING).count()
            dead = session.query(SyncQueueItem).filter_by(status=QUEUE_DEAD).count()
        return {
            "pending": pending,
            "dead_lettered": dead,
            "online": self.connectivity.is_online if self.connectivity is not None else None,
            "pass_running": self.is_running,
        }

    def requeue_dead_letters(self) -> int:
        """Return dead-lettered items to the queue with a fresh retry budget."""
        with self._app_scope():
            session = db.session
            items = session.query(SyncQueueItem).filter_by(status=QUEUE_DEAD).all()
            for item in items:
                item.status = QUEUE_PENDING
                item.retries = 0
                item.next_attempt_at = None
                item.dead_lettered_at = None
                mark_entity(session, item.entity_type, item.entity_id, sync_status=SYNC_PENDING)
            session.commit()
        logger.info("Requeued %d dead-lettered sync items", len(items))
        return len(items)
