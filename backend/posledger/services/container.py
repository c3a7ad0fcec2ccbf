"""
Per-application service wiring.

One terminal has one identity, one clock, one connectivity monitor and one
sync processor; the ledger services are thin objects over db.session that
share them. create_app builds a ServiceContainer and stores it in
app.extensions["posledger"].
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..time_utils import SystemClock
from .approval_service import ApprovalWorkflow
from .cart_service import CartEngine
from .connectivity import ConnectivityMonitor, SyncScheduler
from .identity import SessionIdentity
from .products_service import ProductCatalog
from .shift_service import ShiftLedger
from .sync_service import HttpSyncTransport, SyncQueueProcessor
from .transaction_service import TransactionService

EXTENSION_KEY = "posledger"


class ServiceContainer:
    def __init__(self, app, *, clock=None, identity=None, connectivity=None, transport=None):
        config = app.config
        self.clock = clock or SystemClock()
        self.identity = identity or SessionIdentity()
        self.connectivity = connectivity or ConnectivityMonitor(online=True)
        self.transport = transport or HttpSyncTransport(
            config.get("SYNC_REMOTE_URL"),
            terminal_id=config["TERMINAL_ID"],
            timeout=config["SYNC_TIMEOUT_SECONDS"],
        )

        session = db.session
        self.catalog = ProductCatalog(session)
        self.carts = CartEngine(session, clock=self.clock, denomination=config["CASH_DENOMINATION_CENTS"])
        self.shifts = ShiftLedger(session, clock=self.clock, identity=self.identity)
        self.transactions = TransactionService(
            session,
            clock=self.clock,
            identity=self.identity,
            carts=self.carts,
            shifts=self.shifts,
            connectivity=self.connectivity,
        )
        self.approvals = ApprovalWorkflow(session, clock=self.clock, identity=self.identity, shifts=self.shifts)

        self.processor = SyncQueueProcessor(
            self.transport,
            app=app,
            clock=self.clock,
            max_retries=config["SYNC_MAX_RETRIES"],
            backoff_base_seconds=config["SYNC_BACKOFF_BASE_SECONDS"],
            backoff_max_seconds=config["SYNC_BACKOFF_MAX_SECONDS"],
        )
        self.processor.attach(self.connectivity)

        self.scheduler = SyncScheduler(
            self.processor,
            self.connectivity,
            interval_seconds=config["SYNC_INTERVAL_SECONDS"],
            probe_url=config.get("CONNECTIVITY_PROBE_URL"),
        )


def get_services(app=None) -> ServiceContainer:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
