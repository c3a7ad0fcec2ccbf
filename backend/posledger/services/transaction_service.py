"""
Transaction Completion Service

WHY: Turns the priced active cart plus a payment method into a finalized,
audited transaction. Everything below happens in one DB transaction:

1. create the Transaction (completed, sync pending) with a seed audit entry
2. move the cart active -> completed
3. enqueue the transaction + cart snapshot for sync
4. for CASH, accrue the sale into the actor's open shift

The cart row's version check means two completions racing on the same cart
cannot both succeed: the loser re-reads, finds no active cart, and fails.
"""

from __future__ import annotations

import logging
import secrets

from ..extensions import db
from ..models import AuditEntry, SaleTransaction
from ..models.sales import CART_ACTIVE, CART_COMPLETED, PAYMENT_CARD, PAYMENT_CASH, PAYMENT_METHODS, PAYMENT_MOBILE
from ..models.sync import ENTITY_TRANSACTION, SYNC_PENDING
from ..signals import transaction_completed
from ..time_utils import SystemClock
from ..validation import ConflictError, NotFoundError, require_amount_cents, require_choice, require_text
from .cart_service import CartEngine
from .concurrency import run_with_retry
from .identity import require_actor
from .shift_service import ShiftLedger
from .sync_service import enqueue

logger = logging.getLogger(__name__)

# Methods that need the payment network; cash and transfers work offline
ONLINE_ONLY_METHODS = (PAYMENT_CARD, PAYMENT_MOBILE)

AUDIT_SALE_COMPLETED = "SALE_COMPLETED"


def _receipt_id(clock) -> str:
    return f"R-{clock.now():%Y%m%d}-{secrets.token_hex(3).upper()}"


class TransactionService:
    def __init__(self, session=None, *, clock=None, identity=None, carts: CartEngine | None = None,
                 shifts: ShiftLedger | None = None, connectivity=None):
        self.session = session or db.session
        self.clock = clock or SystemClock()
        self.identity = identity
        self.carts = carts or CartEngine(self.session, clock=self.clock)
        self.shifts = shifts or ShiftLedger(self.session, clock=self.clock, identity=identity)
        self.connectivity = connectivity

    def complete(self, payment_method: str, tendered_cents, reference_number: str | None = None) -> SaleTransaction:
        """
        Settle the active cart.

        Args:
            payment_method: CASH, BANK_TRANSFER, CARD, MOBILE
            tendered_cents: amount handed over; only CASH gives change
            reference_number: transfer/card/mobile reference (optional)

        Raises:
            ValidationError: unknown method or negative tender
            ConflictError: no actor, no active cart, empty cart, CASH without an
                open shift, or an online-only method while offline
        """
        require_choice(payment_method, "payment method", PAYMENT_METHODS)
        tendered = require_amount_cents(tendered_cents, "tendered_cents")
        actor = require_actor(self.identity)

        if (
            payment_method in ONLINE_ONLY_METHODS
            and self.connectivity is not None
            and not self.connectivity.is_online
        ):
            raise ConflictError(f"{payment_method} payments are unavailable offline")

        def _op():
            cart = self.carts.lock_active_cart()
            if cart is None or cart.status != CART_ACTIVE:
                raise ConflictError("No active cart")
            if not cart.line_items:
                raise ConflictError("Cannot complete an empty cart")

            shift = self.shifts.current_shift(actor)
            if payment_method == PAYMENT_CASH and shift is None:
                raise ConflictError("Cash sales require an open shift")

            grand_total = cart.grand_total_cents
            change_given = max(0, tendered - grand_total) if payment_method == PAYMENT_CASH else 0
            now = self.clock.now()

            transaction = SaleTransaction(
                cart_id=cart.id,
                shift_id=shift.id if shift else None,
                user_id=actor.id,
                payment_method=payment_method,
                payment_amount_cents=grand_total,
                tendered_cents=tendered,
                change_given_cents=change_given,
                receipt_id=_receipt_id(self.clock),
                reference_number=(reference_number or "").strip() or None,
                status="completed",
                sync_status=SYNC_PENDING,
                offline_created_at=now,
            )
            transaction.audit_trail.append(AuditEntry(
                action=AUDIT_SALE_COMPLETED,
                user_id=actor.id,
                timestamp=now,
                details={
                    "total": grand_total,
                    "paymentMethod": payment_method,
                    "itemCount": len(cart.line_items),
                },
            ))
            self.session.add(transaction)

            cart.status = CART_COMPLETED
            cart.completed_at = now
            cart.updated_at = now
            self.session.flush()

            enqueue(
                ENTITY_TRANSACTION,
                transaction.id,
                {"transaction": transaction.to_dict(), "cart": cart.to_dict()},
                session=self.session,
                clock=self.clock,
            )

            if payment_method == PAYMENT_CASH:
                self.shifts.accrue_sale(grand_total, shift_id=shift.id, commit=False)

            self.session.commit()
            return transaction

        transaction = run_with_retry(_op, session=self.session)
        logger.info("Transaction %s completed: %s %d (change %d)", transaction.id,
                    transaction.payment_method, transaction.payment_amount_cents, transaction.change_given_cents)
        transaction_completed.send(self, transaction=transaction)
        return transaction

    def get(self, transaction_id: str) -> SaleTransaction:
        transaction = self.session.get(SaleTransaction, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    def recent(self, limit: int = 50) -> list[SaleTransaction]:
        """Newest first, for the payments screen."""
        return self.session.query(SaleTransaction).order_by(
            SaleTransaction.offline_created_at.desc()
        ).limit(limit).all()

    def append_audit(self, transaction_id: str, action: str, details: dict | None = None) -> AuditEntry:
        """Append a fact to a transaction's audit trail. Existing entries are never touched."""
        actor = require_actor(self.identity)
        action = require_text(action, "action", max_length=64)
        transaction = self.get(transaction_id)

        entry = AuditEntry(
            transaction_id=transaction.id,
            action=action,
            user_id=actor.id,
            timestamp=self.clock.now(),
            details=details or None,
        )
        self.session.add(entry)
        self.session.commit()
        return entry
