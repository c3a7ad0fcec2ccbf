"""
Cart Engine

WHY: Owns the lifecycle of the single active cart on this terminal. Every
mutation is a read-modify-write on one cart row, so each one runs inside
run_with_retry and re-reads the cart; the cart's version_id turns a lost
update into a StaleDataError that is retried against fresh state.

LIFECYCLE:
- active -> completed (TransactionService.complete)
- active -> cancelled (clear)
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import flag_modified

from ..extensions import db
from ..models import Cart, CartLineItem, Product
from ..models.sales import CART_ACTIVE, CART_CANCELLED
from ..signals import cart_changed
from ..time_utils import SystemClock
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    require_amount_cents,
    require_positive_int,
    require_tax_rate,
)
from .concurrency import CONCURRENCY_ERRORS, lock_for_update, run_with_retry
from .totals import DEFAULT_DENOMINATION_CENTS, calculate_cart_totals, calculate_line

logger = logging.getLogger(__name__)

# A second terminal-local writer can win the race to create the active cart;
# the unique index rejects ours and the retry picks theirs up.
CART_RETRY_ERRORS = CONCURRENCY_ERRORS + (IntegrityError,)


class CartEngine:
    def __init__(self, session=None, *, clock=None, denomination: int = DEFAULT_DENOMINATION_CENTS):
        self.session = session or db.session
        self.clock = clock or SystemClock()
        self.denomination = denomination

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def active_cart(self) -> Cart | None:
        """Current active cart, if any."""
        return self.session.query(Cart).filter_by(status=CART_ACTIVE).first()

    def resume(self) -> Cart | None:
        """
        Session resume on startup: pick up the cart left active by a previous
        session instead of creating a second one.
        """
        cart = self.active_cart()
        if cart is not None:
            logger.info("Resumed active cart %s with %d lines", cart.id, len(cart.line_items))
        return cart

    def lock_active_cart(self) -> Cart | None:
        """Active cart read for a write; completion uses it inside its own unit of work."""
        return lock_for_update(self.session.query(Cart).filter_by(status=CART_ACTIVE)).first()

    def _require_active_cart(self) -> Cart:
        cart = self.lock_active_cart()
        if cart is None:
            raise ConflictError("No active cart")
        return cart

    def _create_cart(self) -> Cart:
        now = self.clock.now()
        cart = Cart(status=CART_ACTIVE, created_at=now, updated_at=now)
        self.session.add(cart)
        self.session.flush()
        logger.info("Created cart %s", cart.id)
        return cart

    def _find_line(self, cart: Cart, line_id: str) -> CartLineItem:
        line = next((item for item in cart.line_items if item.id == line_id), None)
        if line is None:
            raise NotFoundError(f"Line item {line_id} not found in active cart")
        return line

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def _reprice_line(self, line: CartLineItem) -> None:
        totals = calculate_line(line.unit_price_cents, line.quantity, line.tax_rate)
        line.line_total_cents = totals.line_total_cents
        line.line_tax_cents = totals.line_tax_cents

    def _recompute(self, cart: Cart) -> None:
        totals = calculate_cart_totals(cart.line_items, self.denomination)
        cart.subtotal_cents = totals.subtotal_cents
        cart.total_tax_cents = totals.total_tax_cents
        cart.total_discount_cents = totals.total_discount_cents
        cart.grand_total_cents = totals.grand_total_cents
        cart.rounding_adjustment_cents = totals.rounding_adjustment_cents
        cart.updated_at = self.clock.now()
        # Force a versioned UPDATE even when totals did not move, so a
        # concurrent writer on this cart always conflicts.
        flag_modified(cart, "updated_at")

    def _commit(self, cart: Cart | None, action: str) -> None:
        self.session.commit()
        cart_changed.send(self, cart=cart, action=action)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(self, product, quantity=1) -> Cart:
        """
        Add a product to the active cart, creating the cart lazily.

        Adding a product that already has a line merges the quantity into it.

        Raises:
            ValidationError: quantity not a positive integer, or product has an invalid price/tax rate
            NotFoundError: product id unknown
        """
        quantity = require_positive_int(quantity, "quantity")

        product_id = product.id if isinstance(product, Product) else product

        def _op():
            catalog_item = self.session.get(Product, product_id)
            if catalog_item is None:
                raise NotFoundError(f"Product {product_id} not found")
            if catalog_item.price_cents is None or catalog_item.price_cents < 0:
                raise ValidationError("Product has no valid price")
            require_tax_rate(catalog_item.tax_rate, "Product tax rate")

            cart = self.lock_active_cart() or self._create_cart()

            line = next((item for item in cart.line_items if item.product_id == catalog_item.id), None)
            if line is not None:
                line.quantity += quantity
            else:
                line = CartLineItem(
                    product_id=catalog_item.id,
                    product_name=catalog_item.name,
                    position=len(cart.line_items),
                    quantity=quantity,
                    unit_price_cents=catalog_item.price_cents,
                    tax_rate=catalog_item.tax_rate,
                    discount_cents=0,
                )
                cart.line_items.append(line)

            self._reprice_line(line)
            self._recompute(cart)
            self._commit(cart, "add_item")
            return cart

        return run_with_retry(_op, session=self.session, retry_on=CART_RETRY_ERRORS)

    def update_quantity(self, line_id: str, quantity) -> Cart:
        """
        Set a line's quantity. quantity <= 0 removes the line.

        Raises:
            ConflictError: no active cart
            NotFoundError: line not in the active cart
        """
        quantity = coerce_int(quantity, "quantity")

        def _op():
            cart = self._require_active_cart()
            line = self._find_line(cart, line_id)

            if quantity <= 0:
                cart.line_items.remove(line)
                for position, remaining in enumerate(cart.line_items):
                    remaining.position = position
            else:
                line.quantity = quantity
                if line.discount_cents > line.unit_price_cents * quantity:
                    line.discount_cents = line.unit_price_cents * quantity
                self._reprice_line(line)

            self._recompute(cart)
            self._commit(cart, "update_quantity" if quantity > 0 else "remove_item")
            return cart

        return run_with_retry(_op, session=self.session)

    def remove_item(self, line_id: str) -> Cart:
        return self.update_quantity(line_id, 0)

    def apply_line_discount(self, line_id: str, discount_cents) -> Cart:
        """Set a per-line discount (0 clears it). Cannot exceed the line total."""
        discount = require_amount_cents(discount_cents, "discount_cents")

        def _op():
            cart = self._require_active_cart()
            line = self._find_line(cart, line_id)
            if discount > line.line_total_cents:
                raise ValidationError("discount_cents cannot exceed the line total")
            line.discount_cents = discount
            self._recompute(cart)
            self._commit(cart, "apply_discount")
            return cart

        return run_with_retry(_op, session=self.session)

    def set_customer_ref(self, customer_ref: str | None) -> Cart:
        def _op():
            cart = self._require_active_cart()
            cart.customer_ref = (customer_ref or "").strip() or None
            cart.updated_at = self.clock.now()
            flag_modified(cart, "updated_at")
            self._commit(cart, "set_customer_ref")
            return cart

        return run_with_retry(_op, session=self.session)

    def clear(self) -> Cart | None:
        """
        Cancel the active cart. No-op when there is none.

        Returns the cancelled cart, or None.
        """
        def _op():
            cart = self.lock_active_cart()
            if cart is None:
                return None
            now = self.clock.now()
            cart.status = CART_CANCELLED
            cart.cancelled_at = now
            cart.updated_at = now
            self._commit(cart, "clear")
            logger.info("Cancelled cart %s", cart.id)
            return cart

        return run_with_retry(_op, session=self.session)
