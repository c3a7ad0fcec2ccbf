"""Active cart lifecycle: lazy creation, merging, removal, discounts, resume."""

from decimal import Decimal

import pytest

from posledger.models import Cart
from posledger.models.sales import CART_ACTIVE, CART_CANCELLED
from posledger.services.cart_service import CartEngine
from posledger.signals import cart_changed
from posledger.validation import ConflictError, NotFoundError, ValidationError


def _active_count(session):
    return session.query(Cart).filter_by(status=CART_ACTIVE).count()


def test_add_item_creates_single_active_cart(services, db_session, product):
    assert services.carts.active_cart() is None

    cart = services.carts.add_item(product.id)

    assert cart.status == CART_ACTIVE
    assert _active_count(db_session) == 1
    assert len(cart.line_items) == 1
    line = cart.line_items[0]
    assert line.quantity == 1
    assert line.product_name == "Cola 330ml"
    assert line.line_total_cents == 300


def test_adding_same_product_merges_quantity(services, db_session, product):
    services.carts.add_item(product.id, 2)
    cart = services.carts.add_item(product, 3)

    assert len(cart.line_items) == 1
    assert cart.line_items[0].quantity == 5
    assert _active_count(db_session) == 1


def test_totals_example(services, product):
    cart = services.carts.add_item(product.id, 2)

    line = cart.line_items[0]
    assert line.line_total_cents == 600
    assert line.line_tax_cents == 45
    assert cart.subtotal_cents == 600
    assert cart.total_tax_cents == 45
    assert cart.grand_total_cents == 645
    assert cart.rounding_adjustment_cents == 0


@pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5, True])
def test_add_item_rejects_bad_quantity(services, db_session, product, quantity):
    with pytest.raises(ValidationError):
        services.carts.add_item(product.id, quantity)
    assert _active_count(db_session) == 0


def test_add_unknown_product(services, db_session):
    with pytest.raises(NotFoundError):
        services.carts.add_item("no-such-product")
    assert _active_count(db_session) == 0


def test_line_snapshot_survives_price_change(services, db_session, product):
    services.carts.add_item(product.id, 1)

    product.price_cents = 999
    db_session.commit()

    cart = services.carts.add_item(product.id, 1)
    line = cart.line_items[0]
    assert line.unit_price_cents == 300
    assert line.line_total_cents == 600


def test_update_quantity_reprices_line(services, product, other_product):
    cart = services.carts.add_item(product.id, 1)
    services.carts.add_item(other_product.id, 1)
    line_id = cart.line_items[0].id

    cart = services.carts.update_quantity(line_id, 4)

    line = next(item for item in cart.line_items if item.id == line_id)
    assert line.quantity == 4
    assert line.line_total_cents == 1200
    assert line.line_tax_cents == 90
    assert cart.subtotal_cents == 1200 + 180


def test_update_quantity_to_zero_removes_line_and_renumbers(services, product, other_product):
    cart = services.carts.add_item(product.id, 1)
    first_id = cart.line_items[0].id
    services.carts.add_item(other_product.id, 2)

    cart = services.carts.update_quantity(first_id, 0)

    assert [item.product_id for item in cart.line_items] == [other_product.id]
    assert cart.line_items[0].position == 0
    assert cart.subtotal_cents == 360


def test_remove_item(services, product):
    cart = services.carts.add_item(product.id, 3)
    cart = services.carts.remove_item(cart.line_items[0].id)

    assert cart.line_items == []
    assert cart.grand_total_cents == 0
    assert cart.status == CART_ACTIVE


def test_update_unknown_line(services, product):
    services.carts.add_item(product.id)
    with pytest.raises(NotFoundError):
        services.carts.update_quantity("missing-line", 2)


def test_update_without_active_cart(services, db_session):
    with pytest.raises(ConflictError):
        services.carts.update_quantity("anything", 2)


def test_line_discount(services, db_session, other_product):
    cart = services.carts.add_item(other_product.id, 2)  # 360, no tax
    line_id = cart.line_items[0].id

    cart = services.carts.apply_line_discount(line_id, 60)

    assert cart.line_items[0].discount_cents == 60
    assert cart.total_discount_cents == 60
    assert cart.grand_total_cents == 300

    with pytest.raises(ValidationError):
        services.carts.apply_line_discount(line_id, 361)
    with pytest.raises(ValidationError):
        services.carts.apply_line_discount(line_id, -1)

    db_session.expire_all()
    assert services.carts.active_cart().total_discount_cents == 60


def test_lowering_quantity_caps_discount(services, other_product):
    cart = services.carts.add_item(other_product.id, 2)
    line_id = cart.line_items[0].id
    services.carts.apply_line_discount(line_id, 300)

    cart = services.carts.update_quantity(line_id, 1)

    assert cart.line_items[0].discount_cents == 180
    assert cart.grand_total_cents == 0


def test_customer_ref(services, product):
    services.carts.add_item(product.id)
    cart = services.carts.set_customer_ref("  CUST-42 ")
    assert cart.customer_ref == "CUST-42"

    cart = services.carts.set_customer_ref("")
    assert cart.customer_ref is None


def test_clear_cancels_active_cart(services, db_session, product):
    cart = services.carts.add_item(product.id)

    cancelled = services.carts.clear()

    assert cancelled.id == cart.id
    assert cancelled.status == CART_CANCELLED
    assert cancelled.cancelled_at is not None
    assert services.carts.active_cart() is None


def test_clear_without_active_cart_is_noop(services, db_session):
    assert services.carts.clear() is None


def test_new_cart_after_clear(services, db_session, product):
    first = services.carts.add_item(product.id)
    services.carts.clear()

    second = services.carts.add_item(product.id)

    assert second.id != first.id
    assert _active_count(db_session) == 1
    assert db_session.query(Cart).count() == 2


def test_resume_picks_up_existing_cart(services, db_session, clock, product):
    cart = services.carts.add_item(product.id, 2)

    fresh_engine = CartEngine(db_session, clock=clock)
    resumed = fresh_engine.resume()

    assert resumed.id == cart.id
    fresh_engine.add_item(product.id, 1)
    assert _active_count(db_session) == 1
    assert resumed.line_items[0].quantity == 3


def test_full_tax_rate_is_accepted(services, db_session, product):
    product.tax_rate = Decimal("1")
    db_session.commit()
    cart = services.carts.add_item(product.id)
    assert cart.line_items[0].line_tax_cents == 300


def test_cart_changed_signal(services, product):
    events = []

    def receiver(sender, cart, action, **kwargs):
        events.append(action)

    with cart_changed.connected_to(receiver):
        cart = services.carts.add_item(product.id)
        services.carts.update_quantity(cart.line_items[0].id, 2)
        services.carts.clear()

    assert events == ["add_item", "update_quantity", "clear"]


def test_custom_denomination(app, db_session, product):
    cart = CartEngine(db_session, denomination=10).add_item(product.id, 1)
    # 300 + 22.5 -> 23 tax = 323 -> 320
    assert cart.total_tax_cents == 23
    assert cart.grand_total_cents == 320
    assert cart.rounding_adjustment_cents == -3
