# Overview: Flask CLI command groups for bootstrap, inspection, and sync maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, locations LOC001-LOC003, two registers
#   per location and a demo catalog.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inspection:
# - python -m flask products list [--q cola]
# - python -m flask shifts list [--location LOC001] [--status open]
#
# Sync outbox:
# - python -m flask sync status
# - python -m flask sync run
#   Drain the queue once against SYNC_REMOTE_URL.
# - python -m flask sync requeue-dead
#   Return dead-lettered items to the queue with a fresh retry budget.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Product, Register
from .services.container import get_services
from .services.products_service import ProductCatalog
from .services.shift_service import ShiftLedger

DEFAULT_LOCATIONS = [
    ("LOC001", "Main Store"),
    ("LOC002", "Branch 1"),
    ("LOC003", "Branch 2"),
]

# sku, name, price_cents, tax_rate, category, barcode, stock
DEMO_CATALOG = [
    ("BEV-001", "Cola 330ml", 300, Decimal("0.075"), "beverages", "5000112637922", 48),
    ("BEV-002", "Sparkling Water 500ml", 250, Decimal("0.075"), "beverages", "5449000131805", 36),
    ("BAK-001", "Croissant", 180, Decimal("0"), "bakery", "2000000000011", 20),
    ("BAK-002", "Sourdough Loaf", 650, Decimal("0"), "bakery", "2000000000028", 10),
    ("SNK-001", "Salted Crisps", 199, Decimal("0.075"), "snacks", "5000328437415", 60),
    ("HOM-001", "Dish Soap 750ml", 425, Decimal("0.15"), "household", "8001090621306", 15),
]


def seed_reference_data() -> dict:
    """Create missing locations, registers and demo products. Returns counts of rows added."""
    created = {"locations": 0, "registers": 0, "products": 0}

    for location_id, name in DEFAULT_LOCATIONS:
        if db.session.get(Location, location_id) is None:
            db.session.add(Location(id=location_id, name=name, timezone="UTC"))
            created["locations"] += 1

        for number in (1, 2):
            register_id = f"REG-{location_id}-{number}"
            if db.session.get(Register, register_id) is None:
                db.session.add(Register(
                    id=register_id,
                    location_id=location_id,
                    name=f"{name} Register {number}",
                    status="available",
                ))
                created["registers"] += 1

    for sku, name, price_cents, tax_rate, category, barcode, stock in DEMO_CATALOG:
        if db.session.query(Product).filter_by(sku=sku).first() is None:
            db.session.add(Product(
                sku=sku,
                name=name,
                price_cents=price_cents,
                tax_rate=tax_rate,
                category_id=category,
                barcode=barcode,
                stock_quantity=stock,
            ))
            created["products"] += 1

    db.session.commit()
    return created


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and seed locations, registers and a demo catalog."""
    click.echo("START Initializing terminal...")
    db.create_all()
    created = seed_reference_data()
    click.echo(f"PASS Locations created: {created['locations']}")
    click.echo(f"PASS Registers created: {created['registers']}")
    click.echo(f"PASS Products created: {created['products']}")
    click.echo("DONE Terminal initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including unsynced sales in the outbox!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset. Run: python -m flask system init")


# =============================================================================
# INSPECTION
# =============================================================================

@click.group('products')
def products_group():
    """Catalog inspection commands."""


@products_group.command('list')
@click.option('--q', 'query', default=None, help='Match name, sku or barcode')
@click.option('--category', default=None, help='Category id')
@with_appcontext
def list_products(query, category):
    """List catalog products."""
    products = ProductCatalog().search(query, category_id=category, limit=500)
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"{'SKU':<10} {'Name':<28} {'Price':>8} {'Tax':>7} {'Stock':>6}")
    for p in products:
        click.echo(f"{p.sku:<10} {p.name[:28]:<28} {p.price_cents:>8} {float(p.tax_rate):>7.4f} {p.stock_quantity:>6}")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--location', 'location_id', default=None, help='Location id')
@click.option('--status', type=click.Choice(['open', 'closed']), default=None)
@click.option('--limit', default=20, show_default=True)
@with_appcontext
def list_shifts(location_id, status, limit):
    """List recent shifts, newest first."""
    shifts = ShiftLedger().list_shifts(location_id, status=status, limit=limit)
    if not shifts:
        click.echo("No shifts found.")
        return

    for s in shifts:
        variance = s.cash_difference_cents if s.cash_difference_cents is not None else "-"
        click.echo(
            f"{s.id}  {s.status:<6} register={s.register_id} by={s.opened_by_name} "
            f"expected={s.expected_cash_cents} variance={variance} sync={s.sync_status}"
        )


# =============================================================================
# SYNC OUTBOX
# =============================================================================

@click.group('sync')
def sync_group():
    """Sync outbox commands."""


@sync_group.command('status')
@with_appcontext
def sync_status():
    """Show pending and dead-lettered counts."""
    status = get_services().processor.status()
    click.echo(f"Pending:        {status['pending']}")
    click.echo(f"Dead-lettered:  {status['dead_lettered']}")
    click.echo(f"Online:         {status['online']}")


@sync_group.command('run')
@with_appcontext
def sync_run():
    """Run one sync pass now."""
    result = get_services().processor.run_pass()
    if result is None:
        click.echo("WARN A sync pass is already running; a follow-up pass was queued")
        return
    click.echo(
        f"PASS Synced {result.synced}, failed {result.failed}, "
        f"dead-lettered {result.dead_lettered}, deferred {result.deferred}"
    )


@sync_group.command('requeue-dead')
@with_appcontext
def sync_requeue_dead():
    """Return dead-lettered items to the queue."""
    count = get_services().processor.requeue_dead_letters()
    click.echo(f"PASS Requeued {count} item(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(sync_group)
