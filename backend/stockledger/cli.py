# Overview: Flask CLI command groups for database bootstrap, stores, and stock inspection.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask <group> <command> [options]
#
# Database bootstrap:
# - python -m flask db-admin init
#   Create all tables that do not exist yet (idempotent).
# - python -m flask db-admin reset --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stores:
# - python -m flask stores create --name "Main Depot" --location "Nairobi" --main
# - python -m flask stores list
#
# Stock inspection:
# - python -m flask inventory low-stock [--threshold 5]
#   Products at or below the threshold or their own reorder level.
# - python -m flask inventory restock [--store-id <id>]
#   Records at or below their reorder level with the units needed.
# - python -m flask inventory verify [--inventory-id <id>]
#   Replay history ledgers; exits non-zero on any mismatch.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import store_service
from .services.history_service import validate_inventory_integrity
from .services.products_service import get_low_stock_products
from .services.stock_service import get_stores_needing_restock
from .validation import CatalogError


@click.group('db-admin')
def db_admin_group():
    """Database bootstrap commands."""


@db_admin_group.command('init')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@db_admin_group.command('reset')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including inventory history and activity logs.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--location', help='Street address or area')
@click.option('--phone', 'phone_number', help='Contact phone number')
@click.option('--email', help='Contact email (unique)')
@click.option('--main', 'is_main_store', is_flag=True, help='Mark as the main store')
@with_appcontext
def create_store_cli(name, location, phone_number, email, is_main_store):
    """Create a store."""
    try:
        store = store_service.create_store(
            name,
            location=location,
            phone_number=phone_number,
            email=email,
            is_main_store=is_main_store,
        )
    except CatalogError as e:
        raise click.ClickException(f"{e.code}: {e.message}")
    click.echo(f"PASS Created store {store.id} ({store.name})")


@stores_group.command('list')
@with_appcontext
def list_stores_cli():
    """List stores, main store first."""
    stores = store_service.list_stores()
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        marker = "*" if store.is_main_store else " "
        click.echo(f"{marker} {store.id}  {store.name}  {store.location or ''}".rstrip())


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Global threshold (defaults to LOW_STOCK_THRESHOLD)')
@with_appcontext
def low_stock_cli(threshold):
    """Show products at or below their low-stock threshold."""
    try:
        groups = get_low_stock_products(threshold)
    except CatalogError as e:
        raise click.ClickException(f"{e.code}: {e.message}")
    if not groups:
        click.echo("No low-stock products.")
        return
    for group in groups:
        product = group["product"]
        click.echo(f"{product['name']} ({product['type']}, grade {product['grade']})")
        for inv in group["inventories"]:
            level = inv["reorder_level"] if inv["reorder_level"] is not None else "-"
            click.echo(f"    {inv['store_name']}: {inv['quantity']} (reorder at {level})")


@inventory_group.command('restock')
@click.option('--store-id', default=None, help='Limit to one store')
@with_appcontext
def restock_cli(store_id):
    """Show records at or below their reorder level."""
    rows = get_stores_needing_restock(store_id)
    if not rows:
        click.echo("Nothing needs restocking.")
        return
    for row in rows:
        click.echo(
            f"{row['store_name']}: {row['product_name']} "
            f"{row['current_quantity']}/{row['reorder_level']} -> order {row['needed']}"
        )


@inventory_group.command('verify')
@click.option('--inventory-id', default=None, help='Check one stock record')
@with_appcontext
def verify_cli(inventory_id):
    """Replay history ledgers and compare with stored quantities."""
    try:
        results = validate_inventory_integrity(inventory_id)
    except CatalogError as e:
        raise click.ClickException(f"{e.code}: {e.message}")
    invalid = [r for r in results if not r["is_valid"]]
    for r in invalid:
        click.echo(
            f"WARN {r['store_name']}: {r['product_name']} stored {r['current_quantity']}, "
            f"ledger {r['calculated_quantity']} (discrepancy {r['discrepancy']})"
        )
    if invalid:
        raise click.ClickException(f"{len(invalid)} of {len(results)} records failed the ledger check")
    click.echo(f"PASS {len(results)} records match their history.")


def register_commands(app):
    app.cli.add_command(db_admin_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(inventory_group)
