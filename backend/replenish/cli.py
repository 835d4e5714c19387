# Overview: Flask CLI command groups for bootstrap and stock/order inspection.

# backend/replenish/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock show 1
#   On-hand quantity and the latest movements for a product.
# - python -m flask stock low [--threshold 10]
#   Products at or below their replenishment level.
# - python -m flask stock negative
#   Products whose stock went below zero (only with ALLOW_NEGATIVE_STOCK).
#
# Order inspection:
# - python -m flask orders show PO191020260001
#   Order header, items with received quantities, and its status history.

import click
from flask.cli import with_appcontext

from .errors import NotFound
from .extensions import db
from .services import audit_service, order_service, stock_ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Idempotent."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger inspection."""


@stock_group.command('show')
@click.argument('product_id', type=int)
@click.option('--limit', type=int, default=10, help='Movements to show')
@with_appcontext
def show_stock(product_id, limit):
    """Show on-hand stock and recent movements for a product."""
    try:
        product = stock_ledger_service.get_product(product_id)
    except NotFound as e:
        raise click.ClickException(str(e))

    click.echo(f"{product.sku}  {product.name}")
    click.echo(f"  stock: {product.stock}  min_stock: {product.min_stock if product.min_stock is not None else '-'}")

    movements = stock_ledger_service.list_movements(product_id, limit=limit)
    if not movements:
        click.echo("  (no movements)")
        return
    for m in movements:
        click.echo(
            f"  {m.id:>6}  {m.movement_type:<12} {m.quantity_delta:>+6}  -> {m.stock_after:>6}  "
            f"{m.reference_type}:{m.reference_id}"
        )


@stock_group.command('low')
@click.option('--threshold', type=int, default=None, help='Override LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(threshold):
    """List products that need replenishing."""
    products = stock_ledger_service.list_low_stock(threshold)
    if not products:
        click.echo("No low-stock products.")
        return
    for p in products:
        level = p.min_stock if p.min_stock else "-"
        click.echo(f"{p.id:>6}  {p.sku:<20} stock={p.stock:<6} min={level}  {p.name}")


@stock_group.command('negative')
@with_appcontext
def negative_stock():
    """List products with negative stock."""
    products = stock_ledger_service.list_negative_stock()
    if not products:
        click.echo("No products with negative stock.")
        return
    for p in products:
        click.echo(f"{p.id:>6}  {p.sku:<20} stock={p.stock}  {p.name}")


@click.group('orders')
def orders_group():
    """Purchase order inspection."""


@orders_group.command('show')
@click.argument('order_id')
@with_appcontext
def show_order(order_id):
    """Show an order, its items and its status history."""
    try:
        order = order_service.get_order(order_id)
    except NotFound as e:
        raise click.ClickException(str(e))

    click.echo(f"{order.id}  [{order.status}]  seller={order.seller_name or order.seller_id or '-'}")
    click.echo(f"  total_cents={order.total_cents}  payment={order.payment_method}")
    for item in order.items:
        flag = "  OVER" if item.over_received else ""
        click.echo(
            f"  #{item.id:<5} product={item.product_id:<6} "
            f"received {item.received_qty}/{item.ordered_qty} ({item.receipt_state}){flag}"
        )

    history = audit_service.transitions_for("purchase_order", order.id)
    if history:
        click.echo("  history: " + " -> ".join([history[0][0] or "(new)"] + [to for _, to in history]))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(orders_group)
