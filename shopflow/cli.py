# Overview: Flask CLI command groups for bootstrap and inspection.

# shopflow/cli.py
# Commands Legend:
# Prereqs:
# - Set FLASK_APP=shopflow (PowerShell: $env:FLASK_APP="shopflow").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (development only; use `flask db upgrade` otherwise).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Store configuration:
# - python -m flask store init [--name "Corner Shop"] [--prefix "INV-"] [--tax-rate 0.16]
#   Seed the store configuration row if none exists.
# - python -m flask store show
#   Print the active store configuration.
# - python -m flask store next-invoice
#   Allocate and print one invoice number.
#
# Loyalty:
# - python -m flask loyalty show
#   Print the active loyalty policy.
# - python -m flask loyalty set --points-per-dollar 2 --expire-months 12
#   Write a new loyalty policy version.
# - python -m flask loyalty balance 42
#   Print the points balance of customer 42.
#
# Products:
# - python -m flask products low-stock [--threshold 5]
#   List active products at or below their reorder level.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .errors import ShopflowError
from .extensions import db
from .services import invoice_service, loyalty_service, stock_service


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


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

    click.echo("PASS Database reset complete. Run 'python -m flask store init' next.")


@click.group('store')
def store_group():
    """Store configuration and invoice numbering."""


@store_group.command('init')
@click.option('--name', default=None, help='Store name')
@click.option('--prefix', 'invoice_prefix', default=None, help='Invoice number prefix')
@click.option('--tax-rate', default=None, help='Tax rate as a fraction, e.g. 0.16')
@click.option('--currency', default=None, help='Currency code')
@with_appcontext
def init_store(name, invoice_prefix, tax_rate, currency):
    """Seed the store configuration (idempotent)."""
    rate = Decimal(tax_rate) if tax_rate is not None else None
    if rate is not None and not (Decimal("0") <= rate <= Decimal("1")):
        raise click.BadParameter("tax rate must be between 0 and 1", param_hint="--tax-rate")

    config, created = invoice_service.seed_store_config(
        name=name, invoice_prefix=invoice_prefix, tax_rate=rate, currency=currency
    )
    if created:
        click.echo(f"PASS Created store configuration: {config.name} (prefix {config.invoice_prefix!r})")
    else:
        click.echo(f"PASS Using existing store configuration: {config.name} (ID: {config.id})")


@store_group.command('show')
@with_appcontext
def show_store():
    try:
        config = invoice_service.get_active_store_config()
    except ShopflowError as e:
        raise click.ClickException(e.message)

    for key, value in config.to_dict().items():
        click.echo(f"{key:>16}: {value}")


@store_group.command('next-invoice')
@with_appcontext
def next_invoice():
    """Allocate one invoice number and print it."""
    try:
        number = invoice_service.next_invoice_number()
    except ShopflowError as e:
        raise click.ClickException(e.message)
    click.echo(number)


@click.group('loyalty')
def loyalty_group():
    """Loyalty policy and balances."""


@loyalty_group.command('show')
@with_appcontext
def show_loyalty():
    try:
        config = loyalty_service.get_active_loyalty_config()
    except ShopflowError as e:
        raise click.ClickException(e.message)

    for key, value in config.to_dict().items():
        click.echo(f"{key:>24}: {value}")


@loyalty_group.command('set')
@click.option('--points-per-dollar', default=None, help='Points earned per currency unit')
@click.option('--redemption-rate', default=None, help='Currency value of one point')
@click.option('--expire-months', type=int, default=None, help='Months until earned points expire')
@click.option('--min-purchase', default=None, help='Minimum purchase that earns points')
@click.option('--max-points', type=int, default=None, help='Cap on points per purchase')
@with_appcontext
def set_loyalty(points_per_dollar, redemption_rate, expire_months, min_purchase, max_points):
    """Write a new loyalty policy version; omitted options keep current values."""
    changes = loyalty_service.LoyaltyConfigUpdate(
        points_per_dollar=Decimal(points_per_dollar) if points_per_dollar is not None else None,
        redemption_rate=Decimal(redemption_rate) if redemption_rate is not None else None,
        points_expire_months=expire_months,
        min_purchase_for_points=Decimal(min_purchase) if min_purchase is not None else None,
        max_points_per_purchase=max_points,
    )
    try:
        config = loyalty_service.update_loyalty_config(changes)
    except ShopflowError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Loyalty policy version {config.id} is active")


@loyalty_group.command('balance')
@click.argument('customer_id', type=int)
@with_appcontext
def loyalty_balance(customer_id):
    try:
        balance = loyalty_service.get_points_balance(customer_id)
    except ShopflowError as e:
        raise click.ClickException(e.message)

    click.echo(f"{balance['customer_name']} (ID: {balance['customer_id']})")
    click.echo(f"  total:         {balance['total_points']}")
    click.echo(f"  available:     {balance['available_points']}")
    click.echo(f"  expiring soon: {balance['expiring_soon']}")


@click.group('products')
def products_group():
    """Product stock inspection."""


@products_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Compare against this instead of min_stock')
@with_appcontext
def low_stock(threshold):
    try:
        products = stock_service.list_low_stock(threshold)
    except ShopflowError as e:
        raise click.ClickException(e.message)

    if not products:
        click.echo("PASS No products below their reorder level")
        return

    click.echo(f"WARN {len(products)} product(s) low on stock:")
    for p in products:
        click.echo(f"  {p.sku:<16} {p.name:<32} stock={p.stock} min={p.min_stock}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(store_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(products_group)
