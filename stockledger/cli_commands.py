"""
Flask CLI commands for stock ledger operations.

Commands:
- flask init-db: Create the database tables
- flask low-stock: List products at or below their reorder level
- flask verify-ledger: Compare cached stock with the ledger
- flask stock-in / flask stock-out: Run a stock adjustment from the shell
"""

import sys
import click
from stockledger.database import create_schema, get_session
from stockledger.exceptions import StockLedgerError
from stockledger.services.inventory_service import get_inventory_service, SYSTEM_ACTOR
from stockledger.services.transaction_query_service import find_ledger_drift


def _adjustment_options(fn):
    fn = click.option('--actor', default=SYSTEM_ACTOR, show_default=True, help='Who performs the adjustment')(fn)
    fn = click.option('--notes', default=None, help='Free-text note (max 500 chars)')(fn)
    fn = click.option('--reference', default=None, help='Reference number (max 50 chars)')(fn)
    fn = click.option('--quantity', type=int, required=True, help='Units to move')(fn)
    fn = click.option('--product-id', type=int, required=True, help='Product ID')(fn)
    return fn


def _run_adjustment(operation, product_id, quantity, reference, notes, actor):
    service = get_inventory_service()
    adjust = service.add_stock if operation == 'in' else service.remove_stock
    try:
        product = adjust(product_id, quantity, reference_number=reference, notes=notes, actor=actor)
    except StockLedgerError as e:
        click.echo(click.style(f'❌ {e.message}', fg='red'))
        sys.exit(1)

    click.echo(click.style(
        f"✅ {product['name']} ({product['sku']}): stock {product['current_stock']}",
        fg='green'
    ))
    if product['low_stock']:
        click.echo(click.style(f"⚠ Low stock (reorder level {product['reorder_level']})", fg='yellow'))


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all stock ledger tables."""
        create_schema()
        click.echo(click.style('✅ Database tables created', fg='green'))

    @app.cli.command('low-stock')
    def low_stock_command():
        """List products at or below their reorder level."""
        products = get_inventory_service().list_low_stock()
        if not products:
            click.echo('No products are low on stock.')
            return
        for product in products:
            click.echo(
                f"{product['id']:>6}  {product['sku']:<20} "
                f"stock={product['current_stock']:<6} reorder={product['reorder_level']}"
            )

    @app.cli.command('verify-ledger')
    def verify_ledger_command():
        """Check every product's cached stock against its ledger."""
        drift = find_ledger_drift(get_session())
        if not drift:
            click.echo(click.style('✅ Ledger and product stock agree', fg='green'))
            return
        for row in drift:
            click.echo(click.style(
                f"❌ Product {row['product_id']} ({row['sku']}): "
                f"cached {row['current_stock']}, ledger {row['derived_stock']}",
                fg='red'
            ))
        sys.exit(1)

    @app.cli.command('stock-in')
    @_adjustment_options
    def stock_in_command(product_id, quantity, reference, notes, actor):
        """Add stock to a product."""
        _run_adjustment('in', product_id, quantity, reference, notes, actor)

    @app.cli.command('stock-out')
    @_adjustment_options
    def stock_out_command(product_id, quantity, reference, notes, actor):
        """Remove stock from a product."""
        _run_adjustment('out', product_id, quantity, reference, notes, actor)
