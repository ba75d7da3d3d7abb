"""Inventory blueprint - JSON endpoints over the stock ledger engine."""
from datetime import datetime
from flask import Blueprint, request, jsonify, current_app
from stockledger.database import get_session
from stockledger.exceptions import ValidationError
from stockledger.models import TransactionType
from stockledger.services.inventory_service import get_inventory_service, SYSTEM_ACTOR
from stockledger.services import transaction_query_service as queries
from stockledger.utils.timeutils import as_utc

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api/inventory')

ACTOR_HEADER = 'X-Actor'


def _adjustment_args():
    """Read the stock adjustment body."""
    data = request.get_json(silent=True) or {}
    return {
        'product_id': data.get('product_id'),
        'quantity': data.get('quantity'),
        'reference_number': data.get('reference_number'),
        'notes': data.get('notes'),
        'actor': request.headers.get(ACTOR_HEADER) or SYSTEM_ACTOR,
    }


def _page_args():
    try:
        page = int(request.args.get('page', 0))
        size = int(request.args.get('size', current_app.config.get('DEFAULT_PAGE_SIZE', 20)))
    except ValueError:
        raise ValidationError('page and size must be integers', field='page')
    return {
        'page': page,
        'size': size,
        'max_page_size': current_app.config.get('MAX_PAGE_SIZE', queries.MAX_PAGE_SIZE),
    }


def _parse_datetime(name):
    raw = request.args.get(name, '').strip()
    if not raw:
        raise ValidationError(f'{name} is required', field=name)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f'{name} must be an ISO-8601 date-time', field=name)
    return as_utc(parsed)


def _parse_type(raw):
    try:
        return TransactionType[raw.upper()]
    except KeyError:
        raise ValidationError(f'Unknown transaction type: {raw}', field='type')


@inventory_bp.route('/stock-in', methods=['POST'])
def stock_in():
    """Add stock to a product."""
    return jsonify(get_inventory_service().add_stock(**_adjustment_args()))


@inventory_bp.route('/stock-out', methods=['POST'])
def stock_out():
    """Remove stock from a product."""
    return jsonify(get_inventory_service().remove_stock(**_adjustment_args()))


@inventory_bp.route('/low-stock')
def low_stock():
    """Products at or below their reorder level."""
    return jsonify(get_inventory_service().list_low_stock())


@inventory_bp.route('/check-low-stock/<int:product_id>')
def check_low_stock(product_id):
    """True if the product is at or below its reorder level."""
    return jsonify(get_inventory_service().is_low_stock(product_id))


@inventory_bp.route('/transactions')
def list_transactions():
    """All transactions, paginated."""
    result = queries.find_transactions(
        get_session(),
        sort_dir=request.args.get('sort_dir', 'desc'),
        **_page_args()
    )
    return jsonify(result.to_dict())


@inventory_bp.route('/transactions/product/<int:product_id>')
def transactions_by_product(product_id):
    result = queries.find_transactions(get_session(), product_id=product_id, **_page_args())
    return jsonify(result.to_dict())


@inventory_bp.route('/transactions/type/<string:transaction_type>')
def transactions_by_type(transaction_type):
    result = queries.find_transactions(
        get_session(),
        transaction_type=_parse_type(transaction_type),
        **_page_args()
    )
    return jsonify(result.to_dict())


@inventory_bp.route('/transactions/date-range')
def transactions_by_date_range():
    result = queries.find_transactions(
        get_session(),
        start=_parse_datetime('start'),
        end=_parse_datetime('end'),
        **_page_args()
    )
    return jsonify(result.to_dict())


@inventory_bp.route('/transactions/summary')
def transactions_summary():
    """Quantity totals by product and kind."""
    product_id = request.args.get('product_id', type=int)
    return jsonify(queries.quantity_totals(get_session(), product_id=product_id))


@inventory_bp.route('/product/<int:product_id>/history')
def product_history(product_id):
    """Most recent transactions for a product."""
    limit = current_app.config.get('HISTORY_LIMIT', queries.DEFAULT_HISTORY_LIMIT)
    return jsonify(queries.get_product_history(get_session(), product_id, limit=limit))
