"""
Read-only projections over the stock ledger.

Nothing here mutates state; filters and sorting only.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import joinedload

from stockledger.exceptions import NotFoundError, ValidationError
from stockledger.models import Product, StockTransaction, TransactionType
from stockledger.utils.timeutils import as_utc

DEFAULT_HISTORY_LIMIT = 100
MAX_PAGE_SIZE = 100


@dataclass
class PagedResult:
    """One page of ledger rows."""
    content: List[Dict[str, Any]] = field(default_factory=list)
    page: int = 0
    size: int = 20
    total_elements: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return self.page >= self.total_pages - 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'page': self.page,
            'size': self.size,
            'total_elements': self.total_elements,
            'total_pages': self.total_pages,
            'first': self.first,
            'last': self.last,
        }


def _signed_quantity():
    """SQL expression: +quantity for STOCK_IN/ADJUSTMENT, -quantity for STOCK_OUT."""
    return case(
        (StockTransaction.transaction_type == TransactionType.STOCK_OUT, -StockTransaction.quantity),
        else_=StockTransaction.quantity,
    )


def _require_product(session, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product', product_id)
    return product


def get_product_history(session, product_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Dict[str, Any]]:
    """
    Most recent transactions for a product, newest first.

    Raises:
        NotFoundError: If the product does not exist
    """
    _require_product(session, product_id)
    rows = session.query(StockTransaction).options(
        joinedload(StockTransaction.product)
    ).filter(
        StockTransaction.product_id == product_id
    ).order_by(
        StockTransaction.transaction_date.desc(),
        StockTransaction.id.desc()
    ).limit(limit).all()
    return [row.to_dict() for row in rows]


def find_transactions(
    session,
    page: int = 0,
    size: int = 20,
    product_id: Optional[int] = None,
    transaction_type: Optional[TransactionType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    sort_dir: str = 'desc',
    max_page_size: int = MAX_PAGE_SIZE
) -> PagedResult:
    """
    Paginated ledger listing with optional filters.

    Args:
        session: Database session
        page: Zero-based page number
        size: Page size, clamped to 1..max_page_size
        product_id: Only this product (NotFoundError if it does not exist)
        transaction_type: Only this kind
        start: Inclusive lower bound on transaction_date (naive values are UTC)
        end: Inclusive upper bound on transaction_date
        sort_dir: 'desc' (newest first) or 'asc'

    Returns:
        PagedResult
    """
    if page < 0:
        raise ValidationError('Page index must not be negative', field='page')
    start, end = as_utc(start), as_utc(end)
    if start and end and start > end:
        raise ValidationError('Start date must be before end date', field='start')
    size = max(1, min(size, max_page_size))

    query = session.query(StockTransaction)

    if product_id is not None:
        _require_product(session, product_id)
        query = query.filter(StockTransaction.product_id == product_id)
    if transaction_type is not None:
        query = query.filter(StockTransaction.transaction_type == transaction_type)
    if start is not None:
        query = query.filter(StockTransaction.transaction_date >= start)
    if end is not None:
        query = query.filter(StockTransaction.transaction_date <= end)

    total = query.count()

    if sort_dir.lower() == 'asc':
        ordering = (StockTransaction.transaction_date.asc(), StockTransaction.id.asc())
    else:
        ordering = (StockTransaction.transaction_date.desc(), StockTransaction.id.desc())

    rows = query.options(joinedload(StockTransaction.product)).order_by(
        *ordering
    ).limit(size).offset(page * size).all()

    return PagedResult(
        content=[row.to_dict() for row in rows],
        page=page,
        size=size,
        total_elements=total,
    )


def sum_quantity(session, product_id: int, transaction_type: TransactionType) -> int:
    """Total quantity moved for a product and kind (0 when there are none)."""
    total = session.query(
        func.coalesce(func.sum(StockTransaction.quantity), 0)
    ).filter(
        StockTransaction.product_id == product_id,
        StockTransaction.transaction_type == transaction_type
    ).scalar()
    return int(total)


def quantity_totals(session, product_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Quantity sums grouped by product and transaction kind."""
    query = session.query(
        StockTransaction.product_id,
        StockTransaction.transaction_type,
        func.sum(StockTransaction.quantity),
        func.count(StockTransaction.id)
    )
    if product_id is not None:
        query = query.filter(StockTransaction.product_id == product_id)

    rows = query.group_by(
        StockTransaction.product_id,
        StockTransaction.transaction_type
    ).order_by(
        StockTransaction.product_id,
        StockTransaction.transaction_type
    ).all()

    return [
        {
            'product_id': pid,
            'transaction_type': ttype.value,
            'total_quantity': int(total),
            'transaction_count': count,
        }
        for pid, ttype, total, count in rows
    ]


def derived_stock(session, product_id: int) -> int:
    """Opening stock plus the signed sum of the product's ledger."""
    product = _require_product(session, product_id)
    movement = session.query(
        func.coalesce(func.sum(_signed_quantity()), 0)
    ).filter(
        StockTransaction.product_id == product_id
    ).scalar()
    return product.opening_stock + int(movement)


def find_ledger_drift(session) -> List[Dict[str, Any]]:
    """
    Products whose cached current_stock differs from the ledger.

    Returns:
        List of dicts with product_id, sku, current_stock, derived_stock
    """
    movements = session.query(
        StockTransaction.product_id.label('product_id'),
        func.sum(_signed_quantity()).label('movement')
    ).group_by(StockTransaction.product_id).subquery()

    derived = Product.opening_stock + func.coalesce(movements.c.movement, 0)

    rows = session.query(
        Product.id,
        Product.sku,
        Product.current_stock,
        derived
    ).outerjoin(
        movements, movements.c.product_id == Product.id
    ).filter(
        Product.current_stock != derived
    ).order_by(Product.id).all()

    return [
        {
            'product_id': pid,
            'sku': sku,
            'current_stock': current,
            'derived_stock': int(expected),
        }
        for pid, sku, current, expected in rows
    ]
