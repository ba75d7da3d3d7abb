"""
Ledger store - SQLAlchemy persistence for products and stock transactions.

The product row and its ledger row are written in one commit; a failure
rolls back both.
"""
import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from stockledger.exceptions import NotFoundError, StoreFailure, StockConflictError, StockLedgerError
from stockledger.models import Product, StockTransaction

logger = logging.getLogger(__name__)


class SqlAlchemyLedgerStore:
    """Persistence port used by InventoryService."""

    def __init__(self, session):
        """
        Args:
            session: SQLAlchemy session or scoped_session proxy
        """
        self.session = session

    def get_product(self, product_id: int, for_update: bool = False) -> Product:
        """
        Load a product with fresh column values.

        Args:
            product_id: Product ID
            for_update: Lock the row (SELECT ... FOR UPDATE) until commit/rollback

        Raises:
            NotFoundError: If the product does not exist
        """
        query = self.session.query(Product).filter(Product.id == product_id).populate_existing()
        if for_update:
            query = query.with_for_update()

        try:
            product = query.first()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreFailure(f"Failed to load product {product_id}: {e}") from e

        if product is None:
            raise NotFoundError('Product', product_id)
        return product

    def save_product_and_transaction(self, product: Product, transaction: StockTransaction) -> None:
        """
        Persist the updated product and its ledger row atomically.

        Raises:
            StockConflictError: Another writer updated the product since it was read
            StoreFailure: Any other database failure (nothing was written)
        """
        try:
            self.session.add(transaction)
            self.session.add(product)
            self.session.commit()
        except StaleDataError as e:
            self.session.rollback()
            logger.info(f"[STOCK] Version conflict on product {product.id}")
            raise StockConflictError(product.id, 1) from e
        except StockLedgerError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"[STOCK] Failed to persist adjustment for product {product.id}: {e}")
            raise StoreFailure(f"Failed to persist stock adjustment: {e}") from e

    def discard(self) -> None:
        """Abandon the current unit of work."""
        self.session.rollback()

    def list_low_stock(self) -> List[Product]:
        """Products whose stock is at or below their reorder level."""
        return self.session.query(Product).filter(Product.is_low_stock).all()
