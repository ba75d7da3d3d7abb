"""Models package - exports all SQLAlchemy models."""
from stockledger.models.product import Product
from stockledger.models.stock_transaction import StockTransaction, TransactionType

__all__ = ['Product', 'StockTransaction', 'TransactionType']
