"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, CheckConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from stockledger.database import Base
from stockledger.exceptions import ValidationError
from stockledger.utils.timeutils import utc_isoformat


def _opening_stock_default(context):
    """Opening stock defaults to the stock the product is created with."""
    return context.get_current_parameters().get('current_stock') or 0


class Product(Base):
    """
    Product - aggregate root for stock.

    current_stock is a cached value derived from the ledger; it is only
    changed by InventoryService in the same commit as its StockTransaction.
    """

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('current_stock >= 0', name='ck_product_current_stock_non_negative'),
        CheckConstraint('opening_stock >= 0', name='ck_product_opening_stock_non_negative'),
        CheckConstraint('reorder_level >= 0', name='ck_product_reorder_level_non_negative'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(50), nullable=False, unique=True)
    description = Column(String(1000), nullable=True)
    current_stock = Column(Integer, nullable=False, default=0)
    opening_stock = Column(Integer, nullable=False, default=_opening_stock_default)
    reorder_level = Column(Integer, nullable=False, default=10)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Optimistic locking: every UPDATE is guarded by the version read
    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}', current_stock={self.current_stock})>"

    @hybrid_property
    def is_low_stock(self):
        """Low-stock predicate, identical in Python and SQL."""
        return self.current_stock <= self.reorder_level

    @validates('sku')
    def _validate_sku(self, key, value):
        if self.sku is not None and value != self.sku:
            raise ValidationError('SKU cannot be changed once assigned', field='sku')
        return value

    def to_dict(self):
        """Product projection returned by stock operations."""
        return {
            'id': self.id,
            'name': self.name,
            'sku': self.sku,
            'current_stock': self.current_stock,
            'reorder_level': self.reorder_level,
            'low_stock': self.is_low_stock,
            'created_at': utc_isoformat(self.created_at),
            'updated_at': utc_isoformat(self.updated_at),
        }
