"""Stock Transaction model (ledger entry)."""
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint, event
from sqlalchemy.orm import relationship, object_session
from stockledger.database import Base
from stockledger.exceptions import ImmutableLedgerError
from stockledger.utils.timeutils import utc_isoformat
import enum


class TransactionType(enum.Enum):
    """Stock transaction type enum."""
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    ADJUSTMENT = "ADJUSTMENT"


def _utcnow():
    return datetime.now(timezone.utc)


class StockTransaction(Base):
    """
    Stock Transaction (movimiento del libro de stock).

    Quantity is always the positive magnitude of the movement; the direction
    comes from transaction_type. Rows are append-only.
    """

    __tablename__ = 'stock_transaction'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_stock_transaction_quantity_positive'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    product_id = Column(BigInteger().with_variant(Integer, 'sqlite'), ForeignKey('product.id'), nullable=False, index=True)
    transaction_type = Column(Enum(TransactionType, name='stock_transaction_type'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    reference_number = Column(String(50), nullable=True)
    notes = Column(String(500), nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    created_by = Column(String(100), nullable=False, default='system')

    # Relationships
    product = relationship('Product')

    def __repr__(self):
        return (
            f"<StockTransaction(id={self.id}, product_id={self.product_id}, "
            f"type={self.transaction_type.value}, quantity={self.quantity})>"
        )

    @property
    def signed_quantity(self):
        """Quantity with the direction implied by the transaction type."""
        if self.transaction_type == TransactionType.STOCK_OUT:
            return -self.quantity
        return self.quantity

    def to_dict(self):
        product = self.product
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': product.name if product else None,
            'product_sku': product.sku if product else None,
            'transaction_type': self.transaction_type.value,
            'quantity': self.quantity,
            'reference_number': self.reference_number,
            'notes': self.notes,
            'transaction_date': utc_isoformat(self.transaction_date),
            'created_by': self.created_by,
        }


@event.listens_for(StockTransaction, 'before_update')
def _reject_transaction_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise ImmutableLedgerError(target.id, 'UPDATE')


@event.listens_for(StockTransaction, 'before_delete')
def _reject_transaction_delete(mapper, connection, target):
    raise ImmutableLedgerError(target.id, 'DELETE')
