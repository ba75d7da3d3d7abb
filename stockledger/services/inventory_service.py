"""
Inventory service - the stock ledger engine.

Applies stock-in / stock-out adjustments: every successful call updates
exactly one product row and appends exactly one stock_transaction row in
the same commit, then notifies. Removals never drive stock below zero.

Concurrency:
    - In-process: adjustments on the same product are serialized by
      ProductLockRegistry; different products run in parallel.
    - Across processes: the product row is read FOR UPDATE where the
      database supports it, and every UPDATE is guarded by the optimistic
      version column. A version conflict re-reads and re-validates the
      adjustment, so a lost update turns into InsufficientStockError
      instead of negative stock.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from flask import Flask

from stockledger.blueprints.metrics import stock_adjustments_total, low_stock_alerts_total, notification_failures_total
from stockledger.exceptions import (
    ValidationError, NotFoundError, InsufficientStockError, StoreFailure, StockConflictError, NotificationError
)
from stockledger.models import Product, StockTransaction, TransactionType
from stockledger.services.ledger_store import SqlAlchemyLedgerStore
from stockledger.services.notification_service import (
    InventoryNotifier, StockUpdateEvent, LowStockEvent, build_notifier
)

logger = logging.getLogger(__name__)

# Actor recorded when the caller has no identity to pass
SYSTEM_ACTOR = 'system'

MAX_REFERENCE_LENGTH = 50
MAX_NOTES_LENGTH = 500
MAX_ACTOR_LENGTH = 100


class ProductLockRegistry:
    """Per-product locks; entries are dropped when no thread holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, list] = {}

    @contextmanager
    def hold(self, product_id: int):
        with self._guard:
            entry = self._locks.setdefault(product_id, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[product_id]

    def __len__(self):
        with self._guard:
            return len(self._locks)


def validate_adjustment(product_id, quantity, reference_number: Optional[str] = None,
                        notes: Optional[str] = None, actor: Optional[str] = None) -> str:
    """
    Check adjustment input before any store access.

    Returns:
        The actor to record (SYSTEM_ACTOR when none was given)

    Raises:
        ValidationError: On the first invalid field
    """
    if product_id is None:
        raise ValidationError('Product ID is required', field='product_id')
    # ProductLockRegistry is keyed on the int id
    if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
        raise ValidationError('Product ID must be a positive integer', field='product_id')
    if quantity is None:
        raise ValidationError('Quantity is required', field='quantity')
    # bool is an int subclass
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError('Quantity must be an integer', field='quantity')
    if quantity < 1:
        raise ValidationError('Quantity must be at least 1', field='quantity')
    for field, value in (('reference_number', reference_number), ('notes', notes), ('actor', actor)):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f'{field} must be a string', field=field)
    if reference_number is not None and len(reference_number) > MAX_REFERENCE_LENGTH:
        raise ValidationError(
            f'Reference number must be less than {MAX_REFERENCE_LENGTH} characters',
            field='reference_number',
        )
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f'Notes must be less than {MAX_NOTES_LENGTH} characters', field='notes')

    actor = (actor or '').strip() or SYSTEM_ACTOR
    if len(actor) > MAX_ACTOR_LENGTH:
        raise ValidationError(f'Created by must be less than {MAX_ACTOR_LENGTH} characters', field='actor')
    return actor


class InventoryService:
    """Stock ledger engine."""

    def __init__(self, store: SqlAlchemyLedgerStore, notifier: InventoryNotifier,
                 locks: Optional[ProductLockRegistry] = None, max_conflict_retries: int = 3):
        self.store = store
        self.notifier = notifier
        self.locks = locks or ProductLockRegistry()
        self.max_conflict_retries = max_conflict_retries

    def add_stock(self, product_id: int, quantity: int, reference_number: Optional[str] = None,
                  notes: Optional[str] = None, actor: Optional[str] = SYSTEM_ACTOR) -> dict:
        """
        Add stock to a product (STOCK_IN).

        Returns:
            Updated product projection

        Raises:
            ValidationError, NotFoundError, StoreFailure
        """
        return self._adjust(TransactionType.STOCK_IN, product_id, quantity, reference_number, notes, actor)

    def remove_stock(self, product_id: int, quantity: int, reference_number: Optional[str] = None,
                     notes: Optional[str] = None, actor: Optional[str] = SYSTEM_ACTOR) -> dict:
        """
        Remove stock from a product (STOCK_OUT).

        Fails without writing anything when the product holds less than
        quantity. Emits a low-stock notification when the resulting stock
        is at or below the reorder level.

        Returns:
            Updated product projection

        Raises:
            ValidationError, NotFoundError, InsufficientStockError, StoreFailure
        """
        return self._adjust(TransactionType.STOCK_OUT, product_id, quantity, reference_number, notes, actor)

    def is_low_stock(self, product_id: int) -> bool:
        """Return True if the product's stock is at or below its reorder level."""
        return self.store.get_product(product_id).is_low_stock

    def list_low_stock(self) -> List[dict]:
        """All products currently low on stock, in store order."""
        return [product.to_dict() for product in self.store.list_low_stock()]

    # =====================================================
    # PRIVATE HELPERS
    # =====================================================

    def _adjust(self, kind: TransactionType, product_id, quantity, reference_number, notes, actor) -> dict:
        operation = kind.value
        try:
            actor = validate_adjustment(product_id, quantity, reference_number, notes, actor)
        except ValidationError:
            stock_adjustments_total.labels(operation=operation, outcome='invalid').inc()
            raise

        with self.locks.hold(product_id):
            attempt = 0
            while True:
                attempt += 1
                try:
                    product, previous_stock = self._apply(
                        kind, product_id, quantity, reference_number, notes, actor
                    )
                    break
                except StockConflictError:
                    if attempt > self.max_conflict_retries:
                        stock_adjustments_total.labels(operation=operation, outcome='conflict').inc()
                        logger.error(f"[STOCK] {operation} on product {product_id} gave up after {attempt} attempts")
                        raise StockConflictError(product_id, attempt)
                    logger.info(f"[STOCK] Retrying {operation} on product {product_id} (attempt {attempt + 1})")
                except NotFoundError:
                    stock_adjustments_total.labels(operation=operation, outcome='not_found').inc()
                    raise
                except InsufficientStockError:
                    stock_adjustments_total.labels(operation=operation, outcome='insufficient').inc()
                    raise
                except StoreFailure:
                    stock_adjustments_total.labels(operation=operation, outcome='store_failure').inc()
                    raise

        stock_adjustments_total.labels(operation=operation, outcome='success').inc()
        logger.info(
            f"[STOCK] {operation} product={product.id} qty={quantity} "
            f"{previous_stock} -> {product.current_stock} by {actor}"
        )

        self._notify_stock_update(product, previous_stock, operation)
        # Low stock is only evaluated on removal, against the post-adjustment state
        if kind == TransactionType.STOCK_OUT and product.is_low_stock:
            self._notify_low_stock(product)

        return product.to_dict()

    def _apply(self, kind, product_id, quantity, reference_number, notes, actor):
        """Read-validate-write one adjustment. Returns (product, previous_stock)."""
        try:
            product = self.store.get_product(product_id, for_update=True)
        except NotFoundError:
            self.store.discard()
            raise

        previous_stock = product.current_stock
        if kind == TransactionType.STOCK_OUT:
            if previous_stock < quantity:
                self.store.discard()
                raise InsufficientStockError(product_id, quantity, previous_stock)
            product.current_stock = previous_stock - quantity
        else:
            product.current_stock = previous_stock + quantity

        transaction = StockTransaction(
            product=product,
            transaction_type=kind,
            quantity=quantity,
            reference_number=reference_number,
            notes=notes,
            created_by=actor,
        )
        self.store.save_product_and_transaction(product, transaction)
        return product, previous_stock

    def _notify_stock_update(self, product: Product, previous_stock: int, operation: str) -> None:
        event = StockUpdateEvent(
            product_id=product.id,
            product_name=product.name,
            previous_stock=previous_stock,
            new_stock=product.current_stock,
            operation=operation,
        )
        try:
            self.notifier.on_stock_update(event)
        except NotificationError as e:
            notification_failures_total.labels(event='stock.updated').inc()
            logger.warning(f"[NOTIFY] Stock update notification failed for product {product.id}: {e.message}")
        except Exception:
            notification_failures_total.labels(event='stock.updated').inc()
            logger.exception(f"[NOTIFY] Unexpected error notifying stock update for product {product.id}")

    def _notify_low_stock(self, product: Product) -> None:
        low_stock_alerts_total.inc()
        event = LowStockEvent(
            product_id=product.id,
            product_name=product.name,
            current_stock=product.current_stock,
            reorder_level=product.reorder_level,
        )
        try:
            self.notifier.on_low_stock(event)
        except NotificationError as e:
            notification_failures_total.labels(event='stock.low').inc()
            logger.warning(f"[NOTIFY] Low stock notification failed for product {product.id}: {e.message}")
        except Exception:
            notification_failures_total.labels(event='stock.low').inc()
            logger.exception(f"[NOTIFY] Unexpected error notifying low stock for product {product.id}")


_inventory_service: Optional[InventoryService] = None


def init_inventory(app: Flask) -> None:
    """Initialize the inventory service singleton."""
    global _inventory_service
    from stockledger.database import get_session

    _inventory_service = InventoryService(
        store=SqlAlchemyLedgerStore(get_session()),
        notifier=build_notifier(app.config),
        max_conflict_retries=app.config.get('STOCK_CONFLICT_RETRIES', 3),
    )
    app.extensions['inventory'] = _inventory_service
    logger.info(f"[STOCK] Inventory service ready (notifications: {app.config.get('NOTIFICATION_BACKEND')})")


def get_inventory_service() -> InventoryService:
    """Get inventory service instance."""
    if _inventory_service is None:
        raise RuntimeError("Inventory service not initialized.")
    return _inventory_service
