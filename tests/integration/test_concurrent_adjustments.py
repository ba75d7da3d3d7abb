"""
Concurrency tests for stock adjustments.

Threads share the scoped session registry, so every worker gets its own
session and must remove it when done.
"""

import threading

import pytest
from sqlalchemy.orm import sessionmaker

from stockledger import database
from stockledger.database import get_session
from stockledger.exceptions import InsufficientStockError, StockConflictError
from stockledger.models import Product, StockTransaction
from stockledger.services.inventory_service import InventoryService
from stockledger.services.ledger_store import SqlAlchemyLedgerStore
from stockledger.services.notification_service import NullNotifier
from stockledger.services.transaction_query_service import find_ledger_drift


def _run_concurrently(*calls):
    """Start every call at once; return (results, errors)."""
    barrier = threading.Barrier(len(calls))
    results = []
    errors = []
    guard = threading.Lock()

    def worker(call):
        try:
            barrier.wait()
            outcome = call()
            with guard:
                results.append(outcome)
        except Exception as e:
            with guard:
                errors.append(e)
        finally:
            get_session().remove()

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results, errors


class TestConcurrentRemovals:

    def test_competing_removals_never_oversell(self, session, service, product):
        """Two removals of 60 against 100: exactly one wins."""
        product_id = product.id

        results, errors = _run_concurrently(
            lambda: service.remove_stock(product_id, 60, actor='picker-1'),
            lambda: service.remove_stock(product_id, 60, actor='picker-2'),
        )

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)
        assert errors[0].available == 40
        assert results[0]['current_stock'] == 40

        session.expire_all()
        assert session.get(Product, product_id).current_stock == 40
        assert session.query(StockTransaction).filter(
            StockTransaction.product_id == product_id
        ).count() == 1

    def test_many_small_removals_balance(self, session, service, product):
        product_id = product.id

        results, errors = _run_concurrently(
            *[lambda: service.remove_stock(product_id, 15) for _ in range(8)]
        )

        # 100 // 15 removals fit
        assert len(results) == 6
        assert len(errors) == 2
        assert all(isinstance(e, InsufficientStockError) for e in errors)

        session.expire_all()
        assert session.get(Product, product_id).current_stock == 10
        assert find_ledger_drift(session) == []

    def test_different_products_adjust_independently(self, session, service, product_factory):
        first = product_factory(current_stock=50)
        second = product_factory(current_stock=50)
        first_id, second_id = first.id, second.id

        results, errors = _run_concurrently(
            lambda: service.add_stock(first_id, 5),
            lambda: service.remove_stock(second_id, 5),
        )

        assert errors == []
        assert sorted(r['current_stock'] for r in results) == [45, 55]


class InterferingStore(SqlAlchemyLedgerStore):
    """Store that lets another writer commit right after every read."""

    def __init__(self, session, interfere, times=1):
        super().__init__(session)
        self.interfere = interfere
        self.remaining = times
        self.reads = 0

    def get_product(self, product_id, for_update=False):
        product = super().get_product(product_id, for_update=for_update)
        self.reads += 1
        if self.remaining:
            self.remaining -= 1
            self.interfere(product_id)
        return product


@pytest.fixture
def other_writer(app):
    """A second engine instance writing through its own session."""
    other_session = sessionmaker(bind=database.engine, expire_on_commit=False)()
    writer = InventoryService(SqlAlchemyLedgerStore(other_session), NullNotifier())
    yield writer
    other_session.close()


class TestVersionConflicts:

    def test_conflict_revalidates_against_fresh_stock(self, session, product, other_writer):
        store = InterferingStore(get_session(), lambda pid: other_writer.remove_stock(pid, 60))
        service = InventoryService(store, NullNotifier())

        with pytest.raises(InsufficientStockError) as exc_info:
            service.remove_stock(product.id, 60)

        assert exc_info.value.available == 40
        assert store.reads == 2

        session.expire_all()
        assert session.get(Product, product.id).current_stock == 40
        assert find_ledger_drift(session) == []

    def test_conflict_retry_succeeds_when_stock_allows(self, session, product, other_writer):
        store = InterferingStore(get_session(), lambda pid: other_writer.remove_stock(pid, 60))
        service = InventoryService(store, NullNotifier())

        result = service.remove_stock(product.id, 30)

        assert result['current_stock'] == 10
        session.expire_all()
        assert session.get(Product, product.id).current_stock == 10
        assert session.query(StockTransaction).count() == 2
        assert find_ledger_drift(session) == []

    def test_persistent_conflicts_give_up(self, session, product, other_writer):
        store = InterferingStore(get_session(), lambda pid: other_writer.add_stock(pid, 1), times=10)
        service = InventoryService(store, NullNotifier(), max_conflict_retries=2)

        with pytest.raises(StockConflictError) as exc_info:
            service.remove_stock(product.id, 5)

        assert exc_info.value.attempts == 3
        session.expire_all()
        # Only the interfering writer's three additions landed
        assert session.get(Product, product.id).current_stock == 103
        assert find_ledger_drift(session) == []
