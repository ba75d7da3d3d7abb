import pytest
import uuid

from config import TestingConfig
from stockledger import create_app
from stockledger import database
from stockledger.database import get_session
from stockledger.models import Product
from stockledger.services.inventory_service import get_inventory_service
from stockledger.services.notification_service import InventoryNotifier


class RecordingNotifier(InventoryNotifier):
    """Keeps every event it receives, in order."""

    def __init__(self):
        self.events = []

    def on_stock_update(self, event):
        self.events.append(('stock_update', event))

    def on_low_stock(self, event):
        self.events.append(('low_stock', event))

    def of_kind(self, kind):
        return [event for name, event in self.events if name == kind]


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application instance backed by a fresh SQLite file."""
    config = type('IsolatedTestingConfig', (TestingConfig,), {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.db'}",
    })
    app = create_app(config)
    yield app
    get_session().remove()
    database.drop_schema()
    database.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for the current thread."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def service(app):
    """The configured inventory service."""
    return get_inventory_service()


@pytest.fixture(scope='function')
def notifier(service):
    """Swap the service notifier for one that records events."""
    recorder = RecordingNotifier()
    service.notifier = recorder
    return recorder


@pytest.fixture(scope='function')
def product_factory(session):
    """Create products as catalog management would."""
    def make_product(**overrides):
        suffix = str(uuid.uuid4())[:8]
        fields = {
            'name': f'Product {suffix}',
            'sku': f'SKU-{suffix}',
            'current_stock': 100,
            'reorder_level': 10,
        }
        fields.update(overrides)
        product = Product(**fields)
        session.add(product)
        session.commit()
        return product
    return make_product


@pytest.fixture(scope='function')
def product(product_factory):
    """Product with stock 100 and reorder level 10."""
    return product_factory(name='Widget', sku='WID-001')
