"""Configuration module for the stock ledger application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'inventory')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'inventory')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'inventory')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    AUTO_CREATE_SCHEMA = os.getenv('AUTO_CREATE_SCHEMA', 'false').lower() == 'true'

    # Stock engine
    # Re-read attempts after an optimistic version conflict on the product row
    STOCK_CONFLICT_RETRIES = int(os.getenv('STOCK_CONFLICT_RETRIES', '3'))

    # Query surface
    HISTORY_LIMIT = int(os.getenv('HISTORY_LIMIT', '100'))
    DEFAULT_PAGE_SIZE = int(os.getenv('DEFAULT_PAGE_SIZE', '20'))
    MAX_PAGE_SIZE = int(os.getenv('MAX_PAGE_SIZE', '100'))

    # Notifications: log | none | webhook | redis
    NOTIFICATION_BACKEND = os.getenv('NOTIFICATION_BACKEND', 'log').lower()
    NOTIFICATION_WEBHOOK_URL = os.getenv('NOTIFICATION_WEBHOOK_URL')
    NOTIFICATION_WEBHOOK_SECRET = os.getenv('NOTIFICATION_WEBHOOK_SECRET')
    NOTIFICATION_WEBHOOK_TIMEOUT = float(os.getenv('NOTIFICATION_WEBHOOK_TIMEOUT', '5'))

    # Redis queue for stock events
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    NOTIFICATION_QUEUE_NAME = os.getenv('NOTIFICATION_QUEUE_NAME', 'inventory:stock-events')


class TestingConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///inventory-test.db')
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_SCHEMA = True
    NOTIFICATION_BACKEND = 'none'
