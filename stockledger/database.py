"""Database configuration and initialization."""
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if database_uri.startswith('sqlite'):
        # Worker threads share the pool
        engine_options['connect_args'] = {'check_same_thread': False}
    else:
        engine_options['pool_size'] = 10
        engine_options['max_overflow'] = 20

    engine = create_engine(database_uri, **engine_options)

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    )

    Base.query = db_session.query_property()

    if app.config.get('AUTO_CREATE_SCHEMA'):
        create_schema()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables for the registered models."""
    # Import models so they are attached to Base.metadata
    import stockledger.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_schema():
    """Drop all tables (used by the test suite)."""
    import stockledger.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
