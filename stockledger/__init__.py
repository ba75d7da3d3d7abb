"""Flask application factory."""
import logging
import os
import traceback
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from stockledger.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    log_level = app.config.get('LOG_LEVEL', 'INFO')
    app.logger.setLevel(log_level)
    logging.getLogger('stockledger').setLevel(log_level)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Setup Prometheus metrics instrumentation
    from stockledger.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Initialize database
    init_db(app)

    # Stock ledger engine + configured notifier
    from stockledger.services.inventory_service import init_inventory
    init_inventory(app)

    # Error Handlers
    from stockledger.exceptions import StockLedgerError

    @app.errorhandler(StockLedgerError)
    def handle_stock_ledger_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code < 500:
            return jsonify({'status': 'error', 'message': error.description}), error.code
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from stockledger.blueprints.inventory import inventory_bp
    from stockledger.blueprints.metrics import metrics_bp

    app.register_blueprint(inventory_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from stockledger.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
