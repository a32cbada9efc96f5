"""
Oracle relay Flask application.

Main entry point. Initializes:
- Database schema
- Ledger client
- Oracle relay (authorization, demo setup, oracle registration,
  event subscriptions, response coordinator)
- API routes

The relay then runs indefinitely. The process exits non-zero if the app
contract cannot be authorized or the initial event subscription cannot be
established.

Usage:
    python -m oracle_relay.app
"""

import logging
import sys

from flask import Flask
from flask_cors import CORS

from oracle_relay.config import config
from oracle_relay.models import init_db
from oracle_relay.api import relay_bp, flights_bp, insurance_bp
from oracle_relay.errors import RejectedByLedger, TransportError
from oracle_relay.ledger.client import LedgerClient
from oracle_relay.relay import OracleRelay
from oracle_relay.services.surety import FlightSuretyService

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(start_relay: bool = True, ledger=None, relay=None) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_relay: Whether to set up and start the oracle relay.
                     Set to False for testing.
        ledger: Ledger client (created from config if None)
        relay: Pre-built relay to expose through the API

    Returns:
        Configured Flask application instance.

    Raises:
        RejectedByLedger / TransportError if the relay cannot authorize
        or subscribe at startup
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    logger.info('Initializing database...')
    init_db()

    app.register_blueprint(relay_bp)
    app.register_blueprint(flights_bp)
    app.register_blueprint(insurance_bp)

    if ledger is None and (start_relay or relay is None):
        ledger = LedgerClient.from_config()

    if start_relay and relay is None:
        relay = OracleRelay(ledger)
        relay.run()
        logger.info(f'Relay running against {config.ledger.url} with {len(relay.state.roster)} oracles')

    app.config['RELAY'] = relay
    app.config['SURETY'] = relay.surety if relay else FlightSuretyService(ledger)

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(RejectedByLedger)
    def rejected(e):
        logger.warning(f'Request declined by ledger: {e}')
        return {'error': 'Rejected by ledger', 'method': e.method, 'reason': e.reason}, 409

    @app.errorhandler(TransportError)
    def ledger_unavailable(e):
        logger.error(f'Ledger unavailable: {e}')
        return {'error': 'Ledger unavailable'}, 503

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_relay_server():
    """Run the relay with its API on the development server."""
    try:
        app = create_app()
    except (RejectedByLedger, TransportError) as e:
        logger.critical(f'Relay startup failed: {e}')
        sys.exit(1)

    logger.info(f'Starting oracle relay API on http://localhost:{config.port}/api')

    app.run(
        host='0.0.0.0',
        port=config.port,
        debug=config.debug,
        use_reloader=False,  # Reloader would start a second relay
    )


if __name__ == '__main__':
    run_relay_server()
