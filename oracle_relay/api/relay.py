"""
Relay status API endpoints.

Provides endpoints for:
- GET /api - API banner
- GET /api/relay/status - Subscription, coordinator and consensus stats
- GET /api/relay/oracles - Oracle roster with index sets
- GET /api/relay/submissions - Recent oracle submissions
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy import select, desc

from oracle_relay.config import config
from oracle_relay.errors import RejectedByLedger, TransportError
from oracle_relay.models import OracleSubmission
from oracle_relay.models.base import SessionLocal

logger = logging.getLogger(__name__)

relay_bp = Blueprint('relay', __name__, url_prefix='/api')


def _ledger_status(surety) -> dict:
    """Contract health as seen from the node; degrades to disconnected."""
    if not surety.ledger.is_connected():
        return {'connected': False}
    try:
        return {
            'connected': True,
            'operational': surety.is_operational(),
            'registered_airlines': surety.num_registered_airlines(),
            'funded_airlines': surety.num_funded_airlines(),
        }
    except (RejectedByLedger, TransportError) as e:
        logger.warning(f'Could not read contract status: {e}')
        return {'connected': True, 'error': str(e)}


@relay_bp.route('', methods=['GET'])
def api_banner():
    return jsonify({'message': 'An API for use with your Dapp!'})


@relay_bp.route('/relay/status', methods=['GET'])
def get_relay_status():
    """
    Relay health and statistics.

    Returns:
    - Subscription poll stats and per-kind error channels
    - Coordinator counters (requests, submissions by outcome, duplicates)
    - Consensus tracker stats
    - Contract health (operational flag, airline counts)
    """
    start_time = time.perf_counter()

    relay = current_app.config.get('RELAY')
    stats = relay.stats if relay else None
    subscriptions = stats['subscriptions'] if stats else {'running': False}

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if subscriptions.get('running') and subscriptions.get('connected') else 'degraded',
        'ledger': _ledger_status(current_app.config['SURETY']),
        'relay': stats,
        'config': {
            'ledger_url': config.ledger.url,
            'num_oracles': config.oracles.num_oracles,
            'desired_status_code': config.oracles.desired_status_code,
            'prob_code_error': config.oracles.prob_code_error,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@relay_bp.route('/relay/oracles', methods=['GET'])
def list_oracles():
    """Registered oracles and the indexes each holds."""
    relay = current_app.config.get('RELAY')
    if relay is None:
        return jsonify({'error': 'Relay not running'}), 503

    oracles = [
        {'address': o.address, 'indexes': list(o.indexes)}
        for o in relay.state.roster
    ]
    return jsonify({'oracles': oracles, 'count': len(oracles)})


@relay_bp.route('/relay/submissions', methods=['GET'])
def list_submissions():
    """
    Recent oracle submissions, newest first.

    Query parameters:
    - limit: int, max results (default 50, max 500)
    - outcome: accepted|rejected|failed, optional filter
    - flight_id: optional filter
    """
    limit = min(int(request.args.get('limit', 50)), 500)
    outcome = request.args.get('outcome')
    flight_id = request.args.get('flight_id')

    stmt = select(OracleSubmission).order_by(desc(OracleSubmission.id)).limit(limit)
    if outcome:
        stmt = stmt.where(OracleSubmission.outcome == outcome)
    if flight_id:
        stmt = stmt.where(OracleSubmission.flight_id == flight_id)

    with SessionLocal() as session:
        rows = session.execute(stmt).scalars().all()

    return jsonify({
        'submissions': [r.to_dict() for r in rows],
        'count': len(rows),
    })
