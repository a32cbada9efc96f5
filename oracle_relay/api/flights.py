"""
Flight API endpoints.

Provides endpoints for:
- GET /api/flights - Registered flights from the ledger
- POST /api/flights/status-request - Ask oracles for a flight's status
- GET /api/flights/statuses - Finalized statuses observed by the relay
- GET /api/flights/tally - Oracle votes observed for one flight
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request, current_app
from sqlalchemy import select, desc

from oracle_relay.models import FlightStatus
from oracle_relay.models.base import SessionLocal

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/flights')


def _flight_args(data):
    """Extract (airline, flight_id, timestamp) or raise ValueError."""
    airline = data.get('airline')
    flight_id = data.get('flight_id')
    timestamp = data.get('timestamp')

    if not airline or not flight_id or timestamp is None:
        raise ValueError('airline, flight_id and timestamp required')
    try:
        timestamp = int(timestamp)
    except (TypeError, ValueError):
        raise ValueError('Invalid timestamp') from None
    return str(airline), str(flight_id), timestamp


@flights_bp.route('', methods=['GET'])
def list_flights():
    """Registered flights with status and payout flags, by departure time."""
    start_time = time.perf_counter()

    surety = current_app.config['SURETY']
    flights = surety.list_flights()

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'flights': [f.to_dict() for f in flights],
        'count': len(flights),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@flights_bp.route('/status-request', methods=['POST'])
def request_flight_status():
    """
    Emit an OracleRequest for a flight.

    Body: {"airline": str, "flight_id": str, "timestamp": int}
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'JSON body required'}), 400

    try:
        airline, flight_id, timestamp = _flight_args(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    surety = current_app.config['SURETY']
    surety.fetch_flight_status(airline, flight_id, timestamp)

    return jsonify({
        'success': True,
        'airline': airline,
        'flight_id': flight_id,
        'timestamp': timestamp,
        'message': 'Status requested from oracles',
    }), 202


@flights_bp.route('/statuses', methods=['GET'])
def list_statuses():
    """
    Finalized flight statuses, most recent first.

    Query parameters:
    - payable_only: boolean (default false)
    - limit: int (default 100, max 500)
    """
    payable_only = request.args.get('payable_only', 'false').lower() == 'true'
    limit = min(int(request.args.get('limit', 100)), 500)

    stmt = select(FlightStatus).order_by(desc(FlightStatus.finalized_at)).limit(limit)
    if payable_only:
        stmt = stmt.where(FlightStatus.payable.is_(True))

    with SessionLocal() as session:
        rows = session.execute(stmt).scalars().all()

    return jsonify({
        'statuses': [r.to_dict() for r in rows],
        'count': len(rows),
    })


@flights_bp.route('/tally', methods=['GET'])
def get_tally():
    """
    Oracle votes observed for a flight.

    Query parameters: airline, flight_id, timestamp (all required)
    """
    try:
        key = _flight_args(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    relay = current_app.config.get('RELAY')
    if relay is None:
        return jsonify({'error': 'Relay not running'}), 503

    tally = relay.tracker.tally(key)
    if tally is None:
        return jsonify({'error': 'No reports observed for flight'}), 404

    return jsonify({
        'airline': key[0],
        'flight_id': key[1],
        'timestamp': key[2],
        'tally': tally,
    })
