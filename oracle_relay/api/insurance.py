"""
Insurance API endpoints.

Provides endpoints for:
- GET /api/insurance - Surety info for a passenger and flight
- POST /api/insurance - Buy insurance for a flight
- POST /api/insurance/withdraw - Collect a payable claim
"""

import logging

from flask import Blueprint, jsonify, request, current_app

from oracle_relay.api.flights import _flight_args

logger = logging.getLogger(__name__)

insurance_bp = Blueprint('insurance', __name__, url_prefix='/api/insurance')


def _jsonable(value):
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@insurance_bp.route('', methods=['GET'])
def get_surety_info():
    """
    Query parameters: airline, flight_id, timestamp, passenger (optional)
    """
    try:
        airline, flight_id, timestamp = _flight_args(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    surety = current_app.config['SURETY']
    info = surety.get_surety_info(airline, flight_id, timestamp, passenger=request.args.get('passenger'))

    return jsonify({
        'airline': airline,
        'flight_id': flight_id,
        'timestamp': timestamp,
        'surety': _jsonable(info),
    })


@insurance_bp.route('', methods=['POST'])
def buy_insurance():
    """
    Body: {"airline": str, "flight_id": str, "timestamp": int,
           "amount": float (ether, 0 < amount <= 1), "passenger": str optional}
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'JSON body required'}), 400

    try:
        airline, flight_id, timestamp = _flight_args(data)
        amount = float(data.get('amount'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except TypeError:
        return jsonify({'error': 'amount required'}), 400

    surety = current_app.config['SURETY']
    try:
        surety.buy_insurance(airline, flight_id, timestamp, amount, passenger=data.get('passenger'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'success': True,
        'message': f'Insured for flight {flight_id}',
    })


@insurance_bp.route('/withdraw', methods=['POST'])
def withdraw_claim():
    """
    Body: {"airline": str, "flight_id": str, "timestamp": int,
           "passenger": str optional, "direct": bool optional}

    ``direct`` withdraws through the data contract.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'JSON body required'}), 400

    try:
        airline, flight_id, timestamp = _flight_args(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    surety = current_app.config['SURETY']
    passenger = data.get('passenger')
    if data.get('direct', True):
        surety.withdraw_passenger_claim_direct(airline, flight_id, timestamp, passenger=passenger)
    else:
        surety.withdraw_passenger_claim(airline, flight_id, timestamp, passenger=passenger)

    return jsonify({
        'success': True,
        'message': f'Collected surety for flight {flight_id}',
    })
