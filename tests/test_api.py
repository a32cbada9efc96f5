"""Tests for the HTTP API."""

from concurrent.futures import wait

import pytest

from oracle_relay.app import create_app
from oracle_relay.errors import RejectedByLedger
from oracle_relay.ledger.events import FlightStatusInfo, OracleReport, OracleRequest
from oracle_relay.relay import OracleRelay

TIMESTAMP = 1637323200


@pytest.fixture
def relay(ledger):
    relay = OracleRelay(ledger)
    relay.setup()
    yield relay
    relay.stop()


@pytest.fixture
def client(ledger, relay):
    app = create_app(start_relay=False, ledger=ledger, relay=relay)
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def airline(ledger):
    return ledger.accounts()[1]


def test_banner(client):
    response = client.get('/api')
    assert response.status_code == 200
    assert response.get_json() == {'message': 'An API for use with your Dapp!'}


def test_health(client):
    assert client.get('/health').get_json() == {'status': 'ok'}


def test_unknown_route(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Not found'


# -- relay -------------------------------------------------------------------


def test_relay_status(client):
    data = client.get('/api/relay/status').get_json()

    # Polling threads are not running in tests
    assert data['status'] == 'degraded'
    assert data['config']['num_oracles'] == 20
    assert data['relay']['coordinator']['requests_seen'] == 0
    assert data['ledger'] == {
        'connected': True,
        'operational': True,
        'registered_airlines': 1,
        'funded_airlines': 1,
    }


def test_relay_status_with_ledger_down(client, ledger):
    ledger.transport_down = True

    response = client.get('/api/relay/status')

    assert response.status_code == 200
    assert response.get_json()['ledger'] == {'connected': False}


def test_relay_oracles(client, ledger):
    data = client.get('/api/relay/oracles').get_json()

    assert data['count'] == 20
    first = data['oracles'][0]
    assert first['address'] == ledger.oracle_accounts()[0]
    assert sorted(first['indexes']) == sorted(ledger.indexes[first['address']])


def test_relay_endpoints_without_relay(ledger):
    client = create_app(start_relay=False, ledger=ledger).test_client()

    assert client.get('/api/relay/oracles').status_code == 503
    assert client.get('/api/relay/status').get_json()['relay'] is None
    assert client.get('/api/flights/tally', query_string={
        'airline': '0x' + '2' * 40, 'flight_id': '523', 'timestamp': TIMESTAMP,
    }).status_code == 503


def test_relay_submissions(client, ledger, relay, airline):
    index = max(range(10), key=lambda i: sum(i in ledger.indexes[o.address] for o in relay.state.roster))
    holder = next(o.address for o in relay.state.roster if index in ledger.indexes[o.address])
    ledger.rejecting.add(holder)

    futures = relay.coordinator.handle_request(OracleRequest(index, airline, '523', TIMESTAMP))
    wait(futures)

    data = client.get('/api/relay/submissions').get_json()
    assert data['count'] == len(futures)

    rejected = client.get('/api/relay/submissions', query_string={'outcome': 'rejected'}).get_json()
    assert [s['oracle'] for s in rejected['submissions']] == [holder]

    other = client.get('/api/relay/submissions', query_string={'flight_id': '8001'}).get_json()
    assert other['count'] == 0


# -- flights -----------------------------------------------------------------


def test_list_flights(client):
    data = client.get('/api/flights').get_json()

    assert data['count'] == 3
    assert [f['flight_id'] for f in data['flights']] == ['523', '8001', '2397']
    assert data['flights'][0]['status'] == 'UNKNOWN'


def test_request_status(client, ledger, airline):
    response = client.post('/api/flights/status-request', json={
        'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP,
    })

    assert response.status_code == 202
    method, args, _, _ = ledger.sends[-1]
    assert method == 'fetchFlightStatus'
    assert args == (airline, '523', TIMESTAMP)


@pytest.mark.parametrize('body', [
    {'flight_id': '523', 'timestamp': TIMESTAMP},
    {'airline': '0x' + '2' * 40, 'flight_id': '523', 'timestamp': 'noon'},
])
def test_request_status_validation(client, body):
    assert client.post('/api/flights/status-request', json=body).status_code == 400


def test_request_status_without_body(client):
    assert client.post('/api/flights/status-request').status_code == 400


def test_rejection_maps_to_conflict(client, ledger, airline, monkeypatch):
    def declined(method, *args, context, contract='app'):
        raise RejectedByLedger(method, 'Flight is not registered')

    monkeypatch.setattr(ledger, 'send', declined)
    response = client.post('/api/flights/status-request', json={
        'airline': airline, 'flight_id': '9999', 'timestamp': TIMESTAMP,
    })

    assert response.status_code == 409
    data = response.get_json()
    assert data['method'] == 'fetchFlightStatus'
    assert data['reason'] == 'Flight is not registered'


def test_transport_error_maps_to_unavailable(client, ledger):
    ledger.transport_down = True
    assert client.get('/api/flights').status_code == 503


def test_tally(client, relay, airline):
    query = {'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP}
    assert client.get('/api/flights/tally', query_string=query).status_code == 404

    for code in (20, 20, 30):
        relay.tracker.record_report(OracleReport(airline, '523', TIMESTAMP, code))

    data = client.get('/api/flights/tally', query_string=query).get_json()
    assert data['tally']['votes']['20'] == 2
    assert data['tally']['leading_code'] == 20


def test_statuses(client, relay, airline):
    relay.tracker.record_final(FlightStatusInfo(airline, '523', TIMESTAMP, 20))
    relay.tracker.record_final(FlightStatusInfo(airline, '8001', TIMESTAMP, 10))

    everything = client.get('/api/flights/statuses').get_json()
    payable = client.get('/api/flights/statuses', query_string={'payable_only': 'true'}).get_json()

    assert everything['count'] == 2
    assert [s['flight_id'] for s in payable['statuses']] == ['523']


# -- insurance ---------------------------------------------------------------


def test_buy_insurance(client, ledger, airline):
    response = client.post('/api/insurance', json={
        'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP, 'amount': 0.25,
    })

    assert response.status_code == 200
    method, _, context, _ = ledger.sends[-1]
    assert method == 'buyInsurance'
    assert context.value == 25 * 10 ** 16


@pytest.mark.parametrize('amount', [None, 'lots', 2, 0])
def test_buy_insurance_bad_amount(client, airline, amount):
    body = {'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP}
    if amount is not None:
        body['amount'] = amount
    assert client.post('/api/insurance', json=body).status_code == 400


def test_surety_info(client, ledger, airline):
    passenger = ledger.accounts()[5]
    data = client.get('/api/insurance', query_string={
        'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP, 'passenger': passenger,
    }).get_json()

    assert data['surety'] == [passenger, 5 * 10 ** 17, False]


def test_withdraw_defaults_to_direct(client, ledger, airline):
    client.post('/api/insurance/withdraw', json={
        'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP,
    })
    assert ledger.sends[-1][0] == 'withdrawPassengerClaimDirect'

    client.post('/api/insurance/withdraw', json={
        'airline': airline, 'flight_id': '523', 'timestamp': TIMESTAMP, 'direct': False,
    })
    assert ledger.sends[-1][0] == 'withdrawPassengerClaim'
