"""Tests for decoding raw logs into typed events."""

import pytest

from oracle_relay.ledger.events import (
    FlightStatusInfo,
    FlightStatusUpdated,
    LedgerNotice,
    OracleReport,
    OracleRequest,
    contract_for,
    decode_event,
)


def _log(args, block=7, log_index=2, tx=b'\x01' * 32):
    return {'args': args, 'blockNumber': block, 'logIndex': log_index, 'transactionHash': tx}


AIRLINE = '0x' + '1' * 40


def test_decode_oracle_request():
    event = decode_event('OracleRequest', _log({
        'index': 4, 'airline': AIRLINE, 'flightId': '1234', 'timestamp': 1637323200,
    }))

    assert isinstance(event, OracleRequest)
    assert event.request_key == (4, AIRLINE, '1234', 1637323200)
    assert event.flight_key == (AIRLINE, '1234', 1637323200)
    assert event.meta.block_number == 7
    assert event.meta.identity == ((b'\x01' * 32).hex(), 2)


def test_decode_status_events():
    args = {'airline': AIRLINE, 'flightId': '523', 'timestamp': 10, 'statusCode': 20}

    assert isinstance(decode_event('OracleReport', _log(args)), OracleReport)
    assert isinstance(decode_event('FlightStatusInfo', _log(args)), FlightStatusInfo)
    updated = decode_event('FlightStatusUpdated', _log(args))
    assert isinstance(updated, FlightStatusUpdated)
    assert updated.status_code == 20


def test_lifecycle_events_become_notices():
    event = decode_event('PassengerPaid', _log({'passenger': AIRLINE, 'amt': 15}))

    assert isinstance(event, LedgerNotice)
    assert event.name == 'PassengerPaid'
    assert event.args['amt'] == 15


def test_missing_field_is_malformed():
    assert decode_event('OracleRequest', _log({'index': 4, 'airline': AIRLINE, 'flightId': '1'})) is None


def test_mistyped_field_is_malformed():
    assert decode_event('OracleRequest', _log({
        'index': 'four', 'airline': AIRLINE, 'flightId': '1', 'timestamp': 1,
    })) is None


def test_missing_args_is_malformed():
    assert decode_event('OracleReport', {'blockNumber': 1}) is None


def test_unknown_kind():
    assert decode_event('Transfer', _log({})) is None
    with pytest.raises(KeyError):
        contract_for('Transfer')


def test_event_contracts():
    assert contract_for('OracleRequest') == 'app'
    assert contract_for('FlightStatusUpdated') == 'data'


def test_metadata_does_not_affect_equality():
    args = {'index': 1, 'airline': AIRLINE, 'flightId': '1', 'timestamp': 1}
    first = decode_event('OracleRequest', _log(args, block=1))
    replay = decode_event('OracleRequest', _log(args, block=9, tx=b'\x02' * 32))
    assert first == replay
