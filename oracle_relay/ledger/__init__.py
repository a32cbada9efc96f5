"""
Ledger access for the relay.

Wraps the FlightSurety contracts behind a call/send façade, decodes raw
logs into typed events, and keeps long-lived event subscriptions.
"""

from oracle_relay.ledger.client import LedgerClient, SendContext
from oracle_relay.ledger.events import (
    FlightStatusInfo,
    FlightStatusUpdated,
    LedgerNotice,
    OracleReport,
    OracleRequest,
    decode_event,
)
from oracle_relay.ledger.subscriptions import EventSubscriber, Subscription

__all__ = [
    'LedgerClient',
    'SendContext',
    'OracleRequest',
    'OracleReport',
    'FlightStatusInfo',
    'FlightStatusUpdated',
    'LedgerNotice',
    'decode_event',
    'EventSubscriber',
    'Subscription',
]
