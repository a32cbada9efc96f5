"""
Database models for the oracle relay.

An audit trail of what the relay did and observed:
1. Every oracle submission and its outcome (append-only)
2. The latest finalized status per flight
"""

from oracle_relay.models.base import Base, engine, SessionLocal, init_db, get_session
from oracle_relay.models.submission import OracleSubmission, SubmissionOutcome
from oracle_relay.models.flight_status import FlightStatus

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'get_session',
    'OracleSubmission',
    'SubmissionOutcome',
    'FlightStatus',
]
