"""
FlightSurety Oracle Relay.

Answers flight-status oracle requests from the FlightSurety contracts on
behalf of a roster of oracle accounts, built with web3, Flask and
SQLAlchemy.

Modules:
    ledger/         Contract call/send façade, typed events, event subscriptions
    oracles/        Oracle registry and response coordinator
    services/       FlightSurety contract operations and demo setup
    models/         SQLAlchemy audit log (submissions, finalized statuses)
    api/            REST endpoints for relay status, flights and insurance
    relay.py        Wiring of the relay components around one RelayState
    state.py        Shared relay state (roster, submitted pairs, event queue)
    tracker.py      Client-side view of oracle votes and finalized statuses
    status_codes.py Flight status codes and vote synthesis
    errors.py       Relay error taxonomy
    config.py       Centralized configuration from environment variables
"""

__version__ = '1.0.0'
