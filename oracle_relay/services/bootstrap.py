"""
Demo ledger setup run before the relay starts answering requests.

Account layout on the development node:
    accounts[0]                 contract owner
    accounts[1]                 airline 1 (registered at deployment, unfunded)
    accounts[FIRST_ORACLE_ACCOUNT:]  oracle identities

Airline 1 funds itself and registers a few demo flights so the dapp has
something to insure. Every step logs and carries on if the ledger
declines it (e.g. the airline was already funded by an earlier run).
"""

import logging
from datetime import datetime, timezone
from typing import List, Tuple

from oracle_relay.config import config
from oracle_relay.errors import RejectedByLedger

logger = logging.getLogger(__name__)


def _departure(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


# (flight id, departure unix seconds)
DEMO_FLIGHTS: List[Tuple[str, int]] = [
    ('523', _departure(2021, 11, 19, 12, 0)),
    ('8001', _departure(2021, 11, 20, 15, 30)),
    ('2397', _departure(2021, 11, 26, 19, 45)),
]


def fund_demo_airline(surety, airline: str) -> bool:
    """Fund the deployment-registered airline. Returns True on success."""
    logger.info('Airline 1 is registered, still needs to be funded')
    try:
        surety.fund_airline(airline)
    except RejectedByLedger as e:
        logger.error(f'Failed to fund airline 1 at address {airline}: {e.reason or e}')
        return False
    logger.info('Airline 1 is now funded')
    return True


def register_demo_flights(surety, airline: str, flights=None) -> List[Tuple[str, int]]:
    """Register demo flights for ``airline``. Returns those registered."""
    registered = []
    for i, (flight_id, departure) in enumerate(flights or DEMO_FLIGHTS, start=1):
        try:
            surety.register_flight(airline, flight_id, departure)
        except RejectedByLedger as e:
            logger.error(f'Airline failed to register flight {i} ({flight_id}): {e.reason or e}')
            continue
        logger.info(f'Flight {i} ({flight_id}) is now registered')
        registered.append((flight_id, departure))
    return registered


def oracle_accounts(accounts: List[str], num_oracles: int = None, first_oracle: int = None) -> List[str]:
    """
    Accounts to use as oracles.

    Uses fewer than ``num_oracles`` if the node does not have enough
    accounts past ``first_oracle``.
    """
    num_oracles = num_oracles if num_oracles is not None else config.oracles.num_oracles
    first_oracle = first_oracle if first_oracle is not None else config.oracles.first_oracle_account

    available = max(0, len(accounts) - first_oracle)
    if available < num_oracles:
        logger.warning(f'Using only {available} oracles')
        num_oracles = available
    return accounts[first_oracle:first_oracle + num_oracles]
