"""
FlightSurety service - typed access to the app and data contract operations.

Wraps the ledger façade with one method per contract operation used by
the relay startup and the HTTP API:
- airlines: register, fund, fee and counts
- flights: register, list, info, request a status
- insurance: buy, surety info, withdraw a claim

Registered flight info is cached briefly since the flight list is
re-read on every page load while it rarely changes.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from web3 import Web3

from oracle_relay.config import config
from oracle_relay.ledger.client import SendContext
from oracle_relay.ledger.events import DATA_CONTRACT
from oracle_relay.status_codes import describe

logger = logging.getLogger(__name__)

# Upper bound on a single insurance purchase, in ether
MAX_INSURANCE_ETHER = 1.0


@dataclass
class RegisteredFlight:
    """Flight as recorded by the app contract."""
    airline: str
    flight_id: str
    timestamp: int
    status_code: int
    insurance_payable: bool = False
    insurance_paid: bool = False
    flight_key: Optional[str] = None

    @classmethod
    def from_info(cls, info: Any, flight_key: Optional[str] = None) -> 'RegisteredFlight':
        """Parse the getRegisteredFlightInfo tuple."""
        return cls(
            airline=str(info[0]),
            flight_id=str(info[1]),
            timestamp=int(info[2]),
            status_code=int(info[3]),
            insurance_payable=bool(info[4]),
            insurance_paid=bool(info[5]),
            flight_key=flight_key,
        )

    def to_dict(self) -> dict:
        return {
            'airline': self.airline,
            'flight_id': self.flight_id,
            'timestamp': self.timestamp,
            'status_code': self.status_code,
            'status': describe(self.status_code),
            'insurance_payable': self.insurance_payable,
            'insurance_paid': self.insurance_paid,
            'flight_key': self.flight_key,
        }


def _key_hex(flight_key: Any) -> str:
    if isinstance(flight_key, (bytes, bytearray)):
        return Web3.to_hex(flight_key)
    return str(flight_key)


def _key_bytes(flight_key: Any) -> Any:
    if isinstance(flight_key, str) and flight_key.startswith('0x'):
        return Web3.to_bytes(hexstr=flight_key)
    return flight_key


class FlightSuretyService:
    """Operations on the FlightSurety contracts on behalf of one owner account."""

    def __init__(self, ledger, owner: Optional[str] = None, gas: Optional[int] = None):
        self.ledger = ledger
        self._owner = owner
        self.gas = gas or config.ledger.gas_limit

        # flight key -> (RegisteredFlight, fetched_at)
        self._flight_cache: Dict[str, Tuple[RegisteredFlight, float]] = {}
        self._cache_ttl = 30
        self._lock = threading.RLock()

    @property
    def owner(self) -> str:
        """Contract owner account (first node account unless given)."""
        if self._owner is None:
            self._owner = self.ledger.accounts()[0]
        return self._owner

    def _context(self, sender: Optional[str] = None, value: int = 0) -> SendContext:
        return SendContext(sender=sender or self.owner, value=value, gas=self.gas)

    # -------------------------------------------------------------------------
    # Contract administration
    # -------------------------------------------------------------------------

    def is_operational(self) -> bool:
        return bool(self.ledger.call('isOperational', sender=self.owner))

    def authorize_app_contract(self):
        """Authorize the app contract to write to the data contract."""
        app_address = self.ledger.address_of()
        logger.info('Authorizing app contract...')
        receipt = self.ledger.send(
            'authorizeAppContract',
            app_address,
            context=self._context(),
            contract=DATA_CONTRACT,
        )
        logger.info('App contract is now authorized')
        return receipt

    # -------------------------------------------------------------------------
    # Airlines
    # -------------------------------------------------------------------------

    def airline_registration_fee(self) -> int:
        return int(self.ledger.call('airlineRegistrationFee'))

    def register_airline(self, airline: str, sponsor: str):
        """``sponsor`` must be a funded airline."""
        return self.ledger.send('registerAirline', airline, context=self._context(sponsor))

    def fund_airline(self, airline: str, fee: Optional[int] = None):
        """Pay the airline's registration fee from its own account."""
        fee = fee if fee is not None else self.airline_registration_fee()
        return self.ledger.send('fundAirline', airline, context=self._context(airline, value=fee))

    def num_registered_airlines(self) -> int:
        return int(self.ledger.call('getNumRegisteredAirlines'))

    def num_funded_airlines(self) -> int:
        return int(self.ledger.call('getNumFundedAirlines'))

    # -------------------------------------------------------------------------
    # Flights
    # -------------------------------------------------------------------------

    def register_flight(self, airline: str, flight_id: str, timestamp: int):
        return self.ledger.send(
            'registerFlight', airline, flight_id, timestamp,
            context=self._context(airline),
        )

    def get_registered_flights(self) -> List[str]:
        """Flight keys of all registered flights, as hex strings."""
        return [_key_hex(k) for k in self.ledger.call('getRegisteredFlights')]

    def get_registered_flight_info(self, flight_key: str) -> RegisteredFlight:
        cached = self._get_cached(flight_key)
        if cached is not None:
            return cached

        info = self.ledger.call('getRegisteredFlightInfo', _key_bytes(flight_key))
        flight = RegisteredFlight.from_info(info, flight_key=flight_key)
        self._set_cached(flight_key, flight)
        return flight

    def list_flights(self) -> List[RegisteredFlight]:
        """All registered flights with their info, by departure time."""
        flights = [self.get_registered_flight_info(k) for k in self.get_registered_flights()]
        flights.sort(key=lambda f: f.timestamp)
        return flights

    def fetch_flight_status(self, airline: str, flight_id: str, timestamp: int, sender: Optional[str] = None):
        """Ask the app contract to emit an OracleRequest for this flight."""
        receipt = self.ledger.send(
            'fetchFlightStatus', airline, flight_id, timestamp,
            context=self._context(sender),
        )
        self.invalidate()
        logger.info(f'Requested status for flight {flight_id}@{timestamp}')
        return receipt

    # -------------------------------------------------------------------------
    # Insurance
    # -------------------------------------------------------------------------

    def buy_insurance(
        self,
        airline: str,
        flight_id: str,
        timestamp: int,
        amount_ether: float,
        passenger: Optional[str] = None,
    ):
        """
        Insure ``passenger`` (default owner) for a flight.

        Raises:
            ValueError unless 0 < amount_ether <= 1
        """
        if not 0 < amount_ether <= MAX_INSURANCE_ETHER:
            raise ValueError(f'Insurance amount must be between 0 and {MAX_INSURANCE_ETHER} ether')

        value = Web3.to_wei(amount_ether, 'ether')
        logger.info(f'Buying insurance for {flight_id}@{timestamp}: {value} wei')
        return self.ledger.send(
            'buyInsurance', airline, flight_id, timestamp,
            context=self._context(passenger, value=value),
        )

    def get_surety_info(self, airline: str, flight_id: str, timestamp: int, passenger: Optional[str] = None):
        return self.ledger.call(
            'getSuretyInfo', airline, flight_id, timestamp,
            sender=passenger or self.owner,
        )

    def withdraw_passenger_claim(self, airline: str, flight_id: str, timestamp: int, passenger: Optional[str] = None):
        receipt = self.ledger.send(
            'withdrawPassengerClaim', airline, flight_id, timestamp,
            context=self._context(passenger),
        )
        self.invalidate()
        return receipt

    def withdraw_passenger_claim_direct(self, airline: str, flight_id: str, timestamp: int, passenger: Optional[str] = None):
        """Withdraw through the data contract directly."""
        passenger = passenger or self.owner
        receipt = self.ledger.send(
            'withdrawPassengerClaimDirect', passenger, airline, flight_id, timestamp,
            context=self._context(passenger),
            contract=DATA_CONTRACT,
        )
        self.invalidate()
        return receipt

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def _get_cached(self, flight_key: str) -> Optional[RegisteredFlight]:
        with self._lock:
            if flight_key in self._flight_cache:
                flight, fetched_at = self._flight_cache[flight_key]
                if time.time() - fetched_at < self._cache_ttl:
                    return flight
                del self._flight_cache[flight_key]
        return None

    def _set_cached(self, flight_key: str, flight: RegisteredFlight) -> None:
        with self._lock:
            self._flight_cache[flight_key] = (flight, time.time())

    def invalidate(self) -> None:
        """Drop cached flight info (status or payout may have changed)."""
        with self._lock:
            self._flight_cache.clear()
