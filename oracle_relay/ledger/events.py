"""
Typed ledger events.

Raw web3 log entries carry their decoded arguments in an ``args`` mapping
plus block metadata. Each event kind the relay cares about is decoded at
the subscription boundary into a frozen dataclass with fixed fields, so
nothing downstream touches raw payloads.

App contract events:
    OracleRequest     index, airline, flightId, timestamp
    OracleReport      airline, flightId, timestamp, statusCode
    FlightStatusInfo  airline, flightId, timestamp, statusCode

Data contract events (observability only) are decoded into LedgerNotice,
except FlightStatusUpdated which is a finalized status like
FlightStatusInfo.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

logger = logging.getLogger(__name__)

FlightKey = Tuple[str, str, int]
RequestKey = Tuple[int, str, str, int]

APP_CONTRACT = 'app'
DATA_CONTRACT = 'data'


@dataclass(frozen=True)
class LogMeta:
    """Position of an event in the ledger; identifies a log uniquely."""
    block_number: int
    tx_hash: str
    log_index: int

    @property
    def identity(self) -> Tuple[str, int]:
        return (self.tx_hash, self.log_index)

    @classmethod
    def from_log(cls, log: Mapping[str, Any]) -> 'LogMeta':
        tx = log.get('transactionHash')
        if isinstance(tx, (bytes, bytearray)):
            tx = tx.hex()
        return cls(
            block_number=int(log.get('blockNumber') or 0),
            tx_hash=str(tx or ''),
            log_index=int(log.get('logIndex') or 0),
        )


def _require(args: Mapping[str, Any], *names: str) -> Optional[Tuple[Any, ...]]:
    values = []
    for name in names:
        if name not in args or args[name] is None:
            return None
        values.append(args[name])
    return tuple(values)


@dataclass(frozen=True)
class OracleRequest:
    """A request for oracles holding ``index`` to report a flight status."""
    index: int
    airline: str
    flight_id: str
    timestamp: int
    meta: Optional[LogMeta] = field(default=None, compare=False)

    kind = 'OracleRequest'

    @property
    def flight_key(self) -> FlightKey:
        return (self.airline, self.flight_id, self.timestamp)

    @property
    def request_key(self) -> RequestKey:
        return (self.index, self.airline, self.flight_id, self.timestamp)

    @classmethod
    def from_args(cls, args: Mapping[str, Any], meta: Optional[LogMeta] = None) -> Optional['OracleRequest']:
        values = _require(args, 'index', 'airline', 'flightId', 'timestamp')
        if values is None:
            return None
        index, airline, flight_id, timestamp = values
        try:
            return cls(int(index), str(airline), str(flight_id), int(timestamp), meta)
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class _FlightStatusEvent:
    airline: str
    flight_id: str
    timestamp: int
    status_code: int
    meta: Optional[LogMeta] = field(default=None, compare=False)

    @property
    def flight_key(self) -> FlightKey:
        return (self.airline, self.flight_id, self.timestamp)

    @classmethod
    def from_args(cls, args: Mapping[str, Any], meta: Optional[LogMeta] = None):
        values = _require(args, 'airline', 'flightId', 'timestamp', 'statusCode')
        if values is None:
            return None
        airline, flight_id, timestamp, status_code = values
        try:
            return cls(str(airline), str(flight_id), int(timestamp), int(status_code), meta)
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class OracleReport(_FlightStatusEvent):
    """One oracle vote accepted by the ledger."""
    kind = 'OracleReport'


@dataclass(frozen=True)
class FlightStatusInfo(_FlightStatusEvent):
    """Finalized status emitted by the app contract once quorum is reached."""
    kind = 'FlightStatusInfo'


@dataclass(frozen=True)
class FlightStatusUpdated(_FlightStatusEvent):
    """Finalized status as recorded by the data contract."""
    kind = 'FlightStatusUpdated'


@dataclass(frozen=True)
class LedgerNotice:
    """Lifecycle event consumed only for logging."""
    name: str
    args: Dict[str, Any]
    meta: Optional[LogMeta] = field(default=None, compare=False)

    kind = 'LedgerNotice'


LedgerEvent = Union[OracleRequest, OracleReport, FlightStatusInfo, FlightStatusUpdated, LedgerNotice]

# event name -> (emitting contract, decoder); None means LedgerNotice
EVENT_KINDS: Dict[str, Tuple[str, Optional[Type]]] = {
    'OracleRequest': (APP_CONTRACT, OracleRequest),
    'OracleReport': (APP_CONTRACT, OracleReport),
    'FlightStatusInfo': (APP_CONTRACT, FlightStatusInfo),
    'AppContractAuthorized': (DATA_CONTRACT, None),
    'AppContractDeauthorized': (DATA_CONTRACT, None),
    'AirlineRegistered': (DATA_CONTRACT, None),
    'AirlineFunded': (DATA_CONTRACT, None),
    'AirlineDeregistered': (DATA_CONTRACT, None),
    'FlightRegistered': (DATA_CONTRACT, None),
    'PassengerBoughtInsurance': (DATA_CONTRACT, None),
    'FlightStatusUpdated': (DATA_CONTRACT, FlightStatusUpdated),
    'FlightInsurancePayable': (DATA_CONTRACT, None),
    'PassengerReceivedCredit': (DATA_CONTRACT, None),
    'PassengerPaid': (DATA_CONTRACT, None),
    'FlightInsurancePaid': (DATA_CONTRACT, None),
}


def contract_for(kind: str) -> str:
    """Name of the contract emitting ``kind``."""
    if kind not in EVENT_KINDS:
        raise KeyError(f'Unknown event kind: {kind}')
    return EVENT_KINDS[kind][0]


def decode_event(kind: str, log: Mapping[str, Any]) -> Optional[LedgerEvent]:
    """
    Decode a raw web3 log entry into a typed event.

    Returns None if the payload is malformed (missing or mistyped fields).
    """
    if kind not in EVENT_KINDS:
        return None

    args = log.get('args')
    if not isinstance(args, Mapping):
        return None

    meta = LogMeta.from_log(log)
    decoder = EVENT_KINDS[kind][1]
    if decoder is None:
        return LedgerNotice(name=kind, args=dict(args), meta=meta)
    return decoder.from_args(args, meta)
