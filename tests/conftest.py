"""
Pytest configuration and fixtures.

Provides an in-process fake of the FlightSurety contracts that implements
the ledger client interface, so the relay can be exercised end to end
without a node.
"""

import hashlib
import os
import random
import tempfile
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor

import pytest

# Set environment before importing the package
_tmpdir = tempfile.mkdtemp(prefix='oracle_relay_test_')
os.environ['DATABASE_URL'] = f'sqlite:///{os.path.join(_tmpdir, "relay.db")}'
os.environ['EVENT_POLL_SECONDS'] = '0.05'
os.environ['EVENT_START_BLOCK'] = 'latest'
os.environ['EVENT_REPLAY_BLOCKS'] = '5'

from oracle_relay.errors import RejectedByLedger, TransportError  # noqa: E402
from oracle_relay.ledger.events import APP_CONTRACT  # noqa: E402
from oracle_relay.models import FlightStatus, OracleSubmission, init_db  # noqa: E402
from oracle_relay.models.base import SessionLocal  # noqa: E402
from oracle_relay.oracles.coordinator import ResponseCoordinator  # noqa: E402
from oracle_relay.oracles.registry import OracleRegistry  # noqa: E402
from oracle_relay.state import RelayState  # noqa: E402
from oracle_relay.status_codes import StatusCodeGenerator  # noqa: E402
from oracle_relay.tracker import StatusTracker  # noqa: E402

FIRST_ORACLE = 10
NUM_ORACLES = 20
ORACLE_FEE = 10 ** 18
AIRLINE_FEE = 10 * 10 ** 18


class FakeLedger:
    """
    Stand-in for LedgerClient backed by in-memory contract state.

    Mirrors the contract rules the relay relies on: each oracle gets three
    distinct indexes in 0..9 at registration, and a response is rejected
    unless the index belongs to the submitting oracle.
    """

    def __init__(self, num_accounts=40, seed=1234):
        self._rng = random.Random(seed)
        self._accounts = [f'0x{i:040x}' for i in range(1, num_accounts + 1)]
        self._lock = threading.Lock()

        self.block = 1
        self.logs = defaultdict(list)
        self._log_counter = 0

        self.indexes = {}
        self.submissions = []
        self.sends = []
        self.calls = []
        self.flights = {}
        self.rejecting = set()
        self.transport_down = False
        self.authorized = True

    # -- ledger client interface --------------------------------------------

    def accounts(self):
        return list(self._accounts)

    def address_of(self, contract=APP_CONTRACT):
        return '0x' + ('a' if contract == APP_CONTRACT else 'd') * 40

    def is_connected(self):
        return not self.transport_down

    def block_number(self):
        if self.transport_down:
            raise TransportError('connection refused')
        return self.block

    def call(self, method, *args, sender=None, contract=APP_CONTRACT):
        if self.transport_down:
            raise TransportError('connection refused')
        with self._lock:
            self.calls.append((method, args, sender))

        if method == 'oracleRegistrationFee':
            return ORACLE_FEE
        if method == 'airlineRegistrationFee':
            return AIRLINE_FEE
        if method == 'getMyIndexes':
            if sender not in self.indexes:
                raise RejectedByLedger(method, 'Not registered as an oracle')
            return list(self.indexes[sender])
        if method == 'getNumRegisteredAirlines':
            return 1
        if method == 'getNumFundedAirlines':
            return int(any(s[0] == 'fundAirline' for s in self.sends))
        if method == 'isOperational':
            return True
        if method == 'getRegisteredFlights':
            return list(self.flights)
        if method == 'getRegisteredFlightInfo':
            return self.flights[args[0]]
        if method == 'getSuretyInfo':
            return [sender, 5 * 10 ** 17, False]
        raise AssertionError(f'Unexpected call: {method}')

    def send(self, method, *args, context, contract=APP_CONTRACT):
        if self.transport_down:
            raise TransportError('connection refused')
        with self._lock:
            self.sends.append((method, args, context, contract))

        sender = context.sender
        if method == 'authorizeAppContract' and not self.authorized:
            raise RejectedByLedger(method, 'Caller is not contract owner')
        if method == 'registerOracle':
            if sender in self.indexes:
                raise RejectedByLedger(method, 'Oracle already registered')
            if context.value < ORACLE_FEE:
                raise RejectedByLedger(method, 'Registration fee is required')
            self.indexes[sender] = tuple(self._rng.sample(range(10), 3))
        elif method == 'submitOracleResponse':
            index = args[0]
            if sender in self.rejecting:
                raise RejectedByLedger(method, 'Flight or timestamp do not match oracle request')
            if index not in self.indexes.get(sender, ()):
                raise RejectedByLedger(method, 'Index does not match oracle request')
            with self._lock:
                self.submissions.append((sender,) + tuple(args))
        elif method == 'registerFlight':
            airline, flight_id, timestamp = args
            key = hashlib.sha256(f'{airline}{flight_id}{timestamp}'.encode()).digest()
            self.flights[key] = (airline, flight_id, timestamp, 0, False, False)

        return {'status': 1, 'transactionHash': os.urandom(32), 'blockNumber': self.block}

    def get_events(self, kind, from_block, to_block, argument_filters=None, contract=APP_CONTRACT):
        if self.transport_down:
            raise TransportError('connection refused')
        return [
            log for log in self.logs[kind]
            if from_block <= log['blockNumber'] <= to_block
        ]

    # -- test helpers --------------------------------------------------------

    def emit(self, kind, **args):
        """Append a raw log for ``kind`` in a new block."""
        self.block += 1
        self._log_counter += 1
        log = {
            'event': kind,
            'args': args,
            'blockNumber': self.block,
            'transactionHash': self._log_counter.to_bytes(32, 'big'),
            'logIndex': 0,
        }
        self.logs[kind].append(log)
        return log

    def oracle_accounts(self, n=NUM_ORACLES):
        return self._accounts[FIRST_ORACLE:FIRST_ORACLE + n]

    def submissions_for(self, flight_id):
        return [s for s in self.submissions if s[3] == flight_id]


@pytest.fixture(scope='session', autouse=True)
def database():
    init_db()
    yield


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with SessionLocal() as session:
        session.query(OracleSubmission).delete()
        session.query(FlightStatus).delete()
        session.commit()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def state():
    return RelayState()


@pytest.fixture
def registry(ledger, state):
    return OracleRegistry(ledger, state)


@pytest.fixture
def registered(ledger, registry):
    """Registry with NUM_ORACLES oracles registered."""
    registry.register_all(ledger.oracle_accounts())
    return registry


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def make_coordinator(ledger, state, executor):
    def _make(registry, desired_code=20, p_error=0.0, persist=False, seed=99):
        return ResponseCoordinator(
            ledger,
            registry,
            state,
            generator=StatusCodeGenerator(desired_code, p_error, rng=random.Random(seed)),
            tracker=StatusTracker(min_responses=3, persist=persist),
            executor=executor,
            persist=persist,
        )
    return _make
