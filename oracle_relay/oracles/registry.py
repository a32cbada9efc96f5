"""
Oracle registry - the locally-known oracle identities and their indexes.

Each identity registers once per run by paying the registration fee to
the app contract, which assigns it a fixed set of (typically 3) indexes.
Indexes are cached after the first fetch. There is no removal.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from oracle_relay.config import config
from oracle_relay.errors import RegistrationFailure, RejectedByLedger, TransportError, UnknownOracle
from oracle_relay.ledger.client import SendContext
from oracle_relay.state import Oracle, RelayState

logger = logging.getLogger(__name__)

IndexSet = Tuple[int, ...]


class OracleRegistry:
    """Registers oracle identities and serves their index sets."""

    def __init__(self, ledger, state: RelayState, gas: Optional[int] = None):
        self.ledger = ledger
        self.state = state
        self.gas = gas or config.ledger.gas_limit
        self._fee: Optional[int] = None

    @property
    def registration_fee(self) -> int:
        """Oracle registration fee in wei, fetched once."""
        if self._fee is None:
            self._fee = int(self.ledger.call('oracleRegistrationFee'))
        return self._fee

    @property
    def roster(self) -> List[Oracle]:
        return self.state.roster

    def _fetch_indexes(self, identity: str) -> IndexSet:
        indexes = self.ledger.call('getMyIndexes', sender=identity)
        return tuple(int(i) for i in indexes)

    def register_oracle(self, identity: str) -> IndexSet:
        """
        Register ``identity`` with the app contract.

        Once the ledger accepts the registration the oracle joins the roster,
        even if its indexes cannot be read yet; they are fetched on first use.

        Returns:
            The index set the ledger assigned (empty if not yet fetched)

        Raises:
            RegistrationFailure if already registered this run, or if the
            ledger declines or cannot be reached
        """
        existing = self.state.get_oracle(identity)
        if existing and existing.registered:
            raise RegistrationFailure(identity, 'already registered')

        try:
            self.ledger.send(
                'registerOracle',
                context=SendContext(sender=identity, value=self.registration_fee, gas=self.gas),
            )
        except (RejectedByLedger, TransportError) as e:
            self.state.add_oracle(Oracle(address=identity, registered=False))
            raise RegistrationFailure(identity, str(e)) from e

        try:
            indexes = self._fetch_indexes(identity)
        except (RejectedByLedger, TransportError) as e:
            logger.warning(f'Oracle registered: {identity}, indexes not fetched yet: {e}')
            indexes = ()
        else:
            logger.info(f'Oracle registered: {identity} indexes={list(indexes)}')

        self.state.add_oracle(Oracle(address=identity, indexes=indexes, registered=True))
        return indexes

    def register_all(self, identities: Iterable[str]) -> int:
        """
        Register each identity, excluding failures from the roster.

        Returns count of oracles registered.
        """
        registered = 0
        for i, identity in enumerate(identities):
            try:
                self.register_oracle(identity)
                registered += 1
            except RegistrationFailure as e:
                logger.error(f'Failed to register oracle {i} at {identity}: {e.reason}')

        logger.info(f'Using {registered} oracles')
        return registered

    def get_indexes(self, identity: str) -> IndexSet:
        """
        Index set of a registered oracle, from cache or freshly fetched.

        Raises:
            UnknownOracle if ``identity`` was never registered
            RejectedByLedger / TransportError if an uncached fetch fails
        """
        oracle = self.state.get_oracle(identity)
        if oracle is None or not oracle.registered:
            raise UnknownOracle(identity)

        if oracle.indexes:
            return oracle.indexes

        indexes = self._fetch_indexes(identity)
        with self.state.lock:
            oracle.indexes = indexes
        return indexes
