"""
The oracle relay - wires registry, subscriptions and coordinator around one
RelayState and runs them.

Startup sequence:
1. Authorize the app contract against the data contract
2. Fund the demo airline and register demo flights (optional)
3. Register the oracle accounts
4. Subscribe to all events and start polling
5. Start the coordinator's consumer loop

Failure in step 1 or 4 is fatal (raised to the caller). Everything else is
logged and tolerated.
"""

import logging
from typing import Optional

from oracle_relay.ledger.subscriptions import EventSubscriber
from oracle_relay.oracles.coordinator import ResponseCoordinator
from oracle_relay.oracles.registry import OracleRegistry
from oracle_relay.services import bootstrap
from oracle_relay.services.surety import FlightSuretyService
from oracle_relay.state import RelayState
from oracle_relay.status_codes import StatusCodeGenerator
from oracle_relay.tracker import StatusTracker

logger = logging.getLogger(__name__)


class OracleRelay:
    """Owns the relay state and every component that shares it."""

    def __init__(
        self,
        ledger,
        generator: Optional[StatusCodeGenerator] = None,
        tracker: Optional[StatusTracker] = None,
        subscriber: Optional[EventSubscriber] = None,
        persist: bool = True,
    ):
        self.ledger = ledger
        self.state = RelayState()
        self.surety = FlightSuretyService(ledger)
        self.registry = OracleRegistry(ledger, self.state)
        self.tracker = tracker or StatusTracker(persist=persist)
        self.subscriber = subscriber or EventSubscriber(ledger, self.state)
        self.coordinator = ResponseCoordinator(
            ledger,
            self.registry,
            self.state,
            generator=generator,
            tracker=self.tracker,
            persist=persist,
        )

    def setup(self, demo: bool = True) -> None:
        """
        Prepare the ledger and the oracle roster.

        Raises:
            RejectedByLedger / TransportError if the app contract cannot be
            authorized
        """
        self.surety.authorize_app_contract()

        accounts = self.ledger.accounts()
        if demo and len(accounts) > 1:
            airline = accounts[1]
            bootstrap.fund_demo_airline(self.surety, airline)
            bootstrap.register_demo_flights(self.surety, airline)

        self.registry.register_all(bootstrap.oracle_accounts(accounts))

    def start(self, background: bool = True) -> None:
        """
        Subscribe to every event kind and start processing.

        Raises:
            TransportError if the initial subscription cannot be established
        """
        self.subscriber.subscribe_all()
        self.subscriber.start()

        if background:
            self.subscriber.start_background()
            self.coordinator.start_background()

    def run(self, demo: bool = True) -> None:
        self.setup(demo=demo)
        self.start()

    def stop(self) -> None:
        """Stop polling and new submissions. In-flight submissions are not awaited."""
        self.subscriber.stop()
        self.coordinator.stop()
        logger.info('Relay stopped')

    @property
    def stats(self) -> dict:
        return {
            'coordinator': self.coordinator.stats,
            'subscriptions': self.subscriber.stats,
            'consensus': self.tracker.stats,
        }
