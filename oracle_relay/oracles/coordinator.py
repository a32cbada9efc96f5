"""
Oracle response coordinator - turns status requests into oracle votes.

Consumes typed events from the relay queue. For each OracleRequest:
1. Match: keep registered oracles whose index set holds the request index
2. Claim: skip (oracle, request) pairs already submitted this run
3. Vote: synthesize one status code per matched oracle
4. Submit: hand each vote to a worker thread, fire-and-forget

Submissions are independent. A rejection or failure of one is caught,
logged and recorded without affecting its siblings, and is never retried.
The ledger owns consensus; the relay just votes.

Report and finalized-status events are routed to the status tracker;
lifecycle events are logged.
"""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from oracle_relay.config import config
from oracle_relay.errors import RejectedByLedger, TransportError, UnknownOracle
from oracle_relay.ledger.client import SendContext
from oracle_relay.ledger.events import (
    FlightStatusInfo,
    FlightStatusUpdated,
    LedgerNotice,
    OracleReport,
    OracleRequest,
)
from oracle_relay.models import OracleSubmission, SubmissionOutcome
from oracle_relay.models.base import get_session
from oracle_relay.oracles.registry import OracleRegistry
from oracle_relay.state import RelayState
from oracle_relay.status_codes import StatusCode, StatusCodeGenerator
from oracle_relay.tracker import StatusTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OracleResponse:
    """One oracle's vote for one request."""
    index: int
    airline: str
    flight_id: str
    timestamp: int
    status_code: StatusCode
    oracle: str


@dataclass
class SubmissionResult:
    """What happened to a submitted response."""
    response: OracleResponse
    outcome: SubmissionOutcome
    error: Optional[str] = None
    tx_hash: Optional[str] = None


class ResponseCoordinator:
    """
    Matches requests to eligible oracles and submits their votes.

    Can run its consumer loop as a background thread.
    """

    def __init__(
        self,
        ledger,
        registry: OracleRegistry,
        state: RelayState,
        generator: Optional[StatusCodeGenerator] = None,
        tracker: Optional[StatusTracker] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        gas: Optional[int] = None,
        persist: bool = True,
    ):
        """
        Args:
            ledger: LedgerClient used for submissions
            registry: source of oracle index sets
            state: shared relay state (roster, submitted pairs, queue)
            generator: vote synthesizer (from config if None)
            tracker: receives report and finalized-status events
            executor: submission worker pool (created from config if None)
            gas: gas ceiling per submission
            persist: record each submission outcome in the database
        """
        self.ledger = ledger
        self.registry = registry
        self.state = state
        self.generator = generator or StatusCodeGenerator(
            desired_code=config.oracles.desired_status_code,
            p_error=config.oracles.prob_code_error,
        )
        self.tracker = tracker or StatusTracker()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.oracles.submission_workers,
            thread_name_prefix='oracle-submit',
        )
        self.gas = gas or config.ledger.oracle_gas_limit
        self.persist = persist

        self._accepting = True
        self._running = False
        self._thread: Optional[threading.Thread] = None

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------

    def eligible_oracles(self, index: int) -> List[str]:
        """Registered oracles whose index set holds ``index``."""
        matched = []
        for oracle in self.state.roster:
            try:
                indexes = self.registry.get_indexes(oracle.address)
            except UnknownOracle as e:
                logger.error(f'Registry out of sync with roster: {e}')
                continue
            except (RejectedByLedger, TransportError) as e:
                logger.warning(f'Could not fetch indexes for {oracle.address}, skipping: {e}')
                continue
            if index in indexes:
                matched.append(oracle.address)
        return matched

    def handle_request(self, request: OracleRequest) -> List[Future]:
        """
        Submit one vote per eligible oracle for ``request``.

        Returns the submission futures; they are not awaited here.
        """
        self.state.count('requests_seen')

        if not self._accepting:
            logger.info(f'Shutting down, ignoring request for {request.flight_id}@{request.timestamp}')
            return []

        matched = self.eligible_oracles(request.index)
        if not matched:
            logger.debug(f'No oracles hold index {request.index} for {request.flight_id}@{request.timestamp}')
            return []

        futures = []
        for oracle in matched:
            if not self.state.claim_submission(oracle, request.request_key):
                logger.debug(f'Oracle {oracle} already answered {request.request_key}, skipping')
                continue

            response = OracleResponse(
                index=request.index,
                airline=request.airline,
                flight_id=request.flight_id,
                timestamp=request.timestamp,
                status_code=self.generator.next_code(),
                oracle=oracle,
            )
            future = self.executor.submit(self._submit, response)
            future.add_done_callback(self._on_submission_done)
            futures.append(future)

        logger.info(
            f'Request {request.flight_id}@{request.timestamp} index {request.index}: '
            f'{len(matched)} eligible oracles, {len(futures)} submissions'
        )
        return futures

    def _submit(self, response: OracleResponse) -> SubmissionResult:
        """Send one response. Runs on a worker thread."""
        try:
            receipt = self.ledger.send(
                'submitOracleResponse',
                response.index,
                response.airline,
                response.flight_id,
                response.timestamp,
                int(response.status_code),
                context=SendContext(sender=response.oracle, gas=self.gas),
            )
        except RejectedByLedger as e:
            self.state.count('submissions_rejected')
            logger.warning(f'Oracle {response.oracle} response rejected: {e.reason or e}')
            result = SubmissionResult(response, SubmissionOutcome.REJECTED, error=str(e))
        except Exception as e:
            self.state.count('submissions_failed')
            logger.error(f'Oracle {response.oracle} submission failed: {e}')
            result = SubmissionResult(response, SubmissionOutcome.FAILED, error=str(e))
        else:
            self.state.count('submissions_accepted')
            tx = receipt.get('transactionHash') if receipt else None
            if isinstance(tx, (bytes, bytearray)):
                tx = tx.hex()
            logger.info(f'Oracle {response.oracle} gives statusCode: {int(response.status_code)}')
            result = SubmissionResult(response, SubmissionOutcome.ACCEPTED, tx_hash=tx)

        if self.persist:
            self._record(result)
        return result

    def _record(self, result: SubmissionResult) -> None:
        response = result.response
        try:
            with get_session() as session:
                session.add(OracleSubmission(
                    oracle=response.oracle,
                    request_index=response.index,
                    airline=response.airline,
                    flight_id=response.flight_id,
                    timestamp=response.timestamp,
                    status_code=int(response.status_code),
                    outcome=result.outcome.value,
                    error=(result.error or '')[:500] or None,
                    tx_hash=result.tx_hash,
                ))
        except Exception as e:
            logger.error(f'Failed to record submission from {response.oracle}: {e}')

    def _on_submission_done(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f'Submission task crashed: {exc}')

    # -------------------------------------------------------------------------
    # Event consumption
    # -------------------------------------------------------------------------

    def dispatch(self, event) -> List[Future]:
        """Route one event from the queue."""
        if isinstance(event, OracleRequest):
            return self.handle_request(event)
        if isinstance(event, OracleReport):
            self.tracker.record_report(event)
        elif isinstance(event, (FlightStatusInfo, FlightStatusUpdated)):
            self.tracker.record_final(event)
        elif isinstance(event, LedgerNotice):
            logger.info(f'Ledger event {event.name}: {event.args}')
        else:
            logger.warning(f'Ignoring unexpected event: {event!r}')
        return []

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """
        Take one event from the queue and dispatch it.

        Returns False if the queue stayed empty for ``timeout`` seconds.
        """
        try:
            event = self.state.events.get(timeout=timeout) if timeout else self.state.events.get_nowait()
        except queue.Empty:
            return False

        try:
            self.dispatch(event)
        except Exception as e:
            logger.error(f'Error handling {getattr(event, "kind", event)}: {e}')
        finally:
            self.state.events.task_done()
        return True

    def drain(self) -> int:
        """Dispatch everything currently queued. Returns count processed."""
        processed = 0
        while self.process_next():
            processed += 1
        return processed

    def run(self) -> None:
        """
        Consume the queue until stopped.

        This method blocks - use start_background() for non-blocking.
        """
        self._running = True
        logger.info('Response coordinator started')
        while self._running:
            self.process_next(timeout=0.5)
        logger.info('Response coordinator stopped')

    def start_background(self) -> None:
        """Start the consumer loop in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Response coordinator already running')
            return

        self._thread = threading.Thread(target=self.run, daemon=True, name='response-coordinator')
        self._thread.start()

    def stop(self) -> None:
        """
        Stop issuing new submissions. In-flight submissions are not awaited.
        """
        self._accepting = False
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
        self.executor.shutdown(wait=False)

    @property
    def stats(self) -> dict:
        return {
            'running': self._running,
            'accepting': self._accepting,
            'desired_code': int(self.generator.desired_code),
            'p_error': self.generator.p_error,
            **self.state.stats,
        }
