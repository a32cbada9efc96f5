"""
Event subscription layer - long-lived event subscriptions over polled logs.

web3 event filters over HTTP are polled, not pushed, so each subscription
tracks the next block it has not yet seen and fetches logs for
[next_block, latest] on every cycle.

Delivery guarantees:
- Events of one kind are dispatched in ledger order (block, log index)
- No ordering across kinds
- A log already delivered by a subscription is not delivered again, even
  when a resubscription after a dropped connection replays it
- Handlers should still be idempotent by key tuple

Transport failures are never raised out of the polling loop. They are
recorded on the failing subscription's ``errors`` channel (and passed to
``on_error`` if given). Only the initial ``start()`` raises.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from oracle_relay.config import config
from oracle_relay.errors import TransportError
from oracle_relay.ledger.events import EVENT_KINDS, LedgerEvent, LogMeta, contract_for, decode_event
from oracle_relay.state import RelayState

logger = logging.getLogger(__name__)

Handler = Callable[[LedgerEvent], None]
ErrorCallback = Callable[[str, Exception], None]


@dataclass
class SubscriptionError:
    """One failure reported on a subscription's error channel."""
    kind: str
    message: str
    occurred_at: float = field(default_factory=time.time)


@dataclass
class Subscription:
    """
    A registered interest in one event kind.

    ``filter`` is matched against the raw event arguments (contract names,
    e.g. ``flightId``) and is also passed to the node as argument filters.
    """
    kind: str
    contract: str
    handler: Handler
    filter: Optional[Dict[str, Any]] = None
    next_block: Optional[int] = None
    # last block fetched successfully; replays rewind from here
    last_polled: Optional[int] = None
    delivered: int = 0
    malformed: int = 0
    errors: Deque[SubscriptionError] = field(default_factory=lambda: deque(maxlen=config.events.error_history))

    # log identity -> block number, pruned behind the replay window
    _seen: Dict[Tuple[str, int], int] = field(default_factory=dict, repr=False)

    def matches(self, args: Dict[str, Any]) -> bool:
        if not self.filter:
            return True
        for name, expected in self.filter.items():
            value = args.get(name)
            if isinstance(expected, (list, tuple, set)):
                if value not in expected:
                    return False
            elif value != expected:
                return False
        return True

    def already_seen(self, meta: LogMeta) -> bool:
        return meta.identity in self._seen

    def mark_seen(self, meta: LogMeta) -> None:
        self._seen[meta.identity] = meta.block_number

    def prune_seen(self, before_block: int) -> None:
        stale = [k for k, block in self._seen.items() if block < before_block]
        for k in stale:
            del self._seen[k]

    @property
    def stats(self) -> dict:
        return {
            'kind': self.kind,
            'contract': self.contract,
            'next_block': self.next_block,
            'last_polled': self.last_polled,
            'delivered': self.delivered,
            'malformed': self.malformed,
            'errors': len(self.errors),
            'last_error': self.errors[-1].message if self.errors else None,
        }


class EventSubscriber:
    """
    Polls the ledger for subscribed event kinds and dispatches typed events.

    The default handler pushes events onto the relay state's queue, where
    the response coordinator consumes them. Can run as a background thread
    for continuous polling.
    """

    def __init__(
        self,
        ledger,
        state: RelayState,
        poll_seconds: Optional[float] = None,
        start_block: Optional[int] = None,
        replay_blocks: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Args:
            ledger: LedgerClient (or anything with block_number/get_events)
            state: shared relay state; its queue receives events by default
            poll_seconds: interval between polls
            start_block: first block to scan (None = current block at start)
            replay_blocks: blocks to rewind after a dropped connection
            on_error: callback(kind, exc) for subscription failures
        """
        self.ledger = ledger
        self.state = state
        self.poll_seconds = poll_seconds or config.events.poll_seconds
        self.start_block = start_block if start_block is not None else config.events.start_block
        self.replay_blocks = replay_blocks if replay_blocks is not None else config.events.replay_blocks
        self.on_error = on_error

        self.subscriptions: List[Subscription] = []
        self._lock = threading.RLock()
        self._connected = False
        self._started = False
        self._initial_block: Optional[int] = None

        # State tracking
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._poll_count = 0
        self._error_count = 0
        self._reconnect_count = 0
        self._last_poll_time: float = 0

    def _enqueue(self, event: LedgerEvent) -> None:
        self.state.events.put(event)

    def subscribe(
        self,
        kind: str,
        filter: Optional[Dict[str, Any]] = None,
        handler: Optional[Handler] = None,
    ) -> Subscription:
        """
        Register a handler for every observed event of ``kind`` matching
        ``filter``. The handler defaults to the relay queue.
        """
        subscription = Subscription(
            kind=kind,
            contract=contract_for(kind),
            handler=handler or self._enqueue,
            filter=filter,
        )
        with self._lock:
            if self._started:
                subscription.next_block = self._initial_block
            self.subscriptions.append(subscription)

        logger.debug(f'Subscribed to {kind} on {subscription.contract} contract')
        return subscription

    def subscribe_all(self, kinds: Optional[Iterable[str]] = None) -> List[Subscription]:
        """Subscribe the relay queue to every known event kind."""
        return [self.subscribe(kind) for kind in (kinds or EVENT_KINDS)]

    def start(self) -> None:
        """
        Establish the initial subscription point.

        Raises:
            TransportError if the ledger cannot be reached. This is the one
            subscription failure that is fatal to the process.
        """
        current = self.ledger.block_number()
        with self._lock:
            self._initial_block = self.start_block if self.start_block is not None else current
            for sub in self.subscriptions:
                if sub.next_block is None:
                    sub.next_block = self._initial_block
            self._started = True
            self._connected = True

        logger.info(
            f'Event subscriptions established at block {self._initial_block} '
            f'({len(self.subscriptions)} kinds)'
        )

    def _report_error(self, subscription: Subscription, exc: Exception) -> None:
        subscription.errors.append(SubscriptionError(subscription.kind, str(exc)))
        self._error_count += 1
        if self.on_error:
            try:
                self.on_error(subscription.kind, exc)
            except Exception as e:
                logger.error(f'Subscription error callback failed: {e}')

    def _resubscribe(self) -> None:
        """Rewind every subscription after a dropped connection."""
        self._reconnect_count += 1
        for sub in self.subscriptions:
            if sub.last_polled is None:
                # Nothing fetched yet; next_block is still the start block
                continue
            sub.next_block = min(sub.next_block, max(0, sub.last_polled + 1 - self.replay_blocks))
        logger.info(f'Reconnected to ledger, replaying last {self.replay_blocks} blocks')

    def _dispatch(self, subscription: Subscription, logs: List[Any]) -> int:
        dispatched = 0
        ordered = sorted(logs, key=lambda log: (log.get('blockNumber') or 0, log.get('logIndex') or 0))

        for log in ordered:
            meta = LogMeta.from_log(log)
            if subscription.already_seen(meta):
                continue
            subscription.mark_seen(meta)

            args = log.get('args') or {}
            if not subscription.matches(dict(args)):
                continue

            event = decode_event(subscription.kind, log)
            if event is None:
                subscription.malformed += 1
                logger.warning(f'Malformed {subscription.kind} event in block {meta.block_number}: {dict(args)}')
                continue

            try:
                subscription.handler(event)
                subscription.delivered += 1
                dispatched += 1
            except Exception as e:
                logger.error(f'{subscription.kind} handler error: {e}')

        return dispatched

    def poll_once(self) -> int:
        """
        Execute one polling cycle over all subscriptions.

        Returns count of events dispatched.
        """
        if not self._started:
            raise RuntimeError('EventSubscriber.start() must be called before polling')

        try:
            latest = self.ledger.block_number()
        except TransportError as e:
            logger.warning(f'Ledger unreachable: {e}')
            with self._lock:
                self._connected = False
                for sub in self.subscriptions:
                    self._report_error(sub, e)
            return 0

        dispatched = 0
        with self._lock:
            if not self._connected:
                self._resubscribe()
                self._connected = True

            self._poll_count += 1
            self._last_poll_time = time.time()

            for sub in self.subscriptions:
                if sub.next_block > latest:
                    continue

                try:
                    logs = self.ledger.get_events(
                        sub.kind,
                        sub.next_block,
                        latest,
                        argument_filters=sub.filter,
                        contract=sub.contract,
                    )
                except TransportError as e:
                    # Leave next_block in place; the range is fetched again
                    logger.warning(f'{sub.kind} subscription failed: {e}')
                    self._connected = False
                    self._report_error(sub, e)
                    continue

                dispatched += self._dispatch(sub, logs)
                sub.last_polled = latest
                sub.next_block = latest + 1
                sub.prune_seen(sub.next_block - self.replay_blocks - 1)

        if dispatched:
            logger.debug(f'Dispatched {dispatched} events up to block {latest}')
        return dispatched

    def run_continuous(self, interval: Optional[float] = None) -> None:
        """
        Poll continuously.

        This method blocks - use start_background() for non-blocking.
        """
        interval = interval or self.poll_seconds
        self._running = True

        logger.info(f'Starting event polling (interval={interval}s)')

        while self._running:
            try:
                self.poll_once()
            except Exception as e:
                self._error_count += 1
                logger.error(f'Event polling error: {e}')
            time.sleep(interval)

        logger.info('Event polling stopped')

    def start_background(self, interval: Optional[float] = None) -> None:
        """Start polling in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Event polling already running')
            return

        self._thread = threading.Thread(
            target=self.run_continuous,
            args=(interval,),
            daemon=True,
            name='event-subscriber',
        )
        self._thread.start()
        logger.info('Background event polling started')

    def stop(self) -> None:
        """Stop background polling."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)

    @property
    def stats(self) -> dict:
        """Get subscription statistics."""
        with self._lock:
            return {
                'poll_count': self._poll_count,
                'error_count': self._error_count,
                'reconnect_count': self._reconnect_count,
                'last_poll_time': self._last_poll_time,
                'connected': self._connected,
                'running': self._running,
                'subscriptions': [sub.stats for sub in self.subscriptions],
            }
