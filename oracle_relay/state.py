"""
Relay state shared by the registry, subscription layer and coordinator.

Everything the relay mutates during a run lives here instead of in module
globals: the oracle roster, the set of (oracle, request) pairs already
submitted, the event queue between subscriber and coordinator, and
counters. The relay runs on OS threads, so mutation goes through the lock.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

RequestKey = Tuple[int, str, str, int]


@dataclass
class Oracle:
    """
    A locally-known oracle identity.

    ``indexes`` is assigned by the ledger at registration and never changes
    afterwards; only ``registered`` may flip.
    """
    address: str
    indexes: Tuple[int, ...] = ()
    registered: bool = False


@dataclass
class RelayState:
    """Process-lifetime state of one relay run."""
    oracles: Dict[str, Oracle] = field(default_factory=dict)
    submitted: Set[Tuple[str, RequestKey]] = field(default_factory=set)
    events: 'queue.Queue' = field(default_factory=queue.Queue)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    requests_seen: int = 0
    duplicates_skipped: int = 0
    submissions_accepted: int = 0
    submissions_rejected: int = 0
    submissions_failed: int = 0

    def add_oracle(self, oracle: Oracle) -> None:
        with self.lock:
            self.oracles[oracle.address] = oracle

    def get_oracle(self, address: str):
        with self.lock:
            return self.oracles.get(address)

    @property
    def roster(self) -> List[Oracle]:
        """Registered oracles in registration order."""
        with self.lock:
            return [o for o in self.oracles.values() if o.registered]

    def claim_submission(self, oracle: str, key: RequestKey) -> bool:
        """
        Atomically mark (oracle, key) as submitted.

        Returns False if the pair was already claimed during this run.
        """
        with self.lock:
            pair = (oracle, key)
            if pair in self.submitted:
                self.duplicates_skipped += 1
                return False
            self.submitted.add(pair)
            return True

    def count(self, counter: str) -> None:
        with self.lock:
            setattr(self, counter, getattr(self, counter) + 1)

    @property
    def stats(self) -> dict:
        with self.lock:
            return {
                'oracles_known': len(self.oracles),
                'oracles_registered': sum(1 for o in self.oracles.values() if o.registered),
                'requests_seen': self.requests_seen,
                'submissions_claimed': len(self.submitted),
                'duplicates_skipped': self.duplicates_skipped,
                'submissions_accepted': self.submissions_accepted,
                'submissions_rejected': self.submissions_rejected,
                'submissions_failed': self.submissions_failed,
                'queued_events': self.events.qsize(),
            }
