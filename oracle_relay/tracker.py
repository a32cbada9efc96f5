"""
Client-side view of the ledger's consensus on flight statuses.

The app contract owns consensus: it counts matching oracle reports per
request and emits FlightStatusInfo once a code reaches MIN_RESPONSES.
The relay only observes. This tracker mirrors what is observable:
- OracleReport events are tallied per flight key
- FlightStatusInfo / FlightStatusUpdated events mark the flight finalized
  and are persisted
- Flights whose votes never reach quorum stay pending indefinitely

Tallies are small fixed-width count vectors (one slot per status code)
kept in NumPy arrays.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from oracle_relay.config import config
from oracle_relay.models import FlightStatus
from oracle_relay.models.base import get_session
from oracle_relay.status_codes import ALL_CODES, StatusCode, describe

logger = logging.getLogger(__name__)

FlightKey = Tuple[str, str, int]

# code value -> slot in the tally vector; anything unrecognized counts as other
_SLOTS = {int(code): slot for slot, code in enumerate(ALL_CODES)}
_OTHER_SLOT = _SLOTS[int(StatusCode.LATE_OTHER)]


def _slot(code: int) -> int:
    return _SLOTS.get(int(code), _OTHER_SLOT)


@dataclass
class VoteTally:
    """Reports observed for one flight key."""
    counts: np.ndarray = field(default_factory=lambda: np.zeros(len(ALL_CODES), dtype=np.int64))
    first_seen: float = field(default_factory=time.time)
    final_code: Optional[int] = None
    finalized_at: Optional[float] = None
    # log identities already counted; redelivered reports are ignored
    seen: Set[Tuple[str, int]] = field(default_factory=set, repr=False)

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    @property
    def leading_code(self) -> Optional[StatusCode]:
        if self.total == 0:
            return None
        # argmax returns the lowest slot on ties
        return ALL_CODES[int(np.argmax(self.counts))]

    @property
    def agreement(self) -> float:
        """Share of reports that match the leading code."""
        if self.total == 0:
            return 0.0
        return float(self.counts.max() / self.total)

    def to_dict(self, min_responses: int) -> dict:
        leading = self.leading_code
        return {
            'votes': {str(int(code)): int(n) for code, n in zip(ALL_CODES, self.counts)},
            'total': self.total,
            'leading_code': int(leading) if leading is not None else None,
            'agreement': round(self.agreement, 3),
            'quorum_reached': bool(self.counts.max() >= min_responses) if self.total else False,
            'final_code': self.final_code,
            'final_status': describe(self.final_code) if self.final_code is not None else None,
        }


class StatusTracker:
    """
    Thread-safe tally of observed oracle reports and finalized statuses.
    """

    def __init__(self, min_responses: Optional[int] = None, persist: bool = True):
        self.min_responses = min_responses or config.consensus.min_responses
        self.persist = persist

        self._tallies: Dict[FlightKey, VoteTally] = {}
        self._lock = threading.RLock()

        # Statistics
        self._reports = 0
        self._finalized = 0

    def _tally(self, key: FlightKey) -> VoteTally:
        tally = self._tallies.get(key)
        if tally is None:
            tally = self._tallies[key] = VoteTally()
        return tally

    def record_report(self, report) -> None:
        """Count one OracleReport vote. A report already counted is ignored."""
        meta = getattr(report, 'meta', None)
        with self._lock:
            tally = self._tally(report.flight_key)
            if meta is not None:
                if meta.identity in tally.seen:
                    logger.debug(f'Report {meta.identity} for {report.flight_id} already counted')
                    return
                tally.seen.add(meta.identity)
            tally.counts += np.bincount([_slot(report.status_code)], minlength=len(ALL_CODES))
            self._reports += 1
            leading = tally.leading_code

        logger.debug(
            f'Report for {report.flight_id}@{report.timestamp}: code {report.status_code} '
            f'(leading {int(leading)}, {tally.total} votes)'
        )

    def record_final(self, status) -> None:
        """Record a finalized status (FlightStatusInfo or FlightStatusUpdated)."""
        with self._lock:
            tally = self._tally(status.flight_key)
            first = tally.final_code is None
            tally.final_code = int(status.status_code)
            tally.finalized_at = time.time()
            if first:
                self._finalized += 1

        logger.info(
            f'Flight {status.flight_id}@{status.timestamp} finalized: '
            f'{status.status_code} ({describe(status.status_code)}) via {status.kind}'
        )

        if self.persist:
            self._upsert(status)

    def _upsert(self, status) -> None:
        code = int(status.status_code)
        stmt = sqlite_insert(FlightStatus).values(
            airline=status.airline,
            flight_id=status.flight_id,
            timestamp=status.timestamp,
            status_code=code,
            payable=code == StatusCode.LATE_AIRLINE,
            source=status.kind,
            finalized_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['airline', 'flight_id', 'timestamp'],
            set_={
                'status_code': stmt.excluded.status_code,
                'payable': stmt.excluded.payable,
                'source': stmt.excluded.source,
                'finalized_at': stmt.excluded.finalized_at,
            },
        )
        try:
            with get_session() as session:
                session.execute(stmt)
        except Exception as e:
            logger.error(f'Failed to persist status for {status.flight_id}: {e}')

    def tally(self, key: FlightKey) -> Optional[dict]:
        """Tally for one flight key, or None if nothing was observed."""
        with self._lock:
            tally = self._tallies.get(key)
            if tally is None:
                return None
            return tally.to_dict(self.min_responses)

    def pending(self) -> List[FlightKey]:
        """Flight keys with reports but no finalized status, oldest first."""
        with self._lock:
            items = [(k, t) for k, t in self._tallies.items() if t.final_code is None]
        items.sort(key=lambda kt: kt[1].first_seen)
        return [k for k, _ in items]

    def clear(self) -> None:
        with self._lock:
            self._tallies.clear()

    @property
    def stats(self) -> dict:
        """Get tracker statistics."""
        with self._lock:
            return {
                'flights': len(self._tallies),
                'reports': self._reports,
                'finalized': self._finalized,
                'pending': sum(1 for t in self._tallies.values() if t.final_code is None),
                'min_responses': self.min_responses,
            }
