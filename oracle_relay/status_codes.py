"""
Flight status codes and oracle vote synthesis.

Code 20 (airline-caused delay) is the only outcome that makes insurance
payable downstream.
"""

import random
from enum import IntEnum
from typing import Optional


class StatusCode(IntEnum):
    """Flight status outcomes understood by the FlightSurety contracts."""
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50

    @property
    def is_payable(self) -> bool:
        return self is StatusCode.LATE_AIRLINE

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @classmethod
    def parse(cls, value) -> 'StatusCode':
        """Accept an int code or a member name (case-insensitive)."""
        if isinstance(value, str) and not value.strip().lstrip('-').isdigit():
            return cls[value.strip().upper()]
        return cls(int(value))


STATUS_LABELS = {
    StatusCode.UNKNOWN: 'UNKNOWN',
    StatusCode.ON_TIME: 'ON TIME',
    StatusCode.LATE_AIRLINE: 'DELAYED, PAYABLE',
    StatusCode.LATE_WEATHER: 'WEATHER DELAY',
    StatusCode.LATE_TECHNICAL: 'TECHNICAL DELAY',
    StatusCode.LATE_OTHER: 'OTHER DELAY',
}

ALL_CODES = tuple(StatusCode)


def describe(code: int) -> str:
    """Display label for a raw code; unrecognized codes read as other delay."""
    try:
        return StatusCode(code).label
    except ValueError:
        return STATUS_LABELS[StatusCode.LATE_OTHER]


class StatusCodeGenerator:
    """
    Synthesizes oracle votes.

    With probability ``p_error`` a vote is drawn uniformly from all codes
    (which may coincide with the desired code); otherwise it is the
    desired code.
    """

    def __init__(
        self,
        desired_code: int = StatusCode.LATE_AIRLINE,
        p_error: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        if not 0.0 <= p_error <= 1.0:
            raise ValueError(f'p_error must be within [0, 1], got {p_error}')
        self.desired_code = StatusCode(desired_code)
        self.p_error = p_error
        self._rng = rng or random.Random()

    def next_code(self) -> StatusCode:
        if self._rng.random() < self.p_error:
            return self._rng.choice(ALL_CODES)
        return self.desired_code
