"""
FlightStatus model - finalized statuses observed on the ledger.

One row per flight key (airline, flight_id, timestamp), upserted whenever
the app contract emits FlightStatusInfo or the data contract emits
FlightStatusUpdated.
"""

from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from oracle_relay.models.base import Base
from oracle_relay.status_codes import describe


class FlightStatus(Base):
    """Latest finalized status of an insured flight."""

    __tablename__ = 'flight_statuses'

    airline: Mapped[str] = mapped_column(String(42), primary_key=True)
    flight_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    timestamp: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        comment='Flight departure (unix seconds)'
    )

    status_code: Mapped[int] = mapped_column(Integer)

    payable: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment='Status makes insurance payable'
    )

    source: Mapped[str] = mapped_column(
        String(32),
        comment='Event that finalized the status'
    )

    finalized_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    def __repr__(self) -> str:
        return f'<FlightStatus {self.flight_id}@{self.timestamp} {self.status_code}>'

    def to_dict(self) -> dict:
        return {
            'airline': self.airline,
            'flight_id': self.flight_id,
            'timestamp': self.timestamp,
            'status_code': self.status_code,
            'status': describe(self.status_code),
            'payable': self.payable,
            'source': self.source,
            'finalized_at': self.finalized_at.isoformat() if self.finalized_at else None,
        }
