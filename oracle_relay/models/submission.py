"""
OracleSubmission model - append-only log of oracle votes sent by the relay.

One row per (oracle, request) submission attempt, with the outcome the
ledger returned. Rows are never updated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from oracle_relay.models.base import Base


class SubmissionOutcome(str, Enum):
    """How the ledger answered a submission."""
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    FAILED = 'failed'


class OracleSubmission(Base):
    """A single submitOracleResponse attempt."""

    __tablename__ = 'oracle_submissions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    oracle: Mapped[str] = mapped_column(
        String(42),
        index=True,
        comment='Submitting oracle account'
    )

    # Request key
    request_index: Mapped[int] = mapped_column(Integer, comment='Request index')
    airline: Mapped[str] = mapped_column(String(42))
    flight_id: Mapped[str] = mapped_column(String(32))
    timestamp: Mapped[int] = mapped_column(Integer, comment='Flight departure (unix seconds)')

    status_code: Mapped[int] = mapped_column(Integer, comment='Vote submitted')

    outcome: Mapped[str] = mapped_column(
        String(10),
        default=SubmissionOutcome.ACCEPTED.value,
    )

    error: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    __table_args__ = (
        Index('ix_oracle_submissions_flight', 'airline', 'flight_id', 'timestamp'),
    )

    def __repr__(self) -> str:
        return f'<OracleSubmission {self.oracle} {self.flight_id}@{self.timestamp} code={self.status_code} {self.outcome}>'

    def to_dict(self) -> dict:
        return {
            'oracle': self.oracle,
            'index': self.request_index,
            'airline': self.airline,
            'flight_id': self.flight_id,
            'timestamp': self.timestamp,
            'status_code': self.status_code,
            'outcome': self.outcome,
            'error': self.error,
            'tx_hash': self.tx_hash,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
