"""
Event Journal — SQLAlchemy models for the append-only protocol record.

Every committed protocol transaction appends its events here. The table is
append-only and hash-chained: each entry stores SHA-256(previous_hash ||
canonical_json(entry)), so any retroactive edit is detectable by
recomputing the chain.
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all journal models."""
    pass


class JournalEntryDB(Base):
    """
    A single journal entry.

    This table is APPEND-ONLY. No rows may be updated or deleted.
    """

    __tablename__ = "journal_entries"

    id = Column(String(36), primary_key=True)

    # Chain ordering
    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )

    # Hash chain
    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    # Clock seconds at which the transaction committed
    recorded_at = Column(Integer, nullable=False)

    event_type = Column(String(50), nullable=False, index=True)
    actor = Column(String(200), nullable=False, comment="Principal that made the call")
    record_key = Column(
        String(64), nullable=True,
        comment="Key of the Record the event belongs to",
    )

    content = Column(
        JSON, nullable=False,
        comment="Event payload — structure varies by event_type",
    )

    __table_args__ = (
        Index("ix_journal_record_key", "record_key"),
        Index("ix_journal_actor", "actor"),
    )

    def __repr__(self) -> str:
        return (
            f"<JournalEntry seq={self.sequence_number} "
            f"type={self.event_type} hash={self.entry_hash[:12]}...>"
        )
