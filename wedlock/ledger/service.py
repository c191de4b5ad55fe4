"""
Event Journal Service — append-only, hash-chained record of transitions.

- Append the events of a committed transaction in one database transaction
- Verify the integrity of the full hash chain
- Query entries by Record, or the latest entries
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Iterable
from uuid import uuid4

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from wedlock.ledger.models import Base, JournalEntryDB
from wedlock.protocol.schema import JournalEvent, JournalEventType

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain


class JournalIntegrityError(Exception):
    """Raised when the journal cannot be appended to or its chain is broken."""
    pass


class EventJournal:
    """
    Append-only journal of protocol events.

    Usage:
        journal = EventJournal("sqlite:///wedlock_journal.db")
        journal.initialize()  # Create tables, seed genesis entry

        journal.append_many([
            JournalEvent(event_type=JournalEventType.ENGAGED, actor="bob",
                         record_key=key, content={"partner": "alice"}),
        ], recorded_at=clock.now())
    """

    def __init__(self, database_url: str) -> None:
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def initialize(self, recorded_at: int = 0) -> None:
        """Create the schema and seed the genesis entry if missing."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal() as session:
            existing = session.execute(
                select(JournalEntryDB).where(JournalEntryDB.sequence_number == 0)
            ).scalar_one_or_none()

            if existing is None:
                genesis = self._build_entry(
                    sequence_number=0,
                    previous_hash=GENESIS_HASH,
                    recorded_at=recorded_at,
                    event=JournalEvent(
                        event_type=JournalEventType.GENESIS,
                        actor="system",
                        content={"message": "Genesis of the wedlock event journal"},
                    ),
                )
                session.add(genesis)
                session.commit()
                logger.info("Journal genesis created: hash=%s", genesis.entry_hash[:16])

    def append_many(
        self,
        events: Iterable[JournalEvent],
        recorded_at: int,
    ) -> list[JournalEntryDB]:
        """
        Append the events of one transaction, all or none.

        Raises:
            JournalIntegrityError: No genesis entry; call initialize() first.
        """
        events = list(events)
        if not events:
            return []

        with self.SessionLocal() as session:
            last_entry = session.execute(
                select(JournalEntryDB)
                .order_by(JournalEntryDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            if last_entry is None:
                raise JournalIntegrityError(
                    "Cannot append: no genesis entry found. Call initialize() first."
                )

            sequence_number = last_entry.sequence_number
            previous_hash = last_entry.entry_hash
            entries = []
            for event in events:
                sequence_number += 1
                entry = self._build_entry(
                    sequence_number=sequence_number,
                    previous_hash=previous_hash,
                    recorded_at=recorded_at,
                    event=event,
                )
                previous_hash = entry.entry_hash
                entries.append(entry)

            session.add_all(entries)
            session.commit()
            for entry in entries:
                session.refresh(entry)

            logger.info(
                "Journal appended: seq=%d..%d types=%s",
                entries[0].sequence_number, entries[-1].sequence_number,
                ",".join(e.event_type for e in entries),
            )
            return entries

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Walk every entry from genesis forward and recompute its hash.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        with self.SessionLocal() as session:
            entries = session.execute(
                select(JournalEntryDB).order_by(JournalEntryDB.sequence_number.asc())
            ).scalars().all()

            if not entries:
                return False, 0, "No entries found in journal"

            first = entries[0]
            if first.sequence_number != 0:
                return False, 0, f"First entry has sequence {first.sequence_number}, expected 0"
            if first.previous_hash != GENESIS_HASH:
                return False, 0, "Genesis entry has incorrect previous_hash"

            for i, entry in enumerate(entries):
                expected_hash = self._compute_hash(
                    entry_id=entry.id,
                    sequence_number=entry.sequence_number,
                    previous_hash=entry.previous_hash,
                    recorded_at=entry.recorded_at,
                    event_type=entry.event_type,
                    actor=entry.actor,
                    record_key=entry.record_key,
                    content=entry.content,
                )
                if entry.entry_hash != expected_hash:
                    return (
                        False, i,
                        f"Hash mismatch at sequence {entry.sequence_number}: "
                        f"stored={entry.entry_hash[:16]}... "
                        f"computed={expected_hash[:16]}..."
                    )
                if i > 0 and entry.previous_hash != entries[i - 1].entry_hash:
                    return (
                        False, i,
                        f"Chain break at sequence {entry.sequence_number}: "
                        f"previous_hash does not match prior entry's hash"
                    )

            return (
                True, len(entries),
                f"Chain verified: {len(entries)} entries, integrity intact"
            )

    def get_entries_for_record(self, record_key: str) -> list[JournalEntryDB]:
        """All entries of one Record, oldest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .where(JournalEntryDB.record_key == record_key)
                    .order_by(JournalEntryDB.sequence_number.asc())
                ).scalars().all()
            )

    def get_latest_entries(self, limit: int = 50) -> list[JournalEntryDB]:
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .order_by(JournalEntryDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_entry_count(self) -> int:
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(JournalEntryDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    def _build_entry(
        self,
        sequence_number: int,
        previous_hash: str,
        recorded_at: int,
        event: JournalEvent,
    ) -> JournalEntryDB:
        entry_id = str(uuid4())
        entry_hash = self._compute_hash(
            entry_id=entry_id,
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            recorded_at=recorded_at,
            event_type=event.event_type.value,
            actor=event.actor,
            record_key=event.record_key,
            content=event.content,
        )
        return JournalEntryDB(
            id=entry_id,
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            entry_hash=entry_hash,
            recorded_at=recorded_at,
            event_type=event.event_type.value,
            actor=event.actor,
            record_key=event.record_key,
            content=event.content,
        )

    @staticmethod
    def _compute_hash(
        entry_id: str,
        sequence_number: int,
        previous_hash: str,
        recorded_at: int,
        event_type: str,
        actor: str,
        record_key: str | None,
        content: dict[str, Any],
    ) -> str:
        """Hash = SHA-256(previous_hash || canonical_json(entry_fields))"""
        hashable = {
            "id": entry_id,
            "sequence_number": sequence_number,
            "previous_hash": previous_hash,
            "recorded_at": recorded_at,
            "event_type": event_type,
            "actor": actor,
            "record_key": record_key,
            "content": content,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (previous_hash + canonical).encode("utf-8")
        ).hexdigest()
