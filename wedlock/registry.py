"""
Wedding Registry — the public operation surface of the protocol.

Every public operation runs as one atomic transaction:

1. take the registry lock (operations are strictly serialized)
2. snapshot the part of the record store the named principals can touch
3. run the operation (all preconditions are checked before mutation)
4. append the resulting events to the event journal
5. on any exception, restore the snapshot and re-raise

Callers are already-authenticated principal IDs; establishing identity is
the job of the transport in front of the registry.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from wedlock.governance.arbiters import ArbiterRoster
from wedlock.governance.divorce import QuorumVoter
from wedlock.governance.guest_list import GuestListManager
from wedlock.integrations.certificates import CertificateRegistry
from wedlock.integrations.clock import Clock
from wedlock.ledger.service import EventJournal
from wedlock.protocol.errors import ProtocolViolation
from wedlock.protocol.keys import derive_record_key
from wedlock.protocol.schema import (
    GuestList,
    JournalEvent,
    JournalEventType,
    LifecycleStatus,
    Principal,
    QuorumResult,
    Record,
)
from wedlock.protocol.store import RecordStore

logger = logging.getLogger(__name__)


class WeddingRegistry:
    """
    Serialized, journaled front for the RecordStore and its procedures.

    Usage:
        registry = WeddingRegistry(
            clock=SystemClock(),
            certificates=InMemoryCertificateRegistry(),
            arbiters=["registrar-1"],
        )
        registry.engage("alice", "bob", wedding_date)
        record = registry.engage("bob", "alice", wedding_date)
    """

    def __init__(
        self,
        clock: Clock,
        certificates: CertificateRegistry,
        arbiters: ArbiterRoster | Iterable[Principal] = (),
        journal: EventJournal | None = None,
        strict_date_changes: bool = False,
    ) -> None:
        """
        Args:
            clock: Time source for every temporal gate.
            certificates: Registry minting and burning marriage certificates.
            arbiters: Authorized divorce arbiters.
            journal: Event journal; committed events are dropped when None.
            strict_date_changes: Require future dates on wedding date changes.
        """
        self.clock = clock
        self.roster = arbiters if isinstance(arbiters, ArbiterRoster) else ArbiterRoster(arbiters)
        self.journal = journal
        self.store = RecordStore(clock, certificates, strict_date_changes=strict_date_changes)
        self.guest_lists = GuestListManager(self.store)
        self.divorces = QuorumVoter(self.store, self.roster)
        self._lock = threading.RLock()

    def close(self) -> None:
        """Release the certificate registry client and the journal engine."""
        with self._lock:
            self.store.certificates.close()
            if self.journal is not None:
                self.journal.close()

    @contextmanager
    def _transaction(
        self, operation: str, caller: Principal, *involved: Principal
    ) -> Iterator[list[JournalEvent]]:
        with self._lock:
            snapshot = self.store.snapshot(caller, *involved)
            events: list[JournalEvent] = []
            try:
                yield events
                if self.journal is not None and events:
                    self.journal.append_many(events, recorded_at=self.clock.now())
            except ProtocolViolation as exc:
                self.store.restore(snapshot)
                logger.warning("Rejected %s by %s: %s", operation, caller, exc.reason)
                raise
            except Exception:
                self.store.restore(snapshot)
                logger.exception("Failed %s by %s, state rolled back", operation, caller)
                raise

    # ── Engagement ──────────────────────────────────────────────

    def engage(self, caller: Principal, partner: Principal, wedding_date: int) -> Record | None:
        """
        Propose to, or accept the proposal of, `partner`.

        Returns:
            The shared Record once both sides have proposed, else None.
        """
        with self._transaction("engage", caller, partner) as events:
            record = self.store.engage(caller, partner, wedding_date)
            if record is None:
                events.append(JournalEvent(
                    event_type=JournalEventType.ENGAGEMENT_PROPOSED,
                    actor=caller,
                    record_key=derive_record_key(caller, partner),
                    content={"partner": partner, "wedding_date": wedding_date},
                ))
                return None
            events.append(JournalEvent(
                event_type=JournalEventType.ENGAGED,
                actor=caller,
                record_key=record.key,
                content={
                    "partner1": record.partner1,
                    "partner2": record.partner2,
                    "wedding_date": record.wedding_date,
                },
            ))
            return record.model_copy(deep=True)

    def change_wedding_date(self, caller: Principal, wedding_date: int) -> Record:
        with self._transaction("change_wedding_date", caller) as events:
            record = self.store.change_wedding_date(caller, wedding_date)
            events.append(JournalEvent(
                event_type=JournalEventType.WEDDING_DATE_CHANGED,
                actor=caller,
                record_key=record.key,
                content={"wedding_date": wedding_date},
            ))
            return record.model_copy(deep=True)

    def get_engagement_details(self, user: Principal) -> Record | None:
        with self._lock:
            record = self.store.record_of(user)
            return record.model_copy(deep=True) if record else None

    def lifecycle_of(self, user: Principal) -> LifecycleStatus | None:
        with self._lock:
            return self.store.lifecycle_of(user)

    def revoke_engagement(self, caller: Principal) -> Record:
        """
        Call off the caller's engagement.

        Returns:
            The removed Record, marked DISSOLVED.
        """
        with self._transaction("revoke_engagement", caller) as events:
            dissolved = self.store.revoke(caller)
            events.append(JournalEvent(
                event_type=JournalEventType.ENGAGEMENT_REVOKED,
                actor=caller,
                record_key=dissolved.key,
                content={"partner1": dissolved.partner1, "partner2": dissolved.partner2},
            ))
            return dissolved

    # ── Guest List ──────────────────────────────────────────────

    def propose_guest_list(self, caller: Principal, guests: list[Principal]) -> GuestList:
        with self._transaction("propose_guest_list", caller) as events:
            guest_list = self.guest_lists.propose_guest_list(caller, guests)
            events.append(JournalEvent(
                event_type=JournalEventType.GUEST_LIST_PROPOSED,
                actor=caller,
                record_key=self.store.index[caller],
                content={"guests": list(guests)},
            ))
            return guest_list.model_copy(deep=True)

    def confirm_guest_list(self, caller: Principal) -> GuestList:
        with self._transaction("confirm_guest_list", caller) as events:
            if self.guest_lists.confirm_guest_list(caller):
                events.append(JournalEvent(
                    event_type=JournalEventType.GUEST_LIST_CONFIRMED,
                    actor=caller,
                    record_key=self.store.index[caller],
                ))
            return self.store.require_record(caller).guest_list.model_copy(deep=True)

    def get_confirmed_guest_list(self, user: Principal) -> list[Principal]:
        with self._lock:
            return self.guest_lists.get_confirmed_guest_list(user)

    def vote_against_wedding(self, caller: Principal, partner: Principal) -> QuorumResult:
        """Cast a guest veto vote against the wedding of `partner`."""
        with self._transaction("vote_against_wedding", caller, partner) as events:
            result = self.guest_lists.vote_against_wedding(partner, caller)
            if result.vote_recorded:
                events.append(JournalEvent(
                    event_type=JournalEventType.VETO_VOTE_CAST,
                    actor=caller,
                    record_key=result.record_key,
                    content={"votes_cast": result.votes_cast},
                ))
            if result.dissolved:
                events.append(JournalEvent(
                    event_type=JournalEventType.WEDDING_VETOED,
                    actor=caller,
                    record_key=result.record_key,
                    content={
                        "votes_cast": result.votes_cast,
                        "votes_required": result.votes_required,
                    },
                ))
            return result

    # ── Marriage ────────────────────────────────────────────────

    def marry(self, caller: Principal) -> Record | None:
        """
        Give marriage consent on the wedding day.

        Returns:
            The married Record once both partners consented, else None.
        """
        with self._transaction("marry", caller) as events:
            key = self.store.index.get(caller)
            record = self.store.marry(caller)
            if record is None:
                events.append(JournalEvent(
                    event_type=JournalEventType.MARRIAGE_PROPOSED,
                    actor=caller,
                    record_key=key,
                ))
                return None
            events.append(JournalEvent(
                event_type=JournalEventType.MARRIED,
                actor=caller,
                record_key=record.key,
                content={
                    "certificate_id_p1": record.certificate_id_p1,
                    "certificate_id_p2": record.certificate_id_p2,
                    "guests": list(record.guest_list.guests),
                },
            ))
            return record.model_copy(deep=True)

    def divorce(self, caller: Principal, partner: Principal) -> QuorumResult:
        """Cast a divorce vote on the marriage of `partner`."""
        with self._transaction("divorce", caller, partner) as events:
            result = self.divorces.divorce(caller, partner)
            if result.vote_recorded:
                events.append(JournalEvent(
                    event_type=JournalEventType.DIVORCE_VOTE_CAST,
                    actor=caller,
                    record_key=result.record_key,
                    content={"votes_cast": result.votes_cast},
                ))
            if result.dissolved:
                events.append(JournalEvent(
                    event_type=JournalEventType.DIVORCED,
                    actor=caller,
                    record_key=result.record_key,
                    content={"votes_cast": result.votes_cast},
                ))
            return result
