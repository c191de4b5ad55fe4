"""
Record Store — the arena of shared Records and the principal index.

Records live in an arena keyed by the pair's derived RecordKey; each
principal with an active Record has exactly one entry in the secondary
principal → key index. A Record is materialized only when both engagement
proposals point at each other, is reused in place for the marriage phase,
and is removed (with both index entries) on dissolution.

The store does not lock. WeddingRegistry serializes calls and rolls back
through snapshot()/restore() when an operation fails part-way. A snapshot
covers only the Records, index entries and preferences of the principals
an operation names.

Certificates live outside the store, so they are not rolled back: the
certificate counter only moves forward, and the set of live certificates
always mirrors what the registry holds. restore() burns certificates minted
by the rolled-back operation, and burning a certificate that is no longer
live is a no-op, so an interrupted divorce can simply be voted again.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from wedlock.integrations.certificates import CertificateRegistry
from wedlock.integrations.clock import Clock
from wedlock.protocol.consent import ConsentMatcher
from wedlock.protocol.errors import (
    InvariantViolation,
    PreconditionViolation,
    TemporalViolation,
)
from wedlock.protocol.keys import derive_record_key
from wedlock.protocol.schema import (
    ConsentPhase,
    GuestList,
    LifecycleStatus,
    Principal,
    Record,
    RecordKey,
)

logger = logging.getLogger(__name__)


def require_principal(principal: Principal) -> None:
    if not isinstance(principal, str) or not principal:
        raise InvariantViolation(f"Invalid principal identity: {principal!r}")


class RecordStore:
    """
    Owns the Record arena, the principal index and the consent matcher.

    Usage:
        store = RecordStore(clock, certificates)
        store.engage("alice", "bob", wedding_date)   # -> None, pending
        store.engage("bob", "alice", wedding_date)   # -> Record
    """

    def __init__(
        self,
        clock: Clock,
        certificates: CertificateRegistry,
        matcher: ConsentMatcher | None = None,
        strict_date_changes: bool = False,
    ) -> None:
        """
        Args:
            clock: Time source for future-date and wedding-day checks.
            certificates: Registry minting certificates at marriage.
            matcher: Consent matcher; a fresh one by default.
            strict_date_changes: Also require a future date when the
                wedding date is changed.
        """
        self.clock = clock
        self.certificates = certificates
        self.matcher = matcher or ConsentMatcher()
        self.strict_date_changes = strict_date_changes
        self.records: dict[RecordKey, Record] = {}
        self.index: dict[Principal, RecordKey] = {}
        self.next_certificate_id = 1
        self.live_certificates: set[int] = set()

    # ── Lookups ─────────────────────────────────────────────────

    def record_of(self, principal: Principal) -> Record | None:
        """The active Record of a principal, if any."""
        key = self.index.get(principal)
        if key is None:
            return None
        return self.records.get(key)

    def require_record(self, principal: Principal) -> Record:
        record = self.record_of(principal)
        if record is None or not record.is_engaged:
            raise PreconditionViolation(f"{principal} is not engaged")
        return record

    def is_engaged(self, principal: Principal) -> bool:
        record = self.record_of(principal)
        return record is not None and record.is_engaged

    def is_married(self, principal: Principal) -> bool:
        record = self.record_of(principal)
        return record is not None and record.is_married

    def lifecycle_of(self, principal: Principal) -> LifecycleStatus | None:
        """
        Lifecycle of a principal.

        PROPOSED means the principal has a one-sided engagement proposal
        outstanding and no Record.
        """
        record = self.record_of(principal)
        if record is not None:
            return record.status
        if self.matcher.preference_of(ConsentPhase.ENGAGEMENT, principal) is not None:
            return LifecycleStatus.PROPOSED
        return None

    def wedding_day(self, record: Record) -> tuple[int, int]:
        """The [start, end) window of the Record's wedding day."""
        return (
            self.clock.day_start(record.wedding_date),
            self.clock.day_end(record.wedding_date),
        )

    def require_wedding_day(self, record: Record) -> None:
        start, end = self.wedding_day(record)
        now = self.clock.now()
        if not start <= now < end:
            raise TemporalViolation(
                f"Only allowed on the wedding day [{start}, {end}); now={now}"
            )

    # ── Engagement ──────────────────────────────────────────────

    def engage(
        self,
        caller: Principal,
        partner: Principal,
        wedding_date: int,
    ) -> Record | None:
        """
        Propose (or accept) an engagement.

        The first side's call only records its preference and returns None
        without error. The reciprocal call materializes the shared Record,
        using the wedding date given in that completing call.

        Raises:
            InvariantViolation: Self-engagement or invalid principals.
            PreconditionViolation: Either side is already engaged or married.
            TemporalViolation: The wedding date is not in the future.
        """
        require_principal(caller)
        require_principal(partner)
        if caller == partner:
            raise InvariantViolation("Cannot get engaged to yourself")

        for principal in (caller, partner):
            if self.is_married(principal):
                raise PreconditionViolation(f"{principal} is already married")
            if self.is_engaged(principal):
                raise PreconditionViolation(f"{principal} is already engaged")

        now = self.clock.now()
        if wedding_date <= now:
            raise TemporalViolation(
                f"Wedding date {wedding_date} must be in the future (now={now})"
            )

        if not self.matcher.propose(ConsentPhase.ENGAGEMENT, caller, partner):
            logger.info("Engagement proposed: %s -> %s", caller, partner)
            return None

        key = derive_record_key(caller, partner)
        record = Record(
            key=key,
            partner1=partner,
            partner2=caller,
            wedding_date=wedding_date,
            status=LifecycleStatus.ENGAGED,
            is_engaged=True,
        )
        self.records[key] = record
        self.index[caller] = key
        self.index[partner] = key

        logger.info(
            "Engaged: %s & %s key=%s date=%d", partner, caller, key[:12], wedding_date
        )
        return record

    def change_wedding_date(self, caller: Principal, new_date: int) -> Record:
        """
        Move the shared wedding date. Applies to both partners.

        The new date is not required to be in the future unless the store
        was built with strict_date_changes. Marriage consent already given
        for the old date is withdrawn.
        """
        record = self.require_record(caller)
        if record.is_married:
            raise PreconditionViolation(f"{caller} is already married")

        if self.strict_date_changes:
            now = self.clock.now()
            if new_date <= now:
                raise TemporalViolation(
                    f"Wedding date {new_date} must be in the future (now={now})"
                )

        record.wedding_date = new_date
        self.matcher.clear(ConsentPhase.MARRIAGE, record.partner1, record.partner2)
        logger.info("Wedding date changed: key=%s date=%d", record.key[:12], new_date)
        return record

    def revoke(self, caller: Principal) -> Record:
        """
        Call off an engagement before the wedding day starts.

        Returns:
            The removed Record, marked DISSOLVED.
        """
        record = self.require_record(caller)
        if record.is_married:
            raise PreconditionViolation(f"{caller} is already married")

        start, _ = self.wedding_day(record)
        now = self.clock.now()
        if now > start:
            raise TemporalViolation(
                f"Engagement can no longer be revoked: wedding day started at {start}"
            )

        logger.info("Engagement revoked by %s: key=%s", caller, record.key[:12])
        return self.destroy(record.key)

    # ── Marriage ────────────────────────────────────────────────

    def marry(self, caller: Principal) -> Record | None:
        """
        Consent to the marriage on the wedding day.

        Returns None while only one partner has consented. On the second
        consent the Record becomes married, an unconfirmed guest list is
        discarded, and one certificate per partner is minted.
        """
        record = self.require_record(caller)
        if record.is_married:
            raise PreconditionViolation(f"{caller} is already married")
        self.require_wedding_day(record)

        partner = record.partner_of(caller)
        if not self.matcher.propose(ConsentPhase.MARRIAGE, caller, partner):
            logger.info("Marriage consent given by %s: key=%s", caller, record.key[:12])
            return None

        certificate_id_p1 = self.next_certificate_id
        certificate_id_p2 = self.next_certificate_id + 1
        self.next_certificate_id += 2
        self._mint_pair(record, certificate_id_p1, certificate_id_p2)

        if not record.guest_list.is_confirmed:
            record.guest_list = GuestList()
        record.is_married = True
        record.status = LifecycleStatus.MARRIED
        record.certificate_id_p1 = certificate_id_p1
        record.certificate_id_p2 = certificate_id_p2

        logger.info(
            "Married: %s & %s key=%s certificates=(%d, %d)",
            record.partner1, record.partner2, record.key[:12],
            certificate_id_p1, certificate_id_p2,
        )
        return record

    def _mint_pair(self, record: Record, id_p1: int, id_p2: int) -> None:
        self.mint_certificate(record, record.partner1, id_p1)
        try:
            self.mint_certificate(record, record.partner2, id_p2)
        except Exception:
            logger.warning("Second certificate mint failed, burning %d", id_p1)
            self.burn_certificate(id_p1)
            raise

    # ── Certificates ────────────────────────────────────────────

    def mint_certificate(self, record: Record, owner: Principal, certificate_id: int) -> None:
        self.certificates.mint(
            owner, certificate_id, record.partner1, record.partner2, record.wedding_date
        )
        self.live_certificates.add(certificate_id)

    def burn_certificate(self, certificate_id: int) -> None:
        """Burn a live certificate. Already burned IDs are skipped."""
        if certificate_id not in self.live_certificates:
            logger.info("Certificate %d is not live, nothing to burn", certificate_id)
            return
        self.certificates.burn(certificate_id)
        self.live_certificates.discard(certificate_id)

    # ── Dissolution ─────────────────────────────────────────────

    def destroy(self, key: RecordKey) -> Record:
        """
        Remove a Record and drop both index entries.

        Both partners' marriage-phase preferences are cleared with it, so a
        stale one-sided marriage consent cannot outlive the Record. The key
        is free for the same pair to engage again.

        Returns:
            The removed Record, marked DISSOLVED.
        """
        record = self.records.pop(key)
        for principal in (record.partner1, record.partner2):
            if self.index.get(principal) == key:
                del self.index[principal]
        self.matcher.clear(ConsentPhase.MARRIAGE, record.partner1, record.partner2)
        record.status = LifecycleStatus.DISSOLVED

        logger.info("Record dissolved: key=%s", key[:12])
        return record

    # ── Transactions ────────────────────────────────────────────

    def snapshot(self, *principals: Principal) -> dict[str, Any]:
        """
        Capture the state an operation on `principals` can touch.

        That is the Records they belong to (and the pair's key when two are
        named), the index entries and preferences of everyone on those
        Records, and the certificate counter as a watermark.
        """
        involved = {p for p in principals if isinstance(p, str) and p}
        keys = {self.index[p] for p in involved if p in self.index}
        if len(involved) == 2:
            keys.add(derive_record_key(*involved))
        for key in keys:
            record = self.records.get(key)
            if record is not None:
                involved.update(p for p in (record.partner1, record.partner2) if p)

        return {
            "records": {key: copy.deepcopy(self.records.get(key)) for key in keys},
            "index": {p: self.index.get(p) for p in involved},
            "preferences": {
                phase: {p: self.matcher.preference_of(phase, p) for p in involved}
                for phase in ConsentPhase
            },
            "next_certificate_id": self.next_certificate_id,
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        """
        Put back what snapshot() captured.

        Certificates minted since the snapshot are burned afterwards; a
        registry failure while burning propagates.
        """
        for key, record in snapshot["records"].items():
            _put(self.records, key, record)
        for principal, key in snapshot["index"].items():
            _put(self.index, principal, key)
        for phase, saved in snapshot["preferences"].items():
            for principal, other in saved.items():
                _put(self.matcher.preferences[phase], principal, other)

        watermark = snapshot["next_certificate_id"]
        for certificate_id in sorted(c for c in self.live_certificates if c >= watermark):
            logger.warning(
                "Burning certificate %d minted by a rolled-back operation", certificate_id
            )
            self.burn_certificate(certificate_id)


def _put(mapping: dict, key: Any, value: Any) -> None:
    if value is None:
        mapping.pop(key, None)
    else:
        mapping[key] = value
