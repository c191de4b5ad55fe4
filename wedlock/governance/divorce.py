"""
Quorum Voter — the 2-of-3 divorce vote.

Each marriage has three divorce vote slots: one per partner and one shared
by all authorized arbiters. Two filled slots dissolve the marriage: both
certificates are burned and the Record is removed. Burning skips certificates
that are already gone, so a dissolution cut short by a registry failure
completes when the quorum is reached again.
"""

from __future__ import annotations

import logging

from wedlock.governance.arbiters import ArbiterRoster
from wedlock.protocol.errors import InvariantViolation, PreconditionViolation
from wedlock.protocol.schema import DivorceSlot, Principal, QuorumResult, Record
from wedlock.protocol.store import RecordStore

logger = logging.getLogger(__name__)

DIVORCE_QUORUM = 2


class QuorumVoter:
    """Tallies divorce votes on married Records of a RecordStore."""

    def __init__(self, store: RecordStore, roster: ArbiterRoster) -> None:
        self.store = store
        self.roster = roster

    def divorce(self, caller: Principal, married_partner: Principal) -> QuorumResult:
        """
        Vote to dissolve the marriage of `married_partner`.

        A partner names the other partner; an arbiter names either. Anyone
        else is accepted without recording a vote.

        Raises:
            PreconditionViolation: `married_partner` is not married.
            InvariantViolation: A partner named themselves instead of the
                other partner.
        """
        record = self.store.record_of(married_partner)
        if record is None or not record.is_married:
            raise PreconditionViolation(f"{married_partner} is not married")

        slot = self._slot_for(record, caller, married_partner)
        vote_recorded = False
        if slot is not None:
            vote_recorded = self._cast(record, slot)
            logger.info(
                "Divorce vote: key=%s slot=%d caller=%s", record.key[:12], slot, caller
            )
        else:
            logger.debug("Divorce vote ignored: %s has no slot on %s", caller, record.key[:12])

        votes_cast = record.divorce_vote_count()
        dissolved = votes_cast >= DIVORCE_QUORUM
        key = record.key

        if dissolved:
            self.store.burn_certificate(record.certificate_id_p1)
            self.store.burn_certificate(record.certificate_id_p2)
            self.store.destroy(key)
            logger.info("Divorced: key=%s votes=%d", key[:12], votes_cast)

        return QuorumResult(
            record_key=key,
            vote_recorded=vote_recorded,
            votes_cast=votes_cast,
            votes_required=DIVORCE_QUORUM,
            dissolved=dissolved,
        )

    def _slot_for(
        self,
        record: Record,
        caller: Principal,
        married_partner: Principal,
    ) -> DivorceSlot | None:
        if caller == record.partner1:
            if married_partner != record.partner2:
                raise InvariantViolation("Name your partner, not yourself, to divorce")
            return DivorceSlot.PARTNER1
        if caller == record.partner2:
            if married_partner != record.partner1:
                raise InvariantViolation("Name your partner, not yourself, to divorce")
            return DivorceSlot.PARTNER2
        if self.roster.is_authorized(caller):
            return DivorceSlot.ARBITER
        return None

    @staticmethod
    def _cast(record: Record, slot: DivorceSlot) -> bool:
        """Fill a vote slot. Returns False when it was already filled."""
        field = f"divorce_vote{slot.value}"
        if getattr(record, field):
            return False
        setattr(record, field, True)
        return True
