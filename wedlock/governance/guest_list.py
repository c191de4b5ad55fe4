"""
Guest List Manager — proposal, confirmation and veto voting.

A guest list becomes binding once both partners have confirmed the same
list. Proposing a new list replaces the guests, wipes every veto vote and
both confirmations, and then confirms on behalf of the proposer; the other
partner has to confirm again.

On the wedding day, confirmed guests may vote against the wedding. Votes
are never retracted. When strictly more than half of the guests have voted
(integer half: 5 guests need 3), the engagement is disbanded.
"""

from __future__ import annotations

import logging

from wedlock.protocol.errors import InvariantViolation, PreconditionViolation
from wedlock.protocol.schema import GuestList, Principal, QuorumResult, Record
from wedlock.protocol.store import RecordStore, require_principal

logger = logging.getLogger(__name__)


class GuestListManager:
    """Operates on the guest lists of Records held by a RecordStore."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def propose_guest_list(self, caller: Principal, guests: list[Principal]) -> GuestList:
        """
        Replace the guest list of the caller's Record.

        Raises:
            PreconditionViolation: Caller not engaged, or the current list
                is already confirmed by both partners.
            InvariantViolation: A partner or a duplicate in `guests`.
        """
        record = self.store.require_record(caller)
        if record.guest_list.is_confirmed:
            raise PreconditionViolation(
                "Guest list has already been confirmed by both partners"
            )

        for guest in guests:
            require_principal(guest)
        if record.partner1 in guests or record.partner2 in guests:
            raise InvariantViolation("Partners cannot be on their own guest list")
        if len(set(guests)) != len(guests):
            raise InvariantViolation("Guest list contains duplicate guests")

        record.guest_list.replace(guests)
        self._confirm(record, caller)

        logger.info(
            "Guest list proposed by %s: key=%s guests=%d",
            caller, record.key[:12], len(guests),
        )
        return record.guest_list

    def confirm_guest_list(self, caller: Principal) -> bool:
        """
        Confirm the current guest list.

        Returns:
            Whether a confirmation flag was set. A caller who is not one of
            the partners changes nothing and gets no error.
        """
        record = self.store.require_record(caller)
        return self._confirm(record, caller)

    def _confirm(self, record: Record, caller: Principal) -> bool:
        if caller == record.partner1:
            record.guest_list.partner1_confirmed = True
        elif caller == record.partner2:
            record.guest_list.partner2_confirmed = True
        else:
            return False
        logger.debug("Guest list confirmed by %s: key=%s", caller, record.key[:12])
        return True

    def get_confirmed_guest_list(self, user: Principal) -> list[Principal]:
        record = self.store.require_record(user)
        if not record.guest_list.is_confirmed:
            raise PreconditionViolation(
                "Guest list has not been confirmed by both partners"
            )
        return list(record.guest_list.guests)

    def vote_against_wedding(
        self,
        partner_under_vote: Principal,
        caller: Principal,
    ) -> QuorumResult:
        """
        Cast a guest's veto vote against the wedding of `partner_under_vote`.

        A caller who is not on the guest list records nothing, but the tally
        is still recomputed from every slot.

        Raises:
            PreconditionViolation: Partner not engaged, already married, or
                the guest list is not confirmed by both partners.
            TemporalViolation: Outside the wedding-day window.
        """
        record = self.store.require_record(partner_under_vote)
        if record.is_married:
            raise PreconditionViolation(f"{partner_under_vote} is already married")
        self.store.require_wedding_day(record)
        guest_list = record.guest_list
        if not guest_list.is_confirmed:
            raise PreconditionViolation(
                "Guest list has not been confirmed by both partners"
            )

        vote_recorded = False
        if caller in guest_list.guests:
            slot = guest_list.guests.index(caller)
            vote_recorded = not guest_list.votes[slot]
            guest_list.votes[slot] = True

        votes_cast = guest_list.vote_count()
        half = len(guest_list.guests) // 2
        dissolved = votes_cast > half
        key = record.key

        if dissolved:
            logger.info(
                "Wedding vetoed: key=%s votes=%d/%d",
                key[:12], votes_cast, len(guest_list.guests),
            )
            self.store.destroy(key)

        return QuorumResult(
            record_key=key,
            vote_recorded=vote_recorded,
            votes_cast=votes_cast,
            votes_required=half + 1,
            dissolved=dissolved,
        )
