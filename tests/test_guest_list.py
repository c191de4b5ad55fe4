"""
Tests for the guest list: proposal, confirmation and veto voting.

Validates:
- Round trip of a doubly confirmed guest list
- Partners and duplicates rejected
- Veto quorum of strictly more than half the guests
"""

from __future__ import annotations

import pytest

from wedlock.integrations.certificates import InMemoryCertificateRegistry
from wedlock.integrations.clock import DAY_SECONDS, ManualClock
from wedlock.protocol.errors import (
    InvariantViolation,
    PreconditionViolation,
    TemporalViolation,
)
from wedlock.registry import WeddingRegistry

WEDDING_DAY = 10 * DAY_SECONDS
WEDDING_DATE = WEDDING_DAY + 15 * 3600
GUESTS = ["g1", "g2", "g3", "g4", "g5"]


class TestGuestListProposal:
    """Test proposing and confirming guest lists."""

    def setup_method(self):
        self.clock = ManualClock(now=DAY_SECONDS)
        self.registry = WeddingRegistry(self.clock, InMemoryCertificateRegistry())
        self.registry.engage("alice", "bob", WEDDING_DATE)
        self.registry.engage("bob", "alice", WEDDING_DATE)

    def test_round_trip(self):
        self.registry.propose_guest_list("alice", ["G1", "G2"])
        self.registry.confirm_guest_list("alice")
        self.registry.confirm_guest_list("bob")
        assert self.registry.get_confirmed_guest_list("alice") == ["G1", "G2"]
        assert self.registry.get_confirmed_guest_list("bob") == ["G1", "G2"]

    def test_proposal_confirms_for_proposer_only(self):
        guest_list = self.registry.propose_guest_list("bob", ["G1"])
        assert guest_list.partner2_confirmed
        assert not guest_list.partner1_confirmed
        assert guest_list.votes == [False]
        with pytest.raises(PreconditionViolation):
            self.registry.get_confirmed_guest_list("alice")

    def test_new_proposal_resets_confirmations(self):
        self.registry.propose_guest_list("alice", ["G1"])
        guest_list = self.registry.propose_guest_list("bob", ["G2"])
        assert guest_list.guests == ["G2"]
        assert guest_list.partner2_confirmed
        assert not guest_list.partner1_confirmed

    def test_confirmed_list_cannot_be_replaced(self):
        self.registry.propose_guest_list("alice", ["G1"])
        self.registry.confirm_guest_list("bob")
        with pytest.raises(PreconditionViolation, match="already been confirmed"):
            self.registry.propose_guest_list("bob", ["G2"])
        assert self.registry.get_confirmed_guest_list("bob") == ["G1"]

    def test_partner_on_guest_list_rejected(self):
        with pytest.raises(InvariantViolation):
            self.registry.propose_guest_list("alice", ["G1", "bob"])
        with pytest.raises(InvariantViolation):
            self.registry.propose_guest_list("alice", ["alice"])

    def test_duplicate_guests_rejected(self):
        with pytest.raises(InvariantViolation, match="duplicate"):
            self.registry.propose_guest_list("alice", ["G1", "G1"])

    def test_rejected_proposal_keeps_previous_list(self):
        self.registry.propose_guest_list("alice", ["G1"])
        with pytest.raises(InvariantViolation):
            self.registry.propose_guest_list("bob", ["alice"])
        record = self.registry.get_engagement_details("alice")
        assert record.guest_list.guests == ["G1"]
        assert record.guest_list.partner1_confirmed

    def test_not_engaged_rejected(self):
        with pytest.raises(PreconditionViolation):
            self.registry.propose_guest_list("carol", ["G1"])
        with pytest.raises(PreconditionViolation):
            self.registry.confirm_guest_list("carol")
        with pytest.raises(PreconditionViolation):
            self.registry.get_confirmed_guest_list("carol")

    def test_empty_guest_list(self):
        self.registry.propose_guest_list("alice", [])
        self.registry.confirm_guest_list("bob")
        assert self.registry.get_confirmed_guest_list("alice") == []


class TestVoteAgainstWedding:
    """Test the guest veto quorum."""

    def setup_method(self):
        self.clock = ManualClock(now=DAY_SECONDS)
        self.registry = WeddingRegistry(self.clock, InMemoryCertificateRegistry())
        self.registry.engage("alice", "bob", WEDDING_DATE)
        self.registry.engage("bob", "alice", WEDDING_DATE)
        self.registry.propose_guest_list("alice", GUESTS)
        self.registry.confirm_guest_list("bob")
        self.clock.set(WEDDING_DAY + 3600)

    def test_two_of_five_votes_do_not_veto(self):
        self.registry.vote_against_wedding("g1", "alice")
        result = self.registry.vote_against_wedding("g2", "bob")

        assert result.votes_cast == 2
        assert result.votes_required == 3
        assert not result.dissolved
        assert self.registry.get_engagement_details("alice") is not None

    def test_three_of_five_votes_veto(self):
        self.registry.vote_against_wedding("g1", "alice")
        self.registry.vote_against_wedding("g2", "alice")
        result = self.registry.vote_against_wedding("g3", "bob")

        assert result.dissolved
        assert result.votes_cast == 3
        assert self.registry.get_engagement_details("alice") is None
        assert self.registry.get_engagement_details("bob") is None

    def test_repeated_vote_counts_once(self):
        self.registry.vote_against_wedding("g1", "alice")
        result = self.registry.vote_against_wedding("g1", "alice")
        assert not result.vote_recorded
        assert result.votes_cast == 1

    def test_non_guest_vote_records_nothing(self):
        self.registry.vote_against_wedding("g1", "alice")
        result = self.registry.vote_against_wedding("mallory", "alice")
        assert not result.vote_recorded
        assert result.votes_cast == 1
        assert not result.dissolved

    def test_vote_outside_wedding_day_rejected(self):
        self.clock.set(WEDDING_DAY - 1)
        with pytest.raises(TemporalViolation):
            self.registry.vote_against_wedding("g1", "alice")
        self.clock.set(WEDDING_DAY + DAY_SECONDS)
        with pytest.raises(TemporalViolation):
            self.registry.vote_against_wedding("g1", "alice")

    def test_vote_requires_confirmed_list(self):
        self.clock.set(DAY_SECONDS)
        registry = WeddingRegistry(self.clock, InMemoryCertificateRegistry())
        registry.engage("alice", "bob", WEDDING_DATE)
        registry.engage("bob", "alice", WEDDING_DATE)
        registry.propose_guest_list("alice", GUESTS)
        self.clock.set(WEDDING_DAY)
        with pytest.raises(PreconditionViolation):
            registry.vote_against_wedding("g1", "alice")

    def test_vote_against_married_couple_rejected(self):
        self.registry.marry("alice")
        self.registry.marry("bob")
        with pytest.raises(PreconditionViolation, match="already married"):
            self.registry.vote_against_wedding("g1", "alice")

    def test_vote_against_unengaged_rejected(self):
        with pytest.raises(PreconditionViolation):
            self.registry.vote_against_wedding("g1", "carol")

    def test_vetoed_couple_cannot_marry(self):
        for guest in GUESTS[:3]:
            self.registry.vote_against_wedding(guest, "alice")
        with pytest.raises(PreconditionViolation):
            self.registry.marry("alice")
