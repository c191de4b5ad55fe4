"""
Wedlock Schema — Pydantic models for every entity of the consent protocol.

These models are the canonical data structures shared by the record store,
the guest-list and divorce procedures, the event journal and the HTTP
surface. A Record is the single shared object two principals converge on;
it is stored once, under a key derived from the pair, and mutated in place
for the whole engagement → marriage → dissolution lifecycle.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field, computed_field, model_validator

Principal = str
RecordKey = str

NO_CERTIFICATE = 0


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class LifecycleStatus(str, enum.Enum):
    """Explicit lifecycle of a pair of principals."""

    PROPOSED = "proposed"  # One-sided engagement preference, no Record yet
    ENGAGED = "engaged"
    MARRIED = "married"
    DISSOLVED = "dissolved"


class ConsentPhase(str, enum.Enum):
    """Namespaces of the mutual-consent preference map."""

    ENGAGEMENT = "engagement"
    MARRIAGE = "marriage"


class DivorceSlot(int, enum.Enum):
    """Divorce vote slots. Arbiters share a single slot."""

    PARTNER1 = 1
    PARTNER2 = 2
    ARBITER = 3


class JournalEventType(str, enum.Enum):
    """Types of event journal entries."""

    GENESIS = "genesis"

    # Engagement
    ENGAGEMENT_PROPOSED = "engagement_proposed"
    ENGAGED = "engaged"
    WEDDING_DATE_CHANGED = "wedding_date_changed"
    ENGAGEMENT_REVOKED = "engagement_revoked"

    # Guest list
    GUEST_LIST_PROPOSED = "guest_list_proposed"
    GUEST_LIST_CONFIRMED = "guest_list_confirmed"
    VETO_VOTE_CAST = "veto_vote_cast"
    WEDDING_VETOED = "wedding_vetoed"

    # Marriage
    MARRIAGE_PROPOSED = "marriage_proposed"
    MARRIED = "married"

    # Divorce
    DIVORCE_VOTE_CAST = "divorce_vote_cast"
    DIVORCED = "divorced"


# ════════════════════════════════════════════════════════════════
# Record Models
# ════════════════════════════════════════════════════════════════


class GuestList(BaseModel):
    """
    Guest list of a Record.

    `votes` is index-aligned with `guests`: votes[i] is the veto vote of
    guests[i]. Both confirmation flags are cleared whenever the guests are
    replaced.
    """

    guests: list[Principal] = Field(default_factory=list)
    votes: list[bool] = Field(default_factory=list)
    partner1_confirmed: bool = False
    partner2_confirmed: bool = False

    @model_validator(mode="after")
    def _votes_aligned(self) -> GuestList:
        if len(self.votes) != len(self.guests):
            raise ValueError("guest list votes must be index-aligned with guests")
        return self

    @computed_field
    @property
    def is_confirmed(self) -> bool:
        """Whether both partners confirmed the current guests."""
        return self.partner1_confirmed and self.partner2_confirmed

    def replace(self, guests: list[Principal]) -> None:
        self.guests = list(guests)
        self.votes = [False] * len(guests)
        self.partner1_confirmed = False
        self.partner2_confirmed = False

    def vote_count(self) -> int:
        return sum(1 for vote in self.votes if vote)


class Record(BaseModel):
    """
    The shared engagement/marriage state of two principals.

    partner1/partner2 order is bookkeeping only: partner1 is whoever's
    proposal was already pending when the match completed.

    is_engaged is never cleared by marriage, so a married Record reports
    is_engaged=True as well. `status` carries the explicit lifecycle.
    """

    key: RecordKey = ""
    partner1: Principal = ""
    partner2: Principal = ""
    wedding_date: int = 0
    status: LifecycleStatus = LifecycleStatus.DISSOLVED
    is_engaged: bool = False
    is_married: bool = False
    guest_list: GuestList = Field(default_factory=GuestList)
    certificate_id_p1: int = NO_CERTIFICATE
    certificate_id_p2: int = NO_CERTIFICATE
    divorce_vote1: bool = False
    divorce_vote2: bool = False
    divorce_vote3: bool = False

    def partner_of(self, principal: Principal) -> Principal | None:
        """The other party of this Record, or None for a non-party."""
        if principal == self.partner1:
            return self.partner2
        if principal == self.partner2:
            return self.partner1
        return None

    def divorce_vote_count(self) -> int:
        return sum(
            1 for vote in (self.divorce_vote1, self.divorce_vote2, self.divorce_vote3)
            if vote
        )


class Certificate(BaseModel):
    """A proof-of-marriage token held by one partner."""

    id: int
    owner: Principal
    partner1: Principal
    partner2: Principal
    wedding_date: int


class QuorumResult(BaseModel):
    """Outcome of a veto or divorce vote."""

    record_key: RecordKey
    vote_recorded: bool = Field(
        description="Whether the caller's vote changed a slot or was a no-op"
    )
    votes_cast: int
    votes_required: int
    dissolved: bool


class JournalEvent(BaseModel):
    """An event waiting to be appended to the journal."""

    event_type: JournalEventType
    actor: Principal
    record_key: RecordKey | None = None
    content: dict[str, Any] = Field(default_factory=dict)
