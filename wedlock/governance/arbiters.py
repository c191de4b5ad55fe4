"""
Arbiter Roster — the externally configured set of divorce arbiters.

Arbiters are third parties authorized to cast the shared third divorce vote
on any marriage. The roster is injected configuration; it is loaded once
(from WedlockSettings.arbiters by default) and never expanded at runtime.
"""

from __future__ import annotations

import logging
from typing import Iterable

from wedlock.protocol.schema import Principal

logger = logging.getLogger(__name__)


class ArbiterRoster:
    """Membership check for authorized arbiters."""

    def __init__(self, arbiters: Iterable[Principal] = ()) -> None:
        self.arbiters: frozenset[Principal] = frozenset(a for a in arbiters if a)
        logger.info("Arbiter roster loaded: %d arbiters", len(self.arbiters))

    def is_authorized(self, principal: Principal) -> bool:
        return principal in self.arbiters

    def list_arbiters(self) -> list[Principal]:
        return sorted(self.arbiters)

    def __len__(self) -> int:
        return len(self.arbiters)
