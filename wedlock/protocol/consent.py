"""
Consent Matcher — two-sided rendezvous on a shared preference map.

Each principal holds at most one outstanding preference per phase. A
proposal writes the caller's preference and then checks whether the other
side already points back; mutuality is evaluated at write time, so the
outcome does not depend on which of the two proposers is processed first.

The engagement and marriage phases use separate namespaces. A marriage
preference can only be written by an engaged principal, and the store
clears both partners' marriage entries when their Record is dissolved or
its wedding date moves, so the namespaces never leak into one another.
"""

from __future__ import annotations

import logging

from wedlock.protocol.schema import ConsentPhase, Principal

logger = logging.getLogger(__name__)


class ConsentMatcher:
    """Phase-tagged "did both sides pick each other" primitive."""

    def __init__(self) -> None:
        self.preferences: dict[ConsentPhase, dict[Principal, Principal]] = {
            phase: {} for phase in ConsentPhase
        }

    def propose(self, phase: ConsentPhase, caller: Principal, other: Principal) -> bool:
        """
        Record that `caller` picks `other` and report whether it is mutual.

        On a match both entries are cleared so the phase can be reused.

        Returns:
            True when `other` had already picked `caller`.
        """
        slots = self.preferences[phase]
        slots[caller] = other

        if slots.get(other) != caller:
            logger.debug("Pending %s preference: %s -> %s", phase.value, caller, other)
            return False

        del slots[caller]
        del slots[other]
        logger.debug("Mutual %s consent: %s <-> %s", phase.value, caller, other)
        return True

    def preference_of(self, phase: ConsentPhase, principal: Principal) -> Principal | None:
        return self.preferences[phase].get(principal)

    def clear(self, phase: ConsentPhase, *principals: Principal) -> None:
        slots = self.preferences[phase]
        for principal in principals:
            slots.pop(principal, None)
