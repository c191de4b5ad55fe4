"""
Protocol errors — every rejected transaction surfaces as one of these.

All of them are raised before any state is mutated; the registry rolls back
whatever an operation touched if one escapes mid-transaction.
"""

from __future__ import annotations


class ProtocolViolation(Exception):
    """Base class for rejected protocol transactions."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PreconditionViolation(ProtocolViolation):
    """Wrong lifecycle state (not engaged, already engaged, already married, ...)."""
    pass


class TemporalViolation(ProtocolViolation):
    """Date not in the future, or call outside the allowed day window."""
    pass


class AuthorizationViolation(ProtocolViolation):
    """
    Caller is not a party to the record where that is strictly enforced.

    No registry operation enforces party membership strictly today: a
    non-partner confirming a guest list and a non-party divorce vote are
    accepted without effect. The type is part of the error surface so
    transports and custom operations can report a 403.
    """


class InvariantViolation(ProtocolViolation):
    """Self-engagement, a partner in the guest list, duplicate guests."""
    pass
