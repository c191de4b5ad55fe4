"""Record key derivation for an unordered pair of principals."""

from __future__ import annotations

import hashlib
import json

from wedlock.protocol.schema import Principal, RecordKey


def derive_record_key(a: Principal, b: Principal) -> RecordKey:
    """
    Derive the canonical record key of a pair of principals.

    key = SHA-256(canonical_json([min(a, b), max(a, b)]))

    The pair is sorted before hashing, so derive_record_key(a, b) ==
    derive_record_key(b, a). JSON encoding keeps the two identities
    unambiguous whatever characters they contain.
    """
    low, high = sorted((a, b))
    canonical = json.dumps([low, high], separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
