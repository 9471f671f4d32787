"""
Pattern matching — extracts candidate secrets from fetched file content.

Patterns arrive pre-compiled from the validator registry, so nothing here
handles malformed expressions.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from keyscout.models import IssuerType


def match_candidates(
    text: str,
    pairs: Iterable[tuple[IssuerType, re.Pattern[str]]],
) -> dict[IssuerType, list[str]]:
    """Find distinct candidate secrets per issuer.

    Args:
        text: Raw file content.
        pairs: ``(issuer, compiled pattern)`` pairs; an issuer may appear more
            than once.

    Returns:
        ``{issuer: [secret, ...]}`` with each issuer's secrets deduplicated in
        first-match order. Issuers without a match are omitted.
    """
    found: dict[IssuerType, list[str]] = {}
    seen: dict[IssuerType, set[str]] = {}
    if not text:
        return found

    for issuer, pattern in pairs:
        for m in pattern.finditer(text):
            secret = m.group(0)
            if not secret:
                continue
            issuer_seen = seen.setdefault(issuer, set())
            if secret in issuer_seen:
                continue
            issuer_seen.add(secret)
            found.setdefault(issuer, []).append(secret)
    return found
