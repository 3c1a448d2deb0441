"""Cosine similarity scoring and top-N ranking over fingerprints.

Pure functions: no I/O, no state between calls. The knowledge base is small
enough for a linear scan, so ranking is a plain sort over every candidate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

DEFAULT_THRESHOLD = 0.75
DEFAULT_TOP_N = 3


@dataclass(frozen=True)
class Match:
    """A candidate id with its similarity to the query."""
    id: int
    score: float


def score(query: Sequence[float] | None, candidate: Sequence[float] | None) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 ("no signal") when either vector is missing or empty, the
    lengths differ, or either vector has zero magnitude.
    """
    if not query or not candidate or len(query) != len(candidate):
        return 0.0

    dot = 0.0
    mag_q = 0.0
    mag_c = 0.0
    for q, c in zip(query, candidate):
        dot += q * c
        mag_q += q * q
        mag_c += c * c

    denom = math.sqrt(mag_q) * math.sqrt(mag_c)
    if denom == 0:
        return 0.0
    # Clamp float drift so identical vectors never report 1.0000000002
    return max(-1.0, min(1.0, dot / denom))


def rank(
    query: Sequence[float] | None,
    candidates: Iterable[tuple[int, Sequence[float] | None]],
    top_n: int = DEFAULT_TOP_N,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[Match]:
    """Return the best candidates with score >= threshold, best first.

    Args:
        query: Query fingerprint.
        candidates: (id, fingerprint) pairs. Their order decides ties.
        top_n: Maximum number of matches returned.
        threshold: Minimum score to be included.

    Returns:
        Matches sorted by descending score, equal scores kept in input order.
    """
    if top_n <= 0:
        return []

    scored = []
    for position, (candidate_id, vector) in enumerate(candidates):
        s = score(query, vector)
        if s >= threshold:
            scored.append((s, position, candidate_id))

    # Position as secondary key keeps ties in input order
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [Match(id=candidate_id, score=s) for s, _, candidate_id in scored[:top_n]]
