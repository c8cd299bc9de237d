from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from ..models.donor import Donor

MAX_MATCHES = 10


@dataclass(frozen=True)
class ScoredCandidate:
    donor: Donor
    probability: float
    features: Dict[str, float] = field(default_factory=dict)


def rank_candidates(
    candidates: Iterable[ScoredCandidate],
    threshold: float,
    limit: int = MAX_MATCHES,
) -> List[ScoredCandidate]:
    """Keep candidates at or above ``threshold``, best first, at most ``limit``.

    Equal probabilities are ordered by donor id so the result never depends on
    the order donors came back from the store.
    """
    kept = [candidate for candidate in candidates if candidate.probability >= threshold]
    kept.sort(key=lambda candidate: (-candidate.probability, candidate.donor.id))
    return kept[: max(0, min(limit, MAX_MATCHES))]
