from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from .scoring import ScoredCandidate

logger = logging.getLogger(__name__)


def select_diverse(
    ranked: Sequence[ScoredCandidate],
    target: int,
    used_buckets: Iterable[str] = (),
) -> list[ScoredCandidate]:
    """Pick up to *target* candidates, one per bucket before any repeats.

    *ranked* must already be in ranking order. The first pass takes the best
    candidate of every bucket not in *used_buckets*; the second pass fills
    the remainder from the full list in its original order. The result keeps
    the ranking order of the accepted candidates.
    """
    if target <= 0 or not ranked:
        return []

    taken = set(used_buckets)
    accepted: set[int] = set()

    for index, item in enumerate(ranked):
        if len(accepted) >= target:
            break
        if item.bucket not in taken:
            taken.add(item.bucket)
            accepted.add(index)

    winners = len(accepted)
    if len(accepted) < target:
        for index in range(len(ranked)):
            if len(accepted) >= target:
                break
            accepted.add(index)

    selected = [ranked[i] for i in sorted(accepted)]
    logger.debug(
        "Diversity selection: pool=%d target=%d bucket_winners=%d repeats=%d",
        len(ranked), target, winners, len(selected) - winners,
    )
    return selected
