"""Weighted random choice among scored endpoints"""

import random
from typing import List, Optional

from payops_gateway.domain.models import ScoredCandidate, TierMatch


def selection_pool(scored: List[ScoredCandidate], top_n: int = 10) -> List[ScoredCandidate]:
    """Exact tier matches when there are any, otherwise everything; best `top_n` by score"""
    exact = [s for s in scored if s.tier_match == TierMatch.EXACT]
    pool = exact if exact else scored
    return sorted(pool, key=lambda s: s.score, reverse=True)[:top_n]


def selection_weight(candidate: ScoredCandidate) -> float:
    # Squaring widens the gap between good and mediocre scores without
    # starving the runner-up.
    return max(candidate.score, 1.0) ** 2


def weighted_random_select(
    pool: List[ScoredCandidate],
    rng: Optional[random.Random] = None,
) -> Optional[ScoredCandidate]:
    if not pool:
        return None
    if len(pool) == 1:
        return pool[0]

    rng = rng or random.Random()
    weights = [selection_weight(c) for c in pool]
    roll = rng.random() * sum(weights)
    for candidate, weight in zip(pool, weights):
        roll -= weight
        if roll <= 0:
            return candidate
    return pool[0]
