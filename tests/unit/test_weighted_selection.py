"""Unit tests for the weighted random draw"""

import random

from payops_gateway.domain.models import ScoredCandidate, TierMatch
from payops_gateway.domain.selection import selection_pool, selection_weight, weighted_random_select


def scored(make_candidate, endpoint_id: str, score: float, tier_match=TierMatch.EXACT) -> ScoredCandidate:
    return ScoredCandidate(candidate=make_candidate(id=endpoint_id), score=score, tier_match=tier_match)


def test_pool_prefers_exact_tier_matches(make_candidate):
    entries = [
        scored(make_candidate, "adjacent-high", 90.0, TierMatch.ADJACENT),
        scored(make_candidate, "exact-low", 40.0),
        scored(make_candidate, "exact-mid", 60.0),
    ]

    pool = selection_pool(entries)

    assert [s.candidate.id for s in pool] == ["exact-mid", "exact-low"]


def test_pool_falls_back_to_everything_and_truncates(make_candidate):
    entries = [scored(make_candidate, f"ep-{i}", float(i), TierMatch.ADJACENT) for i in range(15)]

    pool = selection_pool(entries, top_n=10)

    assert len(pool) == 10
    assert pool[0].candidate.id == "ep-14"
    assert pool[-1].candidate.id == "ep-5"


def test_weight_is_squared_score_with_floor_of_one(make_candidate):
    assert selection_weight(scored(make_candidate, "a", 10.0)) == 100.0
    assert selection_weight(scored(make_candidate, "b", 0.0)) == 1.0


def test_empty_and_single_pools(make_candidate):
    only = scored(make_candidate, "only", 50.0)

    assert weighted_random_select([]) is None
    assert weighted_random_select([only]) is only


def test_draw_favours_higher_scores(make_candidate):
    strong = scored(make_candidate, "strong", 90.0)
    weak = scored(make_candidate, "weak", 30.0)
    rng = random.Random(42)

    picks = [weighted_random_select([strong, weak], rng).candidate.id for _ in range(2000)]

    # 8100 vs 900: the strong endpoint should win about 90% of draws
    share = picks.count("strong") / len(picks)
    assert 0.85 < share < 0.95
    assert "weak" in picks


def test_same_seed_gives_same_sequence(make_candidate):
    pool = [scored(make_candidate, f"ep-{i}", 50.0 + i) for i in range(5)]

    first = [weighted_random_select(pool, random.Random(7)).candidate.id for _ in range(3)]
    second = [weighted_random_select(pool, random.Random(7)).candidate.id for _ in range(3)]

    assert first == second
