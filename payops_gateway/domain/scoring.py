"""Endpoint scoring - tier classification, hard rejection rules and the weighted score"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from payops_gateway.domain.circuit import CircuitBoard
from payops_gateway.domain.engine_config import SelectionConfig
from payops_gateway.domain.models import (
    AmountTier,
    CircuitState,
    EndpointCandidate,
    ScoredCandidate,
    TierMatch,
)
from payops_gateway.utils.time_utils import minutes_between

# Inclusive upper bound of each tier, ascending. Fractional amounts between two
# tiers fall into the upper one; anything past the last bound is xlarge.
AMOUNT_TIERS: List[Tuple[AmountTier, Decimal, Decimal]] = [
    (AmountTier.MICRO, Decimal("100"), Decimal("1000")),
    (AmountTier.SMALL, Decimal("1001"), Decimal("5000")),
    (AmountTier.MEDIUM, Decimal("5001"), Decimal("15000")),
    (AmountTier.LARGE, Decimal("15001"), Decimal("50000")),
    (AmountTier.XLARGE, Decimal("50001"), Decimal("100000")),
]
TIER_ORDER: List[AmountTier] = [tier for tier, _, _ in AMOUNT_TIERS]


def get_amount_tier(amount: Decimal) -> AmountTier:
    for tier, _, upper in AMOUNT_TIERS:
        if amount <= upper:
            return tier
    return AmountTier.XLARGE


def _parse_tier(value: Optional[str]) -> AmountTier:
    try:
        return AmountTier((value or "").strip().lower())
    except ValueError:
        return AmountTier.MEDIUM


def classify_tier_match(requested: AmountTier, candidate_tier: Optional[str]) -> TierMatch:
    assigned = _parse_tier(candidate_tier)
    if assigned == requested:
        return TierMatch.EXACT
    if abs(TIER_ORDER.index(assigned) - TIER_ORDER.index(requested)) == 1:
        return TierMatch.ADJACENT
    return TierMatch.MISMATCH


def within_bounds(candidate: EndpointCandidate, amount: Decimal) -> bool:
    if candidate.min_amount is not None and candidate.min_amount > 0 and amount < candidate.min_amount:
        return False
    if candidate.max_amount is not None and candidate.max_amount > 0 and amount > candidate.max_amount:
        return False
    return True


def _round(value: float) -> float:
    return round(value, 1)


def score_candidate(
    candidate: EndpointCandidate,
    amount: Decimal,
    circuits: CircuitBoard,
    config: SelectionConfig,
    now: datetime,
) -> Optional[ScoredCandidate]:
    """
    Score one endpoint for the requested amount, or return None when a hard rule drops it.

    Hard rejections (checked before scoring):
    - bank circuit unavailable (OPEN, or HALF_OPEN with no test budget left)
    - amount outside the endpoint's min/max bounds
    - tier mismatch on an amount above the large-amount threshold
    - remaining daily capacity below the amount
    - composite score below the acceptance floor

    Scoring terms, each bounded by its weight:
    - success rate: percentage of the weight
    - daily capacity: unused share of the daily limit
    - cooldown: minutes since last use, saturating; never used gets full credit
    - amount match: full for exact tier, half for adjacent
    - provider balance: full once the provider clears the balance floor, linear below
    - bank health: full when CLOSED, reduced when HALF_OPEN
    - recent failures: penalty of one point per failure in the last hour, capped
    """
    weights = config.weights
    requested_tier = get_amount_tier(amount)

    availability = circuits.is_available(candidate.bank_name)
    if not availability.available:
        return None

    if not within_bounds(candidate, amount):
        return None

    tier_match = classify_tier_match(requested_tier, candidate.amount_tier)
    if tier_match == TierMatch.MISMATCH and amount > config.large_amount_threshold:
        return None

    remaining = candidate.remaining_capacity
    if remaining < amount:
        return None

    breakdown: Dict[str, float] = {}

    success_score = max(0.0, min(candidate.success_rate, 100.0)) / 100 * weights.success_rate
    breakdown["success_rate"] = _round(success_score)

    capacity_ratio = float(remaining / candidate.daily_limit) if candidate.daily_limit > 0 else 0.0
    capacity_score = min(1.0, capacity_ratio) * weights.daily_capacity
    breakdown["daily_capacity"] = _round(capacity_score)

    if candidate.last_used_at is None:
        cooldown_score = weights.cooldown
    else:
        idle = max(0.0, minutes_between(candidate.last_used_at, now))
        cooldown_score = min(1.0, idle / config.cooldown_saturation_minutes) * weights.cooldown
    breakdown["cooldown"] = _round(cooldown_score)

    if tier_match == TierMatch.EXACT:
        amount_score = weights.amount_match
    elif tier_match == TierMatch.ADJACENT:
        amount_score = weights.amount_match * 0.5
    else:
        amount_score = 0.0
    breakdown["amount_match"] = _round(amount_score)

    floor = config.provider_balance_floor
    if candidate.provider_balance >= floor or floor <= 0:
        balance_score = weights.provider_balance
    else:
        balance_score = max(0.0, float(candidate.provider_balance / floor)) * weights.provider_balance
    breakdown["provider_balance"] = _round(balance_score)

    if availability.state == CircuitState.HALF_OPEN:
        bank_score = weights.bank_health * config.half_open_health_factor
    else:
        bank_score = weights.bank_health
    breakdown["bank_health"] = _round(bank_score)

    penalty = min(float(candidate.failures_last_hour), weights.recent_failures)
    breakdown["recent_failures"] = -_round(penalty)

    total = success_score + capacity_score + cooldown_score + amount_score + balance_score + bank_score - penalty
    if total < config.min_score_floor:
        return None

    return ScoredCandidate(
        candidate=candidate,
        score=_round(total),
        tier_match=tier_match,
        breakdown=breakdown,
    )


def score_candidates(
    candidates: List[EndpointCandidate],
    amount: Decimal,
    circuits: CircuitBoard,
    config: SelectionConfig,
    now: datetime,
) -> List[ScoredCandidate]:
    """Score every candidate and return the survivors, best first"""
    scored = [score_candidate(c, amount, circuits, config, now) for c in candidates]
    return sorted((s for s in scored if s is not None), key=lambda s: s.score, reverse=True)
