"""Endpoint selection - circuit evaluation, scoring and reservation for one payment request"""

import logging
import random
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from payops_gateway.domain.circuit import CircuitBoard, outcome_cutoff
from payops_gateway.domain.engine_config import SelectionConfig, merge_selection_config
from payops_gateway.domain.events import EventSink, SelectionEvent
from payops_gateway.domain.exceptions import ConcurrentCapacityViolation, NoEligibleCandidateError
from payops_gateway.domain.models import (
    EndpointCandidate,
    ScoredCandidate,
    SelectionErrorCode,
    SelectionResult,
)
from payops_gateway.domain.scoring import get_amount_tier, score_candidates
from payops_gateway.domain.selection import selection_pool, weighted_random_select
from payops_gateway.infrastructure.database.repositories import (
    CircuitRepository,
    ConfigRepository,
    EndpointRepository,
)
from payops_gateway.infrastructure.events import DatabaseEventSink
from payops_gateway.infrastructure.observability.metrics import (
    capacity_violation_counter,
    record_circuit_states,
    record_selection,
)
from payops_gateway.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "No payment method currently available, try again shortly"


class EndpointSelectionService:
    """
    Picks a collection endpoint for an incoming payment.

    Flow:
    1. Merge stored overrides over the default engine config
    2. Re-evaluate every bank circuit from recent outcomes and persist the result
    3. Score active endpoints, dropping those that break a hard rule
    4. Draw from the best-scoring pool, reserving daily capacity atomically
    5. Emit a selection event and commit everything in one transaction
    """

    def __init__(
        self,
        db: Session,
        events: Optional[EventSink] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.events = events if events is not None else DatabaseEventSink(db)
        self.rng = rng or random.Random()
        self.clock = clock
        self.endpoints = EndpointRepository(db)
        self.circuits = CircuitRepository(db)
        self.config_repo = ConfigRepository(db)

    def load_config(self) -> SelectionConfig:
        return merge_selection_config(
            weights_override=self.config_repo.get("selection_weights"),
            engine_override=self.config_repo.get("selection_engine"),
        )

    def evaluate_circuits(self, now: datetime, config: SelectionConfig) -> CircuitBoard:
        stored = self.circuits.load_all()
        outcomes = self.circuits.load_outcomes(outcome_cutoff(stored, now, config.circuit))
        board = CircuitBoard.evaluate(outcomes, stored, now, config.circuit)
        self.circuits.upsert(board.circuits, now)
        record_circuit_states(c.state.value for c in board.circuits)
        return board

    def select(
        self,
        amount: Decimal,
        requesting_principal_id: str,
        request_id: Optional[str] = None,
    ) -> SelectionResult:
        now = self.clock()
        config = self.load_config()
        tier = get_amount_tier(amount)
        event = SelectionEvent(
            requesting_principal_id=requesting_principal_id,
            amount=amount,
            tier=tier.value,
            success=False,
            candidates_considered=0,
            candidates_qualified=0,
            request_id=request_id,
            occurred_at=now,
        )

        try:
            board = self.evaluate_circuits(now, config)
            event.circuit_status_summary = board.status_summary()

            candidates = self.endpoints.list_active_candidates(now)
            event.candidates_considered = len(candidates)
            scored = score_candidates(candidates, amount, board, config, now)
            event.candidates_qualified = len(scored)
            self._check_survivors(candidates, scored, board)

            winner = self._draw_and_reserve(scored, amount, config, now, event)
            if board.consume_test_attempt(winner.candidate.bank_name):
                self.circuits.increment_test_attempt(winner.candidate.bank_name, now)

            event.success = True
            event.endpoint_id = winner.candidate.id
            event.provider_id = winner.candidate.provider_id
            event.bank_name = winner.candidate.bank_name
            event.tier_match = winner.tier_match.value
            event.score = winner.score
            event.score_breakdown = dict(winner.breakdown)
            result = SelectionResult(
                success=True,
                endpoint_id=winner.candidate.handle,
                holder_name=winner.candidate.holder_name,
                provider_id=winner.candidate.provider_id,
                provider_name=winner.candidate.provider_name,
                score=winner.score,
                attempts=event.attempts,
                tier=tier.value,
                circuit_status_summary=event.circuit_status_summary,
            )

        except NoEligibleCandidateError as e:
            logger.info(
                "No eligible endpoint",
                extra={"request_id": request_id, "error_code": e.reason_code.value, "reason": str(e)},
            )
            event.error_code = e.reason_code.value
            result = SelectionResult(
                success=False,
                attempts=event.attempts,
                tier=tier.value,
                circuit_status_summary=event.circuit_status_summary,
                error_code=e.reason_code,
                error=UNAVAILABLE_MESSAGE,
            )

        except Exception:
            self.db.rollback()
            logger.exception("Endpoint selection failed", extra={"request_id": request_id})
            raise

        if config.enable_logging:
            self.events.selection(event)
        self.db.commit()
        record_selection("selected" if result.success else event.error_code, event.attempts)
        return result

    def _check_survivors(
        self,
        candidates: List[EndpointCandidate],
        scored: List[ScoredCandidate],
        board: CircuitBoard,
    ) -> None:
        if not candidates:
            raise NoEligibleCandidateError(
                SelectionErrorCode.NO_ACTIVE_CANDIDATES,
                "No active endpoints with an active provider",
                board.status_summary(),
            )
        if scored:
            return
        if all(not board.is_available(c.bank_name).available for c in candidates):
            raise NoEligibleCandidateError(
                SelectionErrorCode.ALL_CIRCUITS_OPEN,
                "Every candidate bank has an open circuit",
                board.status_summary(),
            )
        raise NoEligibleCandidateError(
            SelectionErrorCode.NO_MATCH,
            "No endpoint passed the eligibility rules for this amount",
            board.status_summary(),
        )

    def _draw_and_reserve(
        self,
        scored: List[ScoredCandidate],
        amount: Decimal,
        config: SelectionConfig,
        now: datetime,
        event: SelectionEvent,
    ) -> ScoredCandidate:
        pool = selection_pool(scored, config.top_candidates)
        max_attempts = min(config.max_attempts, len(pool))

        while pool and event.attempts < max_attempts:
            pick = weighted_random_select(pool, self.rng)
            event.attempts += 1
            try:
                self._reserve(pick, amount, now)
                return pick
            except ConcurrentCapacityViolation as e:
                capacity_violation_counter.inc()
                logger.warning(
                    "Lost reservation, redrawing",
                    extra={"request_id": event.request_id, "endpoint_id": pick.candidate.id, "reason": str(e)},
                )
                pool = [s for s in pool if s.candidate.id != pick.candidate.id]

        raise NoEligibleCandidateError(
            SelectionErrorCode.CAPACITY_EXHAUSTED,
            f"Capacity taken by concurrent selections after {event.attempts} attempts",
        )

    def _reserve(self, pick: ScoredCandidate, amount: Decimal, now: datetime) -> None:
        if not self.endpoints.reserve_capacity(pick.candidate.id, amount, now):
            raise ConcurrentCapacityViolation(
                f"Endpoint {pick.candidate.id} cannot take {amount} more today"
            )
