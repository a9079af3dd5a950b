"""
Per-bank failure circuit breaker.

State machine (evaluated once per selection request, persisted afterwards):
- CLOSED: trips to OPEN when the trailing window holds at least `min_sample_size`
  terminal outcomes and the failure rate is at or above `failure_threshold`.
- OPEN: moves to HALF_OPEN once `cooldown_minutes` have elapsed since the trip.
- HALF_OPEN: lets `half_open_test_count` test transactions through. Once they are
  spent, the outcomes of transactions created since the breaker half-opened decide:
  below threshold closes the breaker, otherwise it re-trips with a fresh timestamp.

Every transition is a pure function of the outcomes handed in and the record that
was stored before this evaluation, so concurrent evaluators can only lose a cycle.
"""

from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from payops_gateway.domain.engine_config import CircuitConfig
from payops_gateway.domain.models import (
    CircuitAvailability,
    CircuitState,
    ProviderCircuit,
    TransactionOutcome,
)
from payops_gateway.utils.time_utils import as_utc, minutes_between


def normalize_bank(bank_name: Optional[str]) -> str:
    return (bank_name or "unknown").strip().lower()


def _failure_stats(outcomes: List[TransactionOutcome]) -> tuple[int, int, float]:
    total = len(outcomes)
    failed = sum(1 for o in outcomes if o.failed)
    return total, failed, (failed / total if total else 0.0)


def outcome_cutoff(
    stored: Iterable[ProviderCircuit],
    now: datetime,
    config: CircuitConfig,
) -> datetime:
    """Earliest creation time whose outcomes the next evaluation needs"""
    cutoff = now - timedelta(minutes=config.window_minutes)
    for circuit in stored:
        if circuit.state == CircuitState.HALF_OPEN and circuit.half_open_at is not None:
            cutoff = min(cutoff, as_utc(circuit.half_open_at))
    return cutoff


def evaluate_circuit(
    bank_name: str,
    outcomes: List[TransactionOutcome],
    previous: Optional[ProviderCircuit],
    now: datetime,
    config: CircuitConfig,
) -> ProviderCircuit:
    """Compute the next breaker record for one bank"""
    bank = normalize_bank(bank_name)
    window_start = now - timedelta(minutes=config.window_minutes)
    window = [o for o in outcomes if as_utc(o.created_at) >= window_start]
    total, failed, failure_rate = _failure_stats(window)

    current = ProviderCircuit(
        bank_name=bank,
        failure_rate=failure_rate,
        sample_count=total,
        failure_count=failed,
    )

    if previous is None or previous.state == CircuitState.CLOSED:
        if total >= config.min_sample_size and failure_rate >= config.failure_threshold:
            return replace(current, state=CircuitState.OPEN, last_tripped_at=now)
        return current

    if previous.state == CircuitState.OPEN:
        tripped_at = as_utc(previous.last_tripped_at) or now
        if minutes_between(tripped_at, now) >= config.cooldown_minutes:
            return replace(
                current,
                state=CircuitState.HALF_OPEN,
                last_tripped_at=tripped_at,
                half_open_at=now,
                half_open_attempts=0,
            )
        return replace(current, state=CircuitState.OPEN, last_tripped_at=tripped_at)

    # HALF_OPEN
    half_open_at = as_utc(previous.half_open_at) or window_start
    still_half_open = replace(
        current,
        state=CircuitState.HALF_OPEN,
        last_tripped_at=as_utc(previous.last_tripped_at),
        half_open_at=half_open_at,
        half_open_attempts=previous.half_open_attempts,
    )
    if previous.half_open_attempts < config.half_open_test_count:
        return still_half_open

    tests = [o for o in outcomes if as_utc(o.created_at) >= half_open_at]
    waited = minutes_between(half_open_at, now) >= config.cooldown_minutes
    if len(tests) < config.half_open_test_count and not waited:
        return still_half_open

    _, _, test_failure_rate = _failure_stats(tests)
    if test_failure_rate < config.failure_threshold:
        return current
    return replace(current, state=CircuitState.OPEN, last_tripped_at=now)


class CircuitBoard:
    """Freshly evaluated breakers for every known bank; queries perform no I/O"""

    def __init__(self, circuits: Iterable[ProviderCircuit], config: CircuitConfig):
        self.config = config
        self._circuits: Dict[str, ProviderCircuit] = {
            normalize_bank(c.bank_name): c for c in circuits
        }

    @classmethod
    def evaluate(
        cls,
        outcomes: Iterable[TransactionOutcome],
        stored: Iterable[ProviderCircuit],
        now: datetime,
        config: CircuitConfig,
    ) -> "CircuitBoard":
        by_bank: Dict[str, List[TransactionOutcome]] = defaultdict(list)
        for outcome in outcomes:
            by_bank[normalize_bank(outcome.bank_name)].append(outcome)

        previous = {normalize_bank(c.bank_name): c for c in stored}
        banks = sorted(set(by_bank) | set(previous))
        return cls(
            (evaluate_circuit(bank, by_bank.get(bank, []), previous.get(bank), now, config) for bank in banks),
            config,
        )

    @property
    def circuits(self) -> List[ProviderCircuit]:
        return list(self._circuits.values())

    def get(self, bank_name: str) -> Optional[ProviderCircuit]:
        return self._circuits.get(normalize_bank(bank_name))

    def is_available(self, bank_name: str) -> CircuitAvailability:
        circuit = self.get(bank_name)
        if circuit is None or circuit.state == CircuitState.CLOSED:
            return CircuitAvailability(available=True, state=CircuitState.CLOSED)

        if circuit.state == CircuitState.OPEN:
            return CircuitAvailability(
                available=False,
                state=CircuitState.OPEN,
                reason=f"Bank {circuit.bank_name} circuit open ({circuit.failure_rate:.0%} failures)",
            )

        if circuit.half_open_attempts < self.config.half_open_test_count:
            return CircuitAvailability(available=True, state=CircuitState.HALF_OPEN)
        return CircuitAvailability(
            available=False,
            state=CircuitState.HALF_OPEN,
            reason=f"Bank {circuit.bank_name} half-open, test transactions exhausted",
        )

    def blocked_banks(self) -> List[str]:
        return [bank for bank in self._circuits if not self.is_available(bank).available]

    def status_summary(self) -> str:
        blocked = len(self.blocked_banks())
        return f"{blocked} banks blocked" if blocked else "all banks healthy"

    def consume_test_attempt(self, bank_name: str) -> bool:
        """Count a half-open test attempt locally; returns False for any other state"""
        bank = normalize_bank(bank_name)
        circuit = self._circuits.get(bank)
        if circuit is None or circuit.state != CircuitState.HALF_OPEN:
            return False
        self._circuits[bank] = replace(circuit, half_open_attempts=circuit.half_open_attempts + 1)
        return True
