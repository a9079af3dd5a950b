"""Unit tests for the per-bank circuit breaker"""

from datetime import datetime, timedelta, timezone

from payops_gateway.domain.circuit import CircuitBoard, evaluate_circuit, outcome_cutoff
from payops_gateway.domain.engine_config import CircuitConfig
from payops_gateway.domain.models import CircuitState, ProviderCircuit, TransactionOutcome, TransactionStatus

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
CONFIG = CircuitConfig()


def outcomes(completed: int, failed: int, minutes_ago: float = 5, bank: str = "hdfc"):
    created_at = NOW - timedelta(minutes=minutes_ago)
    return [TransactionOutcome(bank, TransactionStatus.COMPLETED, created_at) for _ in range(completed)] + [
        TransactionOutcome(bank, TransactionStatus.FAILED, created_at) for _ in range(failed)
    ]


def test_closed_trips_when_failure_rate_reaches_threshold():
    circuit = evaluate_circuit("hdfc", outcomes(completed=2, failed=4), None, NOW, CONFIG)

    assert circuit.state == CircuitState.OPEN
    assert circuit.last_tripped_at == NOW
    assert circuit.sample_count == 6
    assert circuit.failure_count == 4
    assert round(circuit.failure_rate, 2) == 0.67


def test_exact_threshold_trips():
    circuit = evaluate_circuit("hdfc", outcomes(completed=7, failed=3), None, NOW, CONFIG)
    assert circuit.state == CircuitState.OPEN


def test_small_sample_never_trips():
    circuit = evaluate_circuit("hdfc", outcomes(completed=0, failed=4), None, NOW, CONFIG)

    assert circuit.state == CircuitState.CLOSED
    assert circuit.failure_rate == 1.0


def test_rejected_and_expired_count_as_failures():
    created_at = NOW - timedelta(minutes=1)
    observed = [
        TransactionOutcome("hdfc", TransactionStatus.REJECTED, created_at),
        TransactionOutcome("hdfc", TransactionStatus.EXPIRED, created_at),
        TransactionOutcome("hdfc", TransactionStatus.COMPLETED, created_at),
        TransactionOutcome("hdfc", TransactionStatus.COMPLETED, created_at),
        TransactionOutcome("hdfc", TransactionStatus.COMPLETED, created_at),
    ]
    circuit = evaluate_circuit("hdfc", observed, None, NOW, CONFIG)

    assert circuit.failure_count == 2
    assert circuit.state == CircuitState.OPEN


def test_outcomes_outside_window_are_ignored():
    circuit = evaluate_circuit("hdfc", outcomes(completed=0, failed=10, minutes_ago=20), None, NOW, CONFIG)

    assert circuit.state == CircuitState.CLOSED
    assert circuit.sample_count == 0


def test_open_stays_open_during_cooldown():
    tripped_at = NOW - timedelta(minutes=4)
    previous = ProviderCircuit("hdfc", state=CircuitState.OPEN, last_tripped_at=tripped_at)

    circuit = evaluate_circuit("hdfc", [], previous, NOW, CONFIG)

    assert circuit.state == CircuitState.OPEN
    assert circuit.last_tripped_at == tripped_at


def test_open_moves_to_half_open_after_cooldown():
    previous = ProviderCircuit(
        "hdfc", state=CircuitState.OPEN, last_tripped_at=NOW - timedelta(minutes=10), half_open_attempts=5
    )

    circuit = evaluate_circuit("hdfc", [], previous, NOW, CONFIG)

    assert circuit.state == CircuitState.HALF_OPEN
    assert circuit.half_open_at == NOW
    assert circuit.half_open_attempts == 0


def test_half_open_waits_for_test_attempts():
    previous = ProviderCircuit(
        "hdfc", state=CircuitState.HALF_OPEN, half_open_at=NOW - timedelta(minutes=2), half_open_attempts=1
    )

    circuit = evaluate_circuit("hdfc", outcomes(completed=0, failed=6, minutes_ago=1), previous, NOW, CONFIG)

    assert circuit.state == CircuitState.HALF_OPEN
    assert circuit.half_open_attempts == 1


def test_half_open_closes_when_tests_succeed():
    previous = ProviderCircuit(
        "hdfc", state=CircuitState.HALF_OPEN, half_open_at=NOW - timedelta(minutes=3), half_open_attempts=2
    )
    # Failures from before the breaker half-opened do not count against the tests
    observed = outcomes(completed=0, failed=5, minutes_ago=8) + outcomes(completed=2, failed=0, minutes_ago=2)

    circuit = evaluate_circuit("hdfc", observed, previous, NOW, CONFIG)

    assert circuit.state == CircuitState.CLOSED
    assert circuit.half_open_attempts == 0


def test_half_open_retrips_when_tests_fail():
    previous = ProviderCircuit(
        "hdfc",
        state=CircuitState.HALF_OPEN,
        last_tripped_at=NOW - timedelta(minutes=15),
        half_open_at=NOW - timedelta(minutes=3),
        half_open_attempts=2,
    )

    circuit = evaluate_circuit("hdfc", outcomes(completed=1, failed=1, minutes_ago=2), previous, NOW, CONFIG)

    assert circuit.state == CircuitState.OPEN
    assert circuit.last_tripped_at == NOW


def test_half_open_waits_for_pending_tests_until_cooldown():
    previous = ProviderCircuit(
        "hdfc", state=CircuitState.HALF_OPEN, half_open_at=NOW - timedelta(minutes=3), half_open_attempts=2
    )
    one_result = outcomes(completed=1, failed=0, minutes_ago=2)

    assert evaluate_circuit("hdfc", one_result, previous, NOW, CONFIG).state == CircuitState.HALF_OPEN

    later = NOW + timedelta(minutes=8)
    assert evaluate_circuit("hdfc", one_result, previous, later, CONFIG).state == CircuitState.CLOSED


def test_outcome_cutoff_reaches_back_to_half_open_start():
    half_open_at = NOW - timedelta(minutes=40)
    stored = [ProviderCircuit("hdfc", state=CircuitState.HALF_OPEN, half_open_at=half_open_at)]

    assert outcome_cutoff(stored, NOW, CONFIG) == half_open_at
    assert outcome_cutoff([], NOW, CONFIG) == NOW - timedelta(minutes=15)


def test_board_normalizes_bank_names_and_keeps_stored_banks():
    stored = [ProviderCircuit("icici", state=CircuitState.OPEN, last_tripped_at=NOW - timedelta(minutes=1))]
    observed = outcomes(completed=1, failed=5, bank="HDFC ")

    board = CircuitBoard.evaluate(observed, stored, NOW, CONFIG)

    assert sorted(c.bank_name for c in board.circuits) == ["hdfc", "icici"]
    assert board.get("Hdfc").state == CircuitState.OPEN
    assert board.status_summary() == "2 banks blocked"


def test_unknown_bank_is_available():
    board = CircuitBoard([], CONFIG)
    availability = board.is_available("never-seen")

    assert availability.available is True
    assert availability.state == CircuitState.CLOSED
    assert board.status_summary() == "all banks healthy"


def test_half_open_availability_tracks_test_budget():
    board = CircuitBoard(
        [ProviderCircuit("axis", state=CircuitState.HALF_OPEN, half_open_at=NOW, half_open_attempts=1)], CONFIG
    )

    assert board.is_available("axis").available is True
    assert board.consume_test_attempt("axis") is True
    assert board.is_available("axis").available is False
    assert "exhausted" in board.is_available("axis").reason
    assert board.consume_test_attempt("hdfc") is False
