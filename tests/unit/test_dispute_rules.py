"""Unit tests for the dispute state machine and settlement table"""

from decimal import Decimal

import pytest

from payops_gateway.domain.disputes import (
    SETTLEMENT_TABLE,
    adjudicator_transition,
    commission_for,
    counterparty_transition,
    is_terminal,
    plan_settlement,
)
from payops_gateway.domain.exceptions import InvalidTransitionError
from payops_gateway.domain.models import (
    AdjudicatorDecision,
    CounterpartyAction,
    DeltaType,
    DisputeStatus,
    DisputeType,
)

ACCEPTED = DisputeStatus.COUNTERPARTY_ACCEPTED
REJECTED = DisputeStatus.COUNTERPARTY_REJECTED
APPROVE = AdjudicatorDecision.APPROVE
REJECT = AdjudicatorDecision.REJECT


def test_settlement_table_covers_every_combination():
    assert len(SETTLEMENT_TABLE) == 8
    for dispute_type in DisputeType:
        for status in (ACCEPTED, REJECTED):
            for decision in AdjudicatorDecision:
                assert (dispute_type, status, decision) in SETTLEMENT_TABLE


@pytest.mark.parametrize(
    "dispute_type, status, decision, delta_type, commission",
    [
        (DisputeType.INCOMING, ACCEPTED, APPROVE, DeltaType.CREDIT, False),
        (DisputeType.INCOMING, ACCEPTED, REJECT, None, False),
        (DisputeType.INCOMING, REJECTED, APPROVE, None, False),
        (DisputeType.INCOMING, REJECTED, REJECT, DeltaType.CREDIT, False),
        (DisputeType.OUTGOING, ACCEPTED, APPROVE, DeltaType.DEBIT, True),
        (DisputeType.OUTGOING, ACCEPTED, REJECT, None, False),
        (DisputeType.OUTGOING, REJECTED, APPROVE, None, False),
        (DisputeType.OUTGOING, REJECTED, REJECT, DeltaType.DEBIT, True),
    ],
)
def test_settlement_effects(dispute_type, status, decision, delta_type, commission):
    plan = plan_settlement(dispute_type, status, decision)

    assert plan.delta_type == delta_type
    assert plan.include_commission is commission
    assert plan.resolution
    if delta_type is None:
        assert "No balance change" in plan.resolution


def test_counterparty_description_depends_on_direction():
    _, incoming = counterparty_transition(DisputeType.INCOMING, DisputeStatus.ROUTED, CounterpartyAction.ACCEPT)
    _, outgoing = counterparty_transition(DisputeType.OUTGOING, DisputeStatus.ROUTED, CounterpartyAction.ACCEPT)

    assert "received" in incoming
    assert "NOT sent" in outgoing


def test_counterparty_response_requires_routed_dispute():
    target, _ = counterparty_transition(DisputeType.INCOMING, DisputeStatus.ROUTED, CounterpartyAction.REJECT)
    assert target == REJECTED

    for status in (DisputeStatus.PENDING, DisputeStatus.UNROUTABLE, ACCEPTED, DisputeStatus.ADJUDICATOR_APPROVED):
        with pytest.raises(InvalidTransitionError):
            counterparty_transition(DisputeType.INCOMING, status, CounterpartyAction.ACCEPT)


def test_adjudicator_decision_requires_counterparty_answer():
    assert adjudicator_transition(ACCEPTED, APPROVE) == DisputeStatus.ADJUDICATOR_APPROVED
    assert adjudicator_transition(REJECTED, REJECT) == DisputeStatus.ADJUDICATOR_REJECTED

    for status in (DisputeStatus.ROUTED, DisputeStatus.ADJUDICATOR_APPROVED, DisputeStatus.ADJUDICATOR_REJECTED):
        with pytest.raises(InvalidTransitionError):
            adjudicator_transition(status, APPROVE)


def test_plan_settlement_rejects_unanswered_dispute():
    with pytest.raises(InvalidTransitionError):
        plan_settlement(DisputeType.INCOMING, DisputeStatus.ROUTED, APPROVE)


def test_terminal_statuses():
    assert is_terminal(DisputeStatus.ADJUDICATOR_APPROVED)
    assert is_terminal(DisputeStatus.ADJUDICATOR_REJECTED)
    assert not is_terminal(DisputeStatus.UNROUTABLE)
    assert not is_terminal(ACCEPTED)


@pytest.mark.parametrize(
    "amount, rate, expected",
    [
        ("10000", "2", "200.00"),
        ("5000", "1.0", "50.00"),
        ("1234.57", "1.5", "18.52"),
        ("0.50", "1", "0.01"),
    ],
)
def test_commission_rounds_half_up_to_cents(amount, rate, expected):
    assert commission_for(Decimal(amount), Decimal(rate)) == Decimal(expected)
