"""
Dispute state machine and settlement table.

    pending ──route──> routed ──respond──> counterparty_accepted ──decide──> adjudicator_approved
       │                                   counterparty_rejected            adjudicator_rejected
       └──no match──> unroutable

Balances move only on the adjudicator's decision. The effect of each of the eight
(type, counter-party answer, decision) combinations is fixed in SETTLEMENT_TABLE.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, FrozenSet, Tuple

from payops_gateway.domain.exceptions import InvalidTransitionError
from payops_gateway.domain.models import (
    AdjudicatorDecision,
    CounterpartyAction,
    DeltaType,
    DisputeStatus,
    DisputeType,
    SettlementPlan,
)

TRANSITIONS: Dict[DisputeStatus, FrozenSet[DisputeStatus]] = {
    DisputeStatus.PENDING: frozenset({DisputeStatus.ROUTED, DisputeStatus.UNROUTABLE}),
    DisputeStatus.ROUTED: frozenset({DisputeStatus.COUNTERPARTY_ACCEPTED, DisputeStatus.COUNTERPARTY_REJECTED}),
    DisputeStatus.COUNTERPARTY_ACCEPTED: frozenset(
        {DisputeStatus.ADJUDICATOR_APPROVED, DisputeStatus.ADJUDICATOR_REJECTED}
    ),
    DisputeStatus.COUNTERPARTY_REJECTED: frozenset(
        {DisputeStatus.ADJUDICATOR_APPROVED, DisputeStatus.ADJUDICATOR_REJECTED}
    ),
    DisputeStatus.UNROUTABLE: frozenset(),
    DisputeStatus.ADJUDICATOR_APPROVED: frozenset(),
    DisputeStatus.ADJUDICATOR_REJECTED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[DisputeStatus] = frozenset(
    {DisputeStatus.ADJUDICATOR_APPROVED, DisputeStatus.ADJUDICATOR_REJECTED}
)

# What "accept" and "reject" mean depends on the direction of the payment.
COUNTERPARTY_ACTIONS: Dict[Tuple[DisputeType, CounterpartyAction], Tuple[DisputeStatus, str]] = {
    (DisputeType.INCOMING, CounterpartyAction.ACCEPT): (
        DisputeStatus.COUNTERPARTY_ACCEPTED,
        "Counter-party confirmed the payment was received",
    ),
    (DisputeType.INCOMING, CounterpartyAction.REJECT): (
        DisputeStatus.COUNTERPARTY_REJECTED,
        "Counter-party says the payment was NOT received",
    ),
    (DisputeType.OUTGOING, CounterpartyAction.ACCEPT): (
        DisputeStatus.COUNTERPARTY_ACCEPTED,
        "Counter-party confirms the payout was NOT sent",
    ),
    (DisputeType.OUTGOING, CounterpartyAction.REJECT): (
        DisputeStatus.COUNTERPARTY_REJECTED,
        "Counter-party says the payout WAS sent and provided proof",
    ),
}

_APPROVE = AdjudicatorDecision.APPROVE
_REJECT = AdjudicatorDecision.REJECT
_ACCEPTED = DisputeStatus.COUNTERPARTY_ACCEPTED
_REJECTED = DisputeStatus.COUNTERPARTY_REJECTED

SETTLEMENT_TABLE: Dict[Tuple[DisputeType, DisputeStatus, AdjudicatorDecision], SettlementPlan] = {
    (DisputeType.INCOMING, _ACCEPTED, _APPROVE): SettlementPlan(
        resolution="Payment confirmed. Counter-party received the payment. Full amount credited to counter-party.",
        delta_type=DeltaType.CREDIT,
        reason="Payment receipt confirmed by counter-party and approved by adjudicator",
    ),
    (DisputeType.INCOMING, _ACCEPTED, _REJECT): SettlementPlan(
        resolution="Adjudicator rejected despite counter-party acceptance. No balance change.",
    ),
    (DisputeType.INCOMING, _REJECTED, _APPROVE): SettlementPlan(
        resolution="Non-receipt confirmed. Counter-party claim upheld. No balance change.",
    ),
    (DisputeType.INCOMING, _REJECTED, _REJECT): SettlementPlan(
        resolution="Adjudicator overrode counter-party rejection. Payment was received. Full amount credited to counter-party.",
        delta_type=DeltaType.CREDIT,
        reason="Adjudicator overrode counter-party rejection: payment was received",
    ),
    (DisputeType.OUTGOING, _ACCEPTED, _APPROVE): SettlementPlan(
        resolution="Payout was NOT sent. Counter-party debited amount plus commission.",
        delta_type=DeltaType.DEBIT,
        reason="Counter-party admitted payout not sent: amount plus commission debited",
        include_commission=True,
    ),
    (DisputeType.OUTGOING, _ACCEPTED, _REJECT): SettlementPlan(
        resolution="Adjudicator rejected despite counter-party admission. No balance change.",
    ),
    (DisputeType.OUTGOING, _REJECTED, _APPROVE): SettlementPlan(
        resolution="Payout was sent. Counter-party proof accepted. No balance change.",
    ),
    (DisputeType.OUTGOING, _REJECTED, _REJECT): SettlementPlan(
        resolution="Adjudicator rejected counter-party proof. Payout not confirmed. Counter-party debited amount plus commission.",
        delta_type=DeltaType.DEBIT,
        reason="Adjudicator rejected counter-party proof: amount plus commission debited",
        include_commission=True,
    ),
}

_CENT = Decimal("0.01")


def is_terminal(status: DisputeStatus) -> bool:
    return status in TERMINAL_STATUSES


def ensure_transition(current: DisputeStatus, target: DisputeStatus) -> None:
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move dispute from {current.value} to {target.value}")


def counterparty_transition(
    dispute_type: DisputeType,
    current: DisputeStatus,
    action: CounterpartyAction,
) -> Tuple[DisputeStatus, str]:
    """New status and human-readable description for a counter-party response"""
    target, description = COUNTERPARTY_ACTIONS[(dispute_type, action)]
    ensure_transition(current, target)
    return target, description


def adjudicator_transition(current: DisputeStatus, decision: AdjudicatorDecision) -> DisputeStatus:
    target = DisputeStatus.ADJUDICATOR_APPROVED if decision == _APPROVE else DisputeStatus.ADJUDICATOR_REJECTED
    ensure_transition(current, target)
    return target


def plan_settlement(
    dispute_type: DisputeType,
    counterparty_status: DisputeStatus,
    decision: AdjudicatorDecision,
) -> SettlementPlan:
    plan = SETTLEMENT_TABLE.get((dispute_type, counterparty_status, decision))
    if plan is None:
        raise InvalidTransitionError(
            f"No settlement defined for a {dispute_type.value} dispute in status {counterparty_status.value}"
        )
    return plan


def commission_for(amount: Decimal, rate_percent: Decimal) -> Decimal:
    return (amount * rate_percent / Decimal("100")).quantize(_CENT, rounding=ROUND_HALF_UP)
