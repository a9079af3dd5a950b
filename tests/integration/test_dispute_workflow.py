"""Integration tests for dispute routing and settlement"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from payops_gateway.domain.models import (
    AdjudicatorDecision,
    CounterpartyAction,
    DeltaType,
    DisputeStatus,
    RouteSource,
)
from payops_gateway.infrastructure.database.models import (
    BalanceChangeLog,
    Dispute,
    DisputeEventLog,
    Provider,
    RoutingLog,
)
from payops_gateway.services.disputes import DisputeWorkflow
from payops_gateway.utils.time_utils import utcnow


@pytest.fixture
def workflow(db: Session) -> DisputeWorkflow:
    return DisputeWorkflow(db)


def incoming(**fields):
    values = dict(
        type="incoming",
        amount=Decimal("5000"),
        claimant_principal_id="merchant-1",
        reason="Customer paid, order not credited",
    )
    values.update(fields)
    return values


def outgoing(**fields):
    return incoming(type="outgoing", reason="Payout never arrived", **fields)


class TestRouting:
    def test_standing_mapping_beats_endpoint_pool(self, db, workflow, seed):
        mapped = seed.provider(name="Mapped")
        pooled = seed.provider(name="Pooled")
        seed.standing_mapping(mapped, "shop@upi")
        seed.endpoint(pooled, handle="shop@upi")

        outcome = workflow.create(**incoming(payment_handle="shop@upi"))

        assert outcome.success is True
        assert outcome.status == DisputeStatus.ROUTED
        assert outcome.responsible_party_id == mapped.id
        assert outcome.route_source == RouteSource.STANDING_MAPPING
        log = db.query(RoutingLog).one()
        assert log.source == "standing_mapping"
        assert log.success is True

    def test_standing_mapping_prefers_non_deleted_record(self, workflow, seed):
        old = seed.provider(name="Old owner")
        current = seed.provider(name="Current owner")
        seed.standing_mapping(old, "shop@upi", is_deleted=True, created_at=utcnow() - timedelta(days=30))
        seed.standing_mapping(current, "shop@upi")

        outcome = workflow.create(**incoming(payment_handle="shop@upi"))

        assert outcome.responsible_party_id == current.id

    def test_deleted_mapping_used_when_nothing_else_exists(self, workflow, seed):
        old = seed.provider(name="Old owner")
        seed.standing_mapping(old, "shop@upi", is_deleted=True)

        outcome = workflow.create(**incoming(payment_handle="shop@upi"))

        assert outcome.responsible_party_id == old.id

    def test_live_mapping_wins_over_many_older_deleted_ones(self, workflow, seed):
        old = seed.provider(name="Old owner")
        current = seed.provider(name="Current owner")
        for days in range(30, 36):
            seed.standing_mapping(old, "shop@upi", is_deleted=True, created_at=utcnow() - timedelta(days=days))
        seed.standing_mapping(current, "shop@upi")

        outcome = workflow.create(**incoming(payment_handle="shop@upi"))

        assert outcome.route_source == RouteSource.STANDING_MAPPING
        assert outcome.responsible_party_id == current.id

    def test_utr_given_as_transaction_reference(self, workflow, seed):
        provider = seed.provider()
        seed.transaction(seed.endpoint(provider), utr="UTR999")

        outcome = workflow.create(**incoming(transaction_reference="UTR999"))

        assert outcome.status == DisputeStatus.ROUTED
        assert outcome.route_source == RouteSource.SETTLEMENT_REFERENCE
        assert outcome.responsible_party_id == provider.id

    def test_transaction_id_and_settlement_reference(self, workflow, seed):
        provider = seed.provider()
        endpoint = seed.endpoint(provider)
        transaction = seed.transaction(endpoint, utr="UTR123456")

        by_id = workflow.create(**incoming(transaction_reference=transaction.id))
        by_utr = workflow.create(**incoming(settlement_reference="UTR123456"))

        assert by_id.route_source == RouteSource.TRANSACTION_ID
        assert by_utr.route_source == RouteSource.SETTLEMENT_REFERENCE
        assert by_id.responsible_party_id == by_utr.responsible_party_id == provider.id

    def test_endpoint_pool_is_last_incoming_resort(self, workflow, seed):
        provider = seed.provider()
        seed.endpoint(provider, handle="pool@upi")

        outcome = workflow.create(**incoming(payment_handle="pool@upi", transaction_reference="missing"))

        assert outcome.route_source == RouteSource.ENDPOINT_POOL

    def test_pre_assigned_party_is_trusted_only_if_it_exists(self, workflow, seed):
        assigned = seed.provider(name="Assigned")
        mapped = seed.provider(name="Mapped")
        seed.standing_mapping(mapped, "shop@upi")

        trusted = workflow.create(**incoming(responsible_party_id=assigned.id, payment_handle="shop@upi"))
        unknown = workflow.create(**incoming(responsible_party_id="ghost", payment_handle="shop@upi"))

        assert trusted.route_source == RouteSource.PRE_ASSIGNED
        assert trusted.responsible_party_id == assigned.id
        assert unknown.route_source == RouteSource.STANDING_MAPPING
        assert unknown.responsible_party_id == mapped.id

    def test_outgoing_routes_by_payout_id_then_order_reference(self, workflow, seed):
        provider = seed.provider()
        payout = seed.payout(provider, order_reference="ORD-77")

        by_id = workflow.create(**outgoing(transaction_reference=payout.id))
        by_order = workflow.create(**outgoing(order_reference="ORD-77"))
        by_order_in_reference = workflow.create(**outgoing(transaction_reference="ORD-77"))

        assert by_id.route_source == RouteSource.PAYOUT_ID
        assert by_order.route_source == RouteSource.PAYOUT_ORDER_REFERENCE
        assert by_order_in_reference.route_source == RouteSource.PAYOUT_ORDER_REFERENCE
        assert by_order.responsible_party_id == provider.id

    def test_unroutable_dispute_is_parked_and_logged(self, db, workflow):
        outcome = workflow.create(**incoming(payment_handle="nobody@upi"))

        assert outcome.success is True
        assert outcome.status == DisputeStatus.UNROUTABLE
        dispute = db.get(Dispute, outcome.dispute_id)
        assert dispute.status == "unroutable"
        assert dispute.responsible_party_id is None
        log = db.query(RoutingLog).one()
        assert log.success is False
        assert log.provider_id is None
        assert [d.id for d in workflow.list_unroutable()] == [outcome.dispute_id]

    def test_manual_routing_when_auto_route_disabled(self, workflow, seed):
        seed.config("dispute_engine", {"enable_auto_route": False})
        provider = seed.provider()
        seed.standing_mapping(provider, "shop@upi")

        created = workflow.create(**incoming(payment_handle="shop@upi"))
        assert created.status == DisputeStatus.PENDING

        routed = workflow.route(created.dispute_id)
        assert routed.status == DisputeStatus.ROUTED

        again = workflow.route(created.dispute_id)
        assert again.success is False
        assert again.error_code == "INVALID_TRANSITION"

    def test_logging_flag_disables_routing_log(self, db, workflow, seed):
        seed.config("dispute_engine", {"enable_logging": False})
        seed.standing_mapping(seed.provider(), "shop@upi")

        workflow.create(**incoming(payment_handle="shop@upi"))

        assert db.query(RoutingLog).count() == 0


class TestSettlement:
    def routed(self, workflow, seed, dispute_fields, **provider_fields):
        provider = seed.provider(**provider_fields)
        seed.standing_mapping(provider, "shop@upi")
        payout = seed.payout(provider, order_reference="ORD-1")
        if dispute_fields["type"] == "incoming":
            dispute_fields["payment_handle"] = "shop@upi"
        else:
            dispute_fields["order_reference"] = payout.order_reference
        outcome = workflow.create(**dispute_fields)
        assert outcome.status == DisputeStatus.ROUTED
        return provider, outcome.dispute_id

    def test_incoming_accept_approve_credits_full_amount(self, db, workflow, seed):
        provider, dispute_id = self.routed(workflow, seed, incoming(), balance=Decimal("20000"))

        response = workflow.respond(dispute_id, CounterpartyAction.ACCEPT, responder_id="agent-7")
        outcome = workflow.resolve(dispute_id, AdjudicatorDecision.APPROVE, adjudicator_id="admin-1")

        assert response.status == DisputeStatus.COUNTERPARTY_ACCEPTED
        assert outcome.status == DisputeStatus.ADJUDICATOR_APPROVED
        assert "credited" in outcome.resolution
        [change] = outcome.balance_changes
        assert change.delta_type == DeltaType.CREDIT
        assert change.amount == Decimal("5000.00")
        assert change.balance_before == Decimal("20000.00")
        assert change.balance_after == Decimal("25000.00")
        assert db.get(Provider, provider.id).balance == Decimal("25000.00")
        assert db.query(DisputeEventLog).count() == 2

    def test_outgoing_debit_includes_provider_commission(self, db, workflow, seed):
        provider, dispute_id = self.routed(
            workflow, seed, outgoing(amount=Decimal("10000")), balance=Decimal("50000"), commission_rate=Decimal("2")
        )

        workflow.respond(dispute_id, CounterpartyAction.ACCEPT)
        outcome = workflow.resolve(dispute_id, AdjudicatorDecision.APPROVE)

        [change] = outcome.balance_changes
        assert change.delta_type == DeltaType.DEBIT
        assert change.amount == Decimal("10200.00")
        assert change.breakdown == {"amount": "10000.00", "commission": "200.00", "commission_rate": "2.000"}
        assert change.balance_after == change.balance_before + change.delta
        assert db.get(Provider, provider.id).balance == Decimal("39800.00")

    def test_default_commission_rate_applies(self, workflow, seed):
        _, dispute_id = self.routed(workflow, seed, outgoing(amount=Decimal("10000")))

        workflow.respond(dispute_id, CounterpartyAction.REJECT, proof_reference="proof://slip-1")
        outcome = workflow.resolve(dispute_id, AdjudicatorDecision.REJECT)

        assert outcome.balance_changes[0].amount == Decimal("10100.00")

    @pytest.mark.parametrize(
        "dispute_fields, action, decision",
        [
            (incoming(), CounterpartyAction.ACCEPT, AdjudicatorDecision.REJECT),
            (incoming(), CounterpartyAction.REJECT, AdjudicatorDecision.APPROVE),
            (outgoing(), CounterpartyAction.ACCEPT, AdjudicatorDecision.REJECT),
            (outgoing(), CounterpartyAction.REJECT, AdjudicatorDecision.APPROVE),
        ],
    )
    def test_combinations_without_balance_change(self, db, workflow, seed, dispute_fields, action, decision):
        provider, dispute_id = self.routed(workflow, seed, dict(dispute_fields), balance=Decimal("20000"))

        workflow.respond(dispute_id, action)
        outcome = workflow.resolve(dispute_id, decision)

        assert outcome.success is True
        assert outcome.balance_changes == []
        assert "No balance change" in outcome.resolution
        assert db.query(BalanceChangeLog).count() == 0
        assert db.get(Provider, provider.id).balance == Decimal("20000.00")

    def test_second_decision_is_rejected_without_side_effects(self, db, workflow, seed):
        provider, dispute_id = self.routed(workflow, seed, incoming(), balance=Decimal("20000"))
        workflow.respond(dispute_id, CounterpartyAction.ACCEPT)

        first = workflow.resolve(dispute_id, AdjudicatorDecision.APPROVE)
        second = workflow.resolve(dispute_id, AdjudicatorDecision.APPROVE)

        assert first.success is True
        assert second.success is False
        assert second.error_code == "INVALID_TRANSITION"
        assert db.query(BalanceChangeLog).filter(BalanceChangeLog.dispute_id == dispute_id).count() == 1
        assert db.get(Provider, provider.id).balance == Decimal("25000.00")

    def test_response_requires_routed_dispute(self, workflow, seed):
        seed.config("dispute_engine", {"enable_auto_route": False})
        created = workflow.create(**incoming())

        outcome = workflow.respond(created.dispute_id, CounterpartyAction.ACCEPT)

        assert outcome.success is False
        assert outcome.error_code == "INVALID_TRANSITION"

    def test_decision_before_response_is_rejected(self, workflow, seed):
        _, dispute_id = self.routed(workflow, seed, incoming())

        outcome = workflow.resolve(dispute_id, AdjudicatorDecision.APPROVE)

        assert outcome.error_code == "INVALID_TRANSITION"

    def test_unknown_dispute(self, workflow):
        outcome = workflow.respond("missing", CounterpartyAction.ACCEPT)

        assert outcome.success is False
        assert outcome.error_code == "NOT_FOUND"

    def test_stats(self, workflow, seed):
        self.routed(workflow, seed, incoming(amount=Decimal("1000")))
        workflow.create(**outgoing(amount=Decimal("2500"), order_reference="nothing"))

        stats = workflow.stats()

        assert stats["total"] == 2
        assert stats["by_status"]["routed"] == 1
        assert stats["by_status"]["unroutable"] == 1
        assert stats["by_type"] == {"incoming": 1, "outgoing": 1}
        assert stats["total_amount"] == Decimal("3500.00")
