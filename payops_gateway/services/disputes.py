"""Dispute settlement workflow - creation, routing, counter-party response and adjudication"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from payops_gateway.domain.disputes import (
    adjudicator_transition,
    commission_for,
    counterparty_transition,
    plan_settlement,
)
from payops_gateway.domain.engine_config import DisputeConfig, merge_dispute_config
from payops_gateway.domain.events import DisputeActionEvent, EventSink, RoutingEvent
from payops_gateway.domain.exceptions import (
    DomainException,
    InvalidTransitionError,
    NotFoundError,
    RoutingFailureError,
)
from payops_gateway.domain.models import (
    AdjudicatorDecision,
    BalanceChange,
    CounterpartyAction,
    DisputeOutcome,
    DisputeStatus,
    DisputeType,
)
from payops_gateway.infrastructure.database.models import Dispute
from payops_gateway.infrastructure.database.repositories import (
    ConfigRepository,
    DisputeRepository,
    ProviderRepository,
)
from payops_gateway.infrastructure.events import DatabaseEventSink
from payops_gateway.infrastructure.observability.metrics import (
    balance_adjustment_counter,
    resolution_counter,
    routing_counter,
)
from payops_gateway.services.routing import DisputeRouter
from payops_gateway.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class DisputeWorkflow:
    """
    Drives a dispute through its lifecycle.

    Every public operation runs in one database transaction and returns a DisputeOutcome.
    Domain errors roll the transaction back and come back as a failed outcome carrying
    the error code; anything else is rolled back and re-raised.
    """

    def __init__(
        self,
        db: Session,
        events: Optional[EventSink] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.events = events if events is not None else DatabaseEventSink(db)
        self.clock = clock
        self.disputes = DisputeRepository(db)
        self.providers = ProviderRepository(db)
        self.router = DisputeRouter(db)
        self.config_repo = ConfigRepository(db)

    def load_config(self) -> DisputeConfig:
        return merge_dispute_config(self.config_repo.get("dispute_engine"))

    def create(self, request_id: Optional[str] = None, **fields: Any) -> DisputeOutcome:
        """Persist a new pending dispute and route it right away when auto-routing is on"""
        config = self.load_config()
        try:
            dispute = self.disputes.create(**fields)
            logger.info(
                "Dispute created",
                extra={"request_id": request_id, "dispute_id": dispute.id, "dispute_type": dispute.type},
            )
            if config.enable_auto_route:
                outcome = self._route(dispute, config, request_id)
            else:
                outcome = DisputeOutcome(
                    success=True,
                    dispute_id=dispute.id,
                    status=DisputeStatus.PENDING,
                    message="Dispute created, awaiting routing",
                )
            self.db.commit()
        except DomainException as e:
            return self._failed(e, fields.get("id"), request_id)
        except Exception:
            self.db.rollback()
            logger.exception("Dispute creation failed", extra={"request_id": request_id})
            raise

        # Creation succeeded even when no responsible party was found.
        outcome.success = True
        outcome.error_code = None
        return outcome

    def route(self, dispute_id: str, request_id: Optional[str] = None) -> DisputeOutcome:
        """Route a pending dispute; an unmatched dispute is parked as unroutable"""
        config = self.load_config()
        try:
            dispute = self._get(dispute_id)
            outcome = self._route(dispute, config, request_id)
            self.db.commit()
            return outcome
        except DomainException as e:
            return self._failed(e, dispute_id, request_id)
        except Exception:
            self.db.rollback()
            logger.exception("Dispute routing failed", extra={"request_id": request_id, "dispute_id": dispute_id})
            raise

    def respond(
        self,
        dispute_id: str,
        action: CounterpartyAction,
        note: Optional[str] = None,
        proof_reference: Optional[str] = None,
        responder_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> DisputeOutcome:
        """Record the responsible party's answer; valid only while the dispute is routed"""
        config = self.load_config()
        try:
            dispute = self._get(dispute_id)
            current = DisputeStatus(dispute.status)
            target, description = counterparty_transition(DisputeType(dispute.type), current, action)
            now = self.clock()
            self._transition(
                dispute,
                current,
                target,
                counterparty_action=action.value,
                counterparty_note=note,
                counterparty_proof_reference=proof_reference,
                counterparty_responded_at=now,
            )
            if config.enable_logging:
                self.events.dispute_action(
                    DisputeActionEvent(
                        dispute_id=dispute.id,
                        dispute_type=dispute.type,
                        kind="counterparty_response",
                        action=action.value,
                        from_status=current.value,
                        to_status=target.value,
                        description=description,
                        actor_id=responder_id,
                        request_id=request_id,
                        occurred_at=now,
                    )
                )
            self.db.commit()
        except DomainException as e:
            return self._failed(e, dispute_id, request_id)
        except Exception:
            self.db.rollback()
            logger.exception("Counter-party response failed", extra={"request_id": request_id, "dispute_id": dispute_id})
            raise

        return DisputeOutcome(
            success=True,
            dispute_id=dispute_id,
            status=target,
            message=description,
            responsible_party_id=dispute.responsible_party_id,
        )

    def resolve(
        self,
        dispute_id: str,
        decision: AdjudicatorDecision,
        adjudicator_id: Optional[str] = None,
        note: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> DisputeOutcome:
        """
        Apply the adjudicator's decision and its settlement.

        The status change is a compare-and-set on the counter-party status, so a repeated
        or concurrent decision matches no row and fails before any balance moves. The
        balance change and its log row share the transaction with the status change.
        """
        config = self.load_config()
        try:
            dispute = self._get(dispute_id)
            current = DisputeStatus(dispute.status)
            dispute_type = DisputeType(dispute.type)
            target = adjudicator_transition(current, decision)
            plan = plan_settlement(dispute_type, current, decision)
            now = self.clock()
            self._transition(
                dispute,
                current,
                target,
                adjudicator_id=adjudicator_id,
                adjudicator_note=note,
                resolution=plan.resolution,
                resolved_at=now,
            )

            changes: List[BalanceChange] = []
            if plan.delta_type is not None:
                changes.append(self._settle(dispute, plan.delta_type, plan.reason, plan.include_commission, config))

            if config.enable_logging:
                self.events.dispute_action(
                    DisputeActionEvent(
                        dispute_id=dispute.id,
                        dispute_type=dispute.type,
                        kind="adjudicator_decision",
                        action=decision.value,
                        from_status=current.value,
                        to_status=target.value,
                        description=plan.resolution,
                        actor_id=adjudicator_id,
                        balance_changes=changes,
                        request_id=request_id,
                        occurred_at=now,
                    )
                )
            self.db.commit()
        except DomainException as e:
            return self._failed(e, dispute_id, request_id)
        except Exception:
            self.db.rollback()
            logger.exception("Dispute resolution failed", extra={"request_id": request_id, "dispute_id": dispute_id})
            raise

        resolution_counter.labels(type=dispute_type.value, decision=decision.value).inc()
        for change in changes:
            balance_adjustment_counter.labels(delta_type=change.delta_type.value).inc()

        return DisputeOutcome(
            success=True,
            dispute_id=dispute_id,
            status=target,
            message=plan.resolution,
            responsible_party_id=dispute.responsible_party_id,
            resolution=plan.resolution,
            balance_changes=changes,
        )

    def get(self, dispute_id: str) -> Dispute:
        return self._get(dispute_id)

    def list_unroutable(self, limit: int = 50) -> List[Dispute]:
        return self.disputes.list_by_status(DisputeStatus.UNROUTABLE, limit)

    def stats(self) -> Dict[str, Any]:
        return self.disputes.stats()

    def _get(self, dispute_id: str) -> Dispute:
        dispute = self.disputes.get(dispute_id)
        if dispute is None:
            raise NotFoundError(f"Dispute {dispute_id} not found")
        return dispute

    def _transition(self, dispute: Dispute, current: DisputeStatus, target: DisputeStatus, **fields: Any) -> None:
        if not self.disputes.transition(dispute.id, current, target, self.clock(), **fields):
            raise InvalidTransitionError(
                f"Dispute {dispute.id} is no longer {current.value}; it was changed by another request"
            )

    def _route(self, dispute: Dispute, config: DisputeConfig, request_id: Optional[str]) -> DisputeOutcome:
        current = DisputeStatus(dispute.status)
        if current != DisputeStatus.PENDING:
            raise InvalidTransitionError(f"Only pending disputes can be routed, dispute is {current.value}")

        now = self.clock()
        try:
            match = self.router.find_responsible_party(dispute)
        except RoutingFailureError as e:
            self._transition(dispute, current, DisputeStatus.UNROUTABLE, route_reason=str(e), routed_at=now)
            routing_counter.labels(source="unroutable").inc()
            if config.enable_logging:
                self.events.routing(
                    RoutingEvent(
                        dispute_id=dispute.id,
                        dispute_type=dispute.type,
                        success=False,
                        reason=str(e),
                        request_id=request_id,
                        occurred_at=now,
                    )
                )
            return DisputeOutcome(
                success=False,
                dispute_id=dispute.id,
                status=DisputeStatus.UNROUTABLE,
                message=str(e),
                error_code=e.error_code,
            )

        self._transition(
            dispute,
            current,
            DisputeStatus.ROUTED,
            responsible_party_id=match.provider_id,
            route_source=match.source.value,
            route_reason=match.reason,
            routed_at=now,
        )
        routing_counter.labels(source=match.source.value).inc()
        if config.enable_logging:
            self.events.routing(
                RoutingEvent(
                    dispute_id=dispute.id,
                    dispute_type=dispute.type,
                    success=True,
                    reason=match.reason,
                    provider_id=match.provider_id,
                    provider_name=match.provider_name,
                    source=match.source.value,
                    request_id=request_id,
                    occurred_at=now,
                )
            )
        return DisputeOutcome(
            success=True,
            dispute_id=dispute.id,
            status=DisputeStatus.ROUTED,
            message=f"Routed to {match.provider_name}",
            responsible_party_id=match.provider_id,
            route_source=match.source,
        )

    def _settle(
        self,
        dispute: Dispute,
        delta_type,
        reason: Optional[str],
        include_commission: bool,
        config: DisputeConfig,
    ) -> BalanceChange:
        provider = self.providers.get(dispute.responsible_party_id) if dispute.responsible_party_id else None
        if provider is None:
            raise NotFoundError(f"Responsible provider for dispute {dispute.id} not found")

        amount = Decimal(str(dispute.amount))
        breakdown = {"amount": str(amount)}
        total = amount
        if include_commission:
            rate = (
                Decimal(str(provider.payout_commission_rate))
                if provider.payout_commission_rate is not None
                else config.default_commission_rate
            )
            commission = commission_for(amount, rate)
            breakdown["commission"] = str(commission)
            breakdown["commission_rate"] = str(rate)
            total = amount + commission

        return self.providers.apply_balance_change(
            provider.id,
            delta_type,
            total,
            reason or "Dispute settlement",
            breakdown=breakdown,
            dispute_id=dispute.id,
        )

    def _failed(self, error: DomainException, dispute_id: Optional[str], request_id: Optional[str]) -> DisputeOutcome:
        self.db.rollback()
        logger.warning(
            "Dispute operation rejected",
            extra={"request_id": request_id, "dispute_id": dispute_id, "error_code": error.error_code, "reason": str(error)},
        )
        return DisputeOutcome(
            success=False,
            dispute_id=dispute_id,
            message=str(error),
            error_code=error.error_code,
        )
