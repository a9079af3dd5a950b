"""Event sink that appends engine events to the log tables and the JSON log stream"""

from sqlalchemy.orm import Session

from payops_gateway.domain.events import DisputeActionEvent, RoutingEvent, SelectionEvent
from payops_gateway.infrastructure.database.repositories import LogRepository
from payops_gateway.infrastructure.observability.logging import (
    log_dispute_action,
    log_routing,
    log_selection,
)
from payops_gateway.utils.time_utils import utcnow


class DatabaseEventSink:
    """
    Writes each event into the caller's session, so log rows commit or roll back
    together with the state change they describe.
    """

    def __init__(self, db: Session):
        self.logs = LogRepository(db)

    def selection(self, event: SelectionEvent) -> None:
        self.logs.add_selection_log(
            requesting_principal_id=event.requesting_principal_id,
            amount=event.amount,
            amount_tier=event.tier,
            success=event.success,
            endpoint_id=event.endpoint_id,
            provider_id=event.provider_id,
            bank_name=event.bank_name,
            tier_match=event.tier_match,
            score=event.score,
            score_breakdown=event.score_breakdown,
            attempts=event.attempts,
            candidates_considered=event.candidates_considered,
            candidates_qualified=event.candidates_qualified,
            circuit_status=event.circuit_status_summary,
            error_code=event.error_code,
            created_at=event.occurred_at or utcnow(),
        )
        log_selection(
            event.request_id,
            event.requesting_principal_id,
            event.success,
            event.tier,
            event.attempts,
            endpoint_id=event.endpoint_id,
            score=event.score,
            error_code=event.error_code,
            circuit_status=event.circuit_status_summary,
        )

    def routing(self, event: RoutingEvent) -> None:
        self.logs.add_routing_log(
            dispute_id=event.dispute_id,
            dispute_type=event.dispute_type,
            provider_id=event.provider_id,
            provider_name=event.provider_name,
            source=event.source,
            reason=event.reason,
            success=event.success,
            created_at=event.occurred_at or utcnow(),
        )
        log_routing(event.request_id, event.dispute_id, event.success, event.source, event.provider_id, event.reason)

    def dispute_action(self, event: DisputeActionEvent) -> None:
        self.logs.add_dispute_event(
            dispute_id=event.dispute_id,
            kind=event.kind,
            action=event.action,
            from_status=event.from_status,
            to_status=event.to_status,
            description=event.description,
            actor_id=event.actor_id,
            created_at=event.occurred_at or utcnow(),
        )
        delta = str(event.balance_changes[0].delta) if event.balance_changes else None
        log_dispute_action(
            event.request_id,
            event.dispute_id,
            event.kind,
            event.action,
            event.from_status,
            event.to_status,
            balance_delta=delta,
        )
