"""Dispute endpoints - creation, routing, counter-party response and adjudication"""

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse

from payops_gateway.api.dependencies import get_dispute_workflow, get_notifier, get_request_id
from payops_gateway.api.errors import error_status
from payops_gateway.api.v1.schemas import (
    AdjudicatorDecisionRequest,
    BalanceChangeSchema,
    CounterpartyResponseRequest,
    DisputeCreateRequest,
    DisputeListResponse,
    DisputeOutcomeResponse,
    DisputeResponse,
    DisputeStatsResponse,
)
from payops_gateway.domain.models import DisputeOutcome
from payops_gateway.infrastructure.clients.notifier import DisputeNotifier
from payops_gateway.services.disputes import DisputeWorkflow
from payops_gateway.utils.time_utils import utcnow

router = APIRouter()


def _to_response(outcome: DisputeOutcome) -> DisputeOutcomeResponse:
    return DisputeOutcomeResponse(
        success=outcome.success,
        dispute_id=outcome.dispute_id,
        status=outcome.status.value if outcome.status else None,
        message=outcome.message,
        responsible_party_id=outcome.responsible_party_id,
        route_source=outcome.route_source.value if outcome.route_source else None,
        resolution=outcome.resolution,
        balance_changes=[
            BalanceChangeSchema(
                entity_type=c.entity_type,
                entity_id=c.entity_id,
                delta_type=c.delta_type.value,
                amount=c.amount,
                balance_before=c.balance_before,
                balance_after=c.balance_after,
                reason=c.reason,
                breakdown=c.breakdown,
            )
            for c in outcome.balance_changes
        ],
        error_code=outcome.error_code,
    )


def _respond(outcome: DisputeOutcome, success_status: int = 200):
    body = _to_response(outcome)
    if outcome.success:
        return JSONResponse(status_code=success_status, content=body.model_dump(mode="json"))
    return JSONResponse(status_code=error_status(outcome.error_code), content=body.model_dump(mode="json"))


def _notify(
    background_tasks: BackgroundTasks,
    notifier: DisputeNotifier,
    outcome: DisputeOutcome,
    event: str,
    request_id: str,
) -> None:
    if not outcome.success or not notifier.enabled:
        return
    payload: Dict[str, Any] = {
        "event": event,
        "dispute_id": outcome.dispute_id,
        "status": outcome.status.value if outcome.status else None,
        "responsible_party_id": outcome.responsible_party_id,
        "balance_changes": [
            {"delta_type": c.delta_type.value, "amount": str(c.amount), "entity_id": c.entity_id}
            for c in outcome.balance_changes
        ],
        "request_id": request_id,
        "occurred_at": utcnow().isoformat(),
    }
    background_tasks.add_task(notifier.send_status_change, payload)


@router.post("/disputes", response_model=DisputeOutcomeResponse, status_code=201)
def create_dispute(
    request_body: DisputeCreateRequest,
    request: Request,
    workflow: DisputeWorkflow = Depends(get_dispute_workflow),
):
    """Raise a dispute; it is routed immediately unless auto-routing is switched off"""
    fields = request_body.model_dump()
    fields["type"] = request_body.type.value
    outcome = workflow.create(request_id=get_request_id(request), **fields)
    return _respond(outcome, success_status=201)


@router.get("/disputes/unroutable", response_model=DisputeListResponse)
def list_unroutable(
    limit: int = Query(50, ge=1, le=500),
    workflow: DisputeWorkflow = Depends(get_dispute_workflow),
):
    """Operator queue of disputes no responsible party could be found for"""
    return DisputeListResponse(
        disputes=[DisputeResponse.model_validate(d) for d in workflow.list_unroutable(limit)]
    )


@router.get("/disputes/stats", response_model=DisputeStatsResponse)
def dispute_stats(workflow: DisputeWorkflow = Depends(get_dispute_workflow)):
    return DisputeStatsResponse(**workflow.stats())


@router.get("/disputes/{dispute_id}", response_model=DisputeResponse)
def get_dispute(dispute_id: str, workflow: DisputeWorkflow = Depends(get_dispute_workflow)):
    return DisputeResponse.model_validate(workflow.get(dispute_id))


@router.post("/disputes/{dispute_id}/route", response_model=DisputeOutcomeResponse)
def route_dispute(
    dispute_id: str,
    request: Request,
    workflow: DisputeWorkflow = Depends(get_dispute_workflow),
):
    """Route a pending dispute by hand"""
    return _respond(workflow.route(dispute_id, request_id=get_request_id(request)))


@router.post("/disputes/{dispute_id}/response", response_model=DisputeOutcomeResponse)
def counterparty_response(
    dispute_id: str,
    request_body: CounterpartyResponseRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    workflow: DisputeWorkflow = Depends(get_dispute_workflow),
    notifier: DisputeNotifier = Depends(get_notifier),
):
    request_id = get_request_id(request)
    outcome = workflow.respond(
        dispute_id,
        request_body.action,
        note=request_body.note,
        proof_reference=request_body.proof_reference,
        responder_id=request_body.responder_id,
        request_id=request_id,
    )
    _notify(background_tasks, notifier, outcome, "DISPUTE_COUNTERPARTY_RESPONDED", request_id)
    return _respond(outcome)


@router.post("/disputes/{dispute_id}/decision", response_model=DisputeOutcomeResponse)
def adjudicator_decision(
    dispute_id: str,
    request_body: AdjudicatorDecisionRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    workflow: DisputeWorkflow = Depends(get_dispute_workflow),
    notifier: DisputeNotifier = Depends(get_notifier),
):
    """
    Resolve a dispute and apply its settlement.

    A repeated decision for the same dispute returns 409 and leaves balances untouched.
    """
    request_id = get_request_id(request)
    outcome = workflow.resolve(
        dispute_id,
        request_body.decision,
        adjudicator_id=request_body.adjudicator_id,
        note=request_body.note,
        request_id=request_id,
    )
    _notify(background_tasks, notifier, outcome, "DISPUTE_RESOLVED", request_id)
    return _respond(outcome)
