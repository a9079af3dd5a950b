"""POST /v1/transactions/{id}/outcome - terminal outcome for an incoming payment"""

from fastapi import APIRouter, Depends, Request

from payops_gateway.api.dependencies import get_outcome_service, get_request_id
from payops_gateway.api.v1.schemas import OutcomeRequest, TransactionResponse
from payops_gateway.services.outcomes import TransactionOutcomeService

router = APIRouter()


@router.post("/transactions/{transaction_id}/outcome", response_model=TransactionResponse)
def record_outcome(
    transaction_id: str,
    request_body: OutcomeRequest,
    request: Request,
    service: TransactionOutcomeService = Depends(get_outcome_service),
):
    transaction = service.record(transaction_id, request_body.status, request_id=get_request_id(request))
    return TransactionResponse.model_validate(transaction)
