"""POST /v1/selection - collection endpoint selection"""

from fastapi import APIRouter, Depends, Request

from payops_gateway.api.dependencies import get_request_id, get_selection_service
from payops_gateway.api.v1.schemas import SelectionRequest, SelectionResponse
from payops_gateway.services.selection import EndpointSelectionService

router = APIRouter()


@router.post("/selection", response_model=SelectionResponse)
def select_endpoint(
    request_body: SelectionRequest,
    request: Request,
    service: EndpointSelectionService = Depends(get_selection_service),
):
    """
    Pick a collection endpoint for an incoming payment.

    Always answers 200; `success=false` with an `error_code` means no endpoint
    could be offered right now.
    """
    result = service.select(
        request_body.amount,
        request_body.requesting_principal_id,
        request_id=get_request_id(request),
    )

    return SelectionResponse(
        success=result.success,
        endpoint_id=result.endpoint_id,
        holder_name=result.holder_name,
        provider_id=result.provider_id,
        provider_name=result.provider_name,
        score=result.score,
        attempts=result.attempts,
        tier=result.tier,
        circuit_status_summary=result.circuit_status_summary,
        error_code=result.error_code.value if result.error_code else None,
        error=result.error,
    )
