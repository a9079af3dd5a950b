"""GET /v1/circuits - stored per-bank circuit records"""

from fastapi import APIRouter, Depends

from payops_gateway.api.dependencies import get_selection_service
from payops_gateway.api.v1.schemas import CircuitListResponse, CircuitSchema
from payops_gateway.domain.circuit import CircuitBoard
from payops_gateway.services.selection import EndpointSelectionService

router = APIRouter()


@router.get("/circuits", response_model=CircuitListResponse)
def list_circuits(service: EndpointSelectionService = Depends(get_selection_service)):
    """Circuits as persisted by the last selection; no re-evaluation happens here"""
    circuits = sorted(service.circuits.load_all(), key=lambda c: c.bank_name)
    config = service.load_config()
    return CircuitListResponse(
        circuits=[
            CircuitSchema(
                bank_name=c.bank_name,
                state=c.state.value,
                failure_rate=c.failure_rate,
                sample_count=c.sample_count,
                failure_count=c.failure_count,
                last_tripped_at=c.last_tripped_at,
                half_open_at=c.half_open_at,
                half_open_attempts=c.half_open_attempts,
            )
            for c in circuits
        ],
        summary=CircuitBoard(circuits, config.circuit).status_summary(),
    )
