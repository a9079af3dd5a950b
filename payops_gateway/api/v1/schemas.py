"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from payops_gateway.domain.models import (
    AdjudicatorDecision,
    CounterpartyAction,
    DisputeType,
    TransactionStatus,
)


class SelectionRequest(BaseModel):
    """Request body for POST /v1/selection"""

    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2, description="Payment amount")
    requesting_principal_id: str = Field(..., min_length=1, description="Merchant asking for an endpoint")


class SelectionResponse(BaseModel):
    """Response for POST /v1/selection"""

    success: bool
    endpoint_id: Optional[str] = None
    holder_name: Optional[str] = None
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    score: Optional[float] = None
    attempts: Optional[int] = None
    tier: Optional[str] = None
    circuit_status_summary: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


class DisputeCreateRequest(BaseModel):
    """Request body for POST /v1/disputes"""

    type: DisputeType
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    claimant_principal_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    responsible_party_id: Optional[str] = None
    payment_handle: Optional[str] = None
    order_reference: Optional[str] = None
    transaction_reference: Optional[str] = None
    settlement_reference: Optional[str] = None
    evidence_reference: Optional[str] = None


class CounterpartyResponseRequest(BaseModel):
    """Request body for POST /v1/disputes/{id}/response"""

    action: CounterpartyAction
    note: Optional[str] = None
    proof_reference: Optional[str] = None
    responder_id: Optional[str] = None


class AdjudicatorDecisionRequest(BaseModel):
    """Request body for POST /v1/disputes/{id}/decision"""

    decision: AdjudicatorDecision
    adjudicator_id: Optional[str] = None
    note: Optional[str] = None


class BalanceChangeSchema(BaseModel):
    entity_type: str
    entity_id: str
    delta_type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reason: str
    breakdown: Dict[str, str] = {}


class DisputeOutcomeResponse(BaseModel):
    """Typed result of a dispute operation"""

    success: bool
    dispute_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    responsible_party_id: Optional[str] = None
    route_source: Optional[str] = None
    resolution: Optional[str] = None
    balance_changes: List[BalanceChangeSchema] = []
    error_code: Optional[str] = None


class DisputeResponse(BaseModel):
    """Response for GET /v1/disputes/{id}"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    status: str
    amount: Decimal
    claimant_principal_id: str
    responsible_party_id: Optional[str] = None
    payment_handle: Optional[str] = None
    order_reference: Optional[str] = None
    transaction_reference: Optional[str] = None
    settlement_reference: Optional[str] = None
    reason: str
    evidence_reference: Optional[str] = None
    route_source: Optional[str] = None
    route_reason: Optional[str] = None
    routed_at: Optional[datetime] = None
    counterparty_action: Optional[str] = None
    counterparty_note: Optional[str] = None
    counterparty_proof_reference: Optional[str] = None
    counterparty_responded_at: Optional[datetime] = None
    adjudicator_id: Optional[str] = None
    adjudicator_note: Optional[str] = None
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class DisputeListResponse(BaseModel):
    disputes: List[DisputeResponse]


class DisputeStatsResponse(BaseModel):
    """Response for GET /v1/disputes/stats"""

    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    total_amount: Decimal


class CircuitSchema(BaseModel):
    bank_name: str
    state: str
    failure_rate: float
    sample_count: int
    failure_count: int
    last_tripped_at: Optional[datetime] = None
    half_open_at: Optional[datetime] = None
    half_open_attempts: int


class CircuitListResponse(BaseModel):
    """Response for GET /v1/circuits"""

    circuits: List[CircuitSchema]
    summary: str


class OutcomeRequest(BaseModel):
    """Request body for POST /v1/transactions/{id}/outcome"""

    status: TransactionStatus


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    endpoint_id: Optional[str] = None
    amount: Decimal
    status: str
    completed_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error_code: str
    message: str
