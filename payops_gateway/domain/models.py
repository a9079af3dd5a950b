"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class AmountTier(str, Enum):
    """Amount buckets, declared in ascending order"""

    MICRO = "micro"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class TierMatch(str, Enum):
    EXACT = "exact"
    ADJACENT = "adjacent"
    MISMATCH = "mismatch"


class SelectionErrorCode(str, Enum):
    NO_ACTIVE_CANDIDATES = "NO_ACTIVE_CANDIDATES"
    ALL_CIRCUITS_OPEN = "ALL_CIRCUITS_OPEN"
    NO_MATCH = "NO_MATCH"
    CAPACITY_EXHAUSTED = "CAPACITY_EXHAUSTED"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.REJECTED, TransactionStatus.EXPIRED}
)
FAILURE_STATUSES = frozenset({TransactionStatus.FAILED, TransactionStatus.REJECTED, TransactionStatus.EXPIRED})


class DisputeType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class DisputeStatus(str, Enum):
    PENDING = "pending"
    ROUTED = "routed"
    UNROUTABLE = "unroutable"
    COUNTERPARTY_ACCEPTED = "counterparty_accepted"
    COUNTERPARTY_REJECTED = "counterparty_rejected"
    ADJUDICATOR_APPROVED = "adjudicator_approved"
    ADJUDICATOR_REJECTED = "adjudicator_rejected"


class CounterpartyAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class AdjudicatorDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class RouteSource(str, Enum):
    PRE_ASSIGNED = "pre_assigned"
    STANDING_MAPPING = "standing_mapping"
    TRANSACTION_ID = "transaction_id"
    SETTLEMENT_REFERENCE = "settlement_reference"
    ENDPOINT_POOL = "endpoint_pool"
    PAYOUT_ID = "payout_id"
    PAYOUT_ORDER_REFERENCE = "payout_order_reference"


class DeltaType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


@dataclass
class EndpointCandidate:
    """Collection endpoint as seen by the selection engine"""

    id: str
    handle: str
    holder_name: str
    provider_id: str
    provider_name: str
    provider_balance: Decimal
    status: str
    daily_limit: Decimal
    daily_volume_used: Decimal
    daily_count: int
    success_rate: float  # percent, 0-100
    last_used_at: Optional[datetime]
    failures_last_hour: int
    amount_tier: str
    min_amount: Optional[Decimal]
    max_amount: Optional[Decimal]
    bank_name: str

    @property
    def remaining_capacity(self) -> Decimal:
        return max(Decimal("0"), self.daily_limit - self.daily_volume_used)


@dataclass
class ScoredCandidate:
    """Endpoint that survived hard rejection, with its score breakdown"""

    candidate: EndpointCandidate
    score: float
    tier_match: TierMatch
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass
class TransactionOutcome:
    """Terminal transaction attributed to an upstream bank"""

    bank_name: str
    status: TransactionStatus
    created_at: datetime

    @property
    def failed(self) -> bool:
        return self.status in FAILURE_STATUSES


@dataclass
class ProviderCircuit:
    """Per-bank breaker record"""

    bank_name: str
    state: CircuitState = CircuitState.CLOSED
    failure_rate: float = 0.0
    sample_count: int = 0
    failure_count: int = 0
    last_tripped_at: Optional[datetime] = None
    half_open_at: Optional[datetime] = None
    half_open_attempts: int = 0


@dataclass
class CircuitAvailability:
    available: bool
    state: CircuitState
    reason: Optional[str] = None


@dataclass
class SelectionResult:
    """Outcome of a single endpoint selection request"""

    success: bool
    endpoint_id: Optional[str] = None
    holder_name: Optional[str] = None
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    score: Optional[float] = None
    attempts: Optional[int] = None
    tier: Optional[str] = None
    circuit_status_summary: Optional[str] = None
    error_code: Optional[SelectionErrorCode] = None
    error: Optional[str] = None


@dataclass
class RouteMatch:
    """Responsible party found by one step of the routing chain"""

    provider_id: str
    provider_name: str
    source: RouteSource
    reason: str


@dataclass
class BalanceChange:
    """Immutable record of a single balance movement"""

    entity_type: str
    entity_id: str
    delta_type: DeltaType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reason: str
    breakdown: Dict[str, str] = field(default_factory=dict)

    @property
    def delta(self) -> Decimal:
        return self.amount if self.delta_type == DeltaType.CREDIT else -self.amount


@dataclass
class SettlementPlan:
    """Balance effect decided by the settlement table, before it is applied"""

    resolution: str
    delta_type: Optional[DeltaType] = None
    reason: Optional[str] = None
    include_commission: bool = False


@dataclass
class DisputeOutcome:
    """Typed result returned by every dispute operation"""

    success: bool
    dispute_id: Optional[str] = None
    status: Optional[DisputeStatus] = None
    message: Optional[str] = None
    responsible_party_id: Optional[str] = None
    route_source: Optional[RouteSource] = None
    resolution: Optional[str] = None
    balance_changes: List[BalanceChange] = field(default_factory=list)
    error_code: Optional[str] = None
