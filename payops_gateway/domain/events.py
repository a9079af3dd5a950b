"""Append-only events emitted after each engine decision"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from payops_gateway.domain.models import BalanceChange


@dataclass
class SelectionEvent:
    requesting_principal_id: str
    amount: Decimal
    tier: str
    success: bool
    candidates_considered: int
    candidates_qualified: int
    attempts: int = 0
    endpoint_id: Optional[str] = None
    provider_id: Optional[str] = None
    bank_name: Optional[str] = None
    tier_match: Optional[str] = None
    score: Optional[float] = None
    score_breakdown: Dict[str, float] = field(default_factory=dict)
    circuit_status_summary: Optional[str] = None
    error_code: Optional[str] = None
    request_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


@dataclass
class RoutingEvent:
    dispute_id: str
    dispute_type: str
    success: bool
    reason: str
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    source: Optional[str] = None
    request_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


@dataclass
class DisputeActionEvent:
    """Counter-party response or adjudicator decision"""

    dispute_id: str
    dispute_type: str
    kind: str  # "counterparty_response" | "adjudicator_decision"
    action: str
    from_status: str
    to_status: str
    description: str
    actor_id: Optional[str] = None
    balance_changes: List[BalanceChange] = field(default_factory=list)
    request_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


class EventSink(Protocol):
    def selection(self, event: SelectionEvent) -> None: ...

    def routing(self, event: RoutingEvent) -> None: ...

    def dispute_action(self, event: DisputeActionEvent) -> None: ...


class InMemoryEventSink:
    """Collects events in lists; used where no log store is wired"""

    def __init__(self):
        self.selections: List[SelectionEvent] = []
        self.routings: List[RoutingEvent] = []
        self.dispute_actions: List[DisputeActionEvent] = []

    def selection(self, event: SelectionEvent) -> None:
        self.selections.append(event)

    def routing(self, event: RoutingEvent) -> None:
        self.routings.append(event)

    def dispute_action(self, event: DisputeActionEvent) -> None:
        self.dispute_actions.append(event)
