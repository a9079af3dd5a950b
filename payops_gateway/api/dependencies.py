"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from payops_gateway.infrastructure.clients.notifier import DisputeNotifier
from payops_gateway.infrastructure.database.session import get_db
from payops_gateway.services.disputes import DisputeWorkflow
from payops_gateway.services.outcomes import TransactionOutcomeService
from payops_gateway.services.selection import EndpointSelectionService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_notifier() -> DisputeNotifier:
    """Provide dispute webhook client instance"""
    return DisputeNotifier()


def get_selection_service(db: Session = Depends(get_db)) -> EndpointSelectionService:
    return EndpointSelectionService(db)


def get_dispute_workflow(db: Session = Depends(get_db)) -> DisputeWorkflow:
    return DisputeWorkflow(db)


def get_outcome_service(db: Session = Depends(get_db)) -> TransactionOutcomeService:
    return TransactionOutcomeService(db)
