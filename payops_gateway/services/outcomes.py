"""Terminal outcome recording for incoming payments"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from payops_gateway.domain.exceptions import InvalidTransitionError, NotFoundError
from payops_gateway.domain.models import FAILURE_STATUSES, TERMINAL_STATUSES, TransactionStatus
from payops_gateway.infrastructure.database.models import Transaction
from payops_gateway.infrastructure.database.repositories import EndpointRepository, TransactionRepository
from payops_gateway.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class TransactionOutcomeService:
    """
    Marks a pending payment completed, failed, rejected or expired.

    The endpoint's lifetime success counters are updated in the same transaction. A
    failed payment also gives back the daily volume reserved for it at selection time.
    Terminal outcomes feed the bank circuits on the next selection.
    """

    def __init__(self, db: Session, clock: Callable = utcnow):
        self.db = db
        self.clock = clock
        self.transactions = TransactionRepository(db)
        self.endpoints = EndpointRepository(db)

    def record(self, transaction_id: str, status: TransactionStatus, request_id: Optional[str] = None) -> Transaction:
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"{status.value} is not a terminal outcome")

        try:
            transaction = self.transactions.get(transaction_id)
            if transaction is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            if transaction.status != TransactionStatus.PENDING.value:
                raise InvalidTransitionError(f"Transaction {transaction_id} is already {transaction.status}")
            if not self.transactions.mark_terminal(transaction_id, TransactionStatus.PENDING.value, status, self.clock()):
                raise InvalidTransitionError(f"Transaction {transaction_id} was completed by another request")

            if transaction.endpoint_id:
                failed = status in FAILURE_STATUSES
                self.endpoints.record_result(transaction.endpoint_id, success=not failed)
                if failed:
                    self.endpoints.release_capacity(transaction.endpoint_id, transaction.amount)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Transaction outcome recorded",
            extra={"request_id": request_id, "transaction_id": transaction_id, "status": status.value},
        )
        self.db.refresh(transaction)
        return transaction
