"""Dispute router - finds the provider responsible for a disputed payment"""

from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from payops_gateway.domain.exceptions import RoutingFailureError
from payops_gateway.domain.models import DisputeType, RouteMatch, RouteSource
from payops_gateway.infrastructure.database.models import Dispute
from payops_gateway.infrastructure.database.repositories import (
    EndpointRepository,
    ProviderRepository,
    TransactionRepository,
)


class DisputeRouter:
    """
    Walks a fixed priority chain and returns the first responsible party found.

    A pre-assigned party is trusted once it is confirmed to exist. After that:
    - incoming: standing mapping, transaction id, settlement reference (UTR), endpoint pool
    - outgoing: payout id, payout order reference
    """

    def __init__(self, db: Session):
        self.providers = ProviderRepository(db)
        self.transactions = TransactionRepository(db)
        self.endpoints = EndpointRepository(db)

    def find_responsible_party(self, dispute: Dispute) -> RouteMatch:
        """Raises RoutingFailureError when no step matches"""
        steps: List[Callable[[Dispute], Optional[RouteMatch]]] = [self._pre_assigned]
        if DisputeType(dispute.type) == DisputeType.INCOMING:
            steps += [
                self._standing_mapping,
                self._transaction_id,
                self._settlement_reference,
                self._endpoint_pool,
            ]
        else:
            steps += [self._payout_id, self._payout_order_reference]

        for step in steps:
            match = step(dispute)
            if match is not None:
                return match

        raise RoutingFailureError(f"No responsible party found for {dispute.type} dispute {dispute.id}")

    def _match(self, provider_id: Optional[str], source: RouteSource, reason: str) -> Optional[RouteMatch]:
        if not provider_id:
            return None
        provider = self.providers.get(provider_id)
        name = provider.name if provider is not None else "Unknown"
        return RouteMatch(provider_id=provider_id, provider_name=name, source=source, reason=reason)

    def _pre_assigned(self, dispute: Dispute) -> Optional[RouteMatch]:
        if not dispute.responsible_party_id:
            return None
        provider = self.providers.get(dispute.responsible_party_id)
        if provider is None:
            return None
        return RouteMatch(
            provider_id=provider.id,
            provider_name=provider.name,
            source=RouteSource.PRE_ASSIGNED,
            reason="Responsible party assigned when the dispute was raised",
        )

    def _standing_mapping(self, dispute: Dispute) -> Optional[RouteMatch]:
        if not dispute.payment_handle:
            return None
        mapping = self.providers.find_standing_owner(dispute.payment_handle)
        if mapping is None:
            return None
        return self._match(
            mapping.provider_id,
            RouteSource.STANDING_MAPPING,
            f"Payment handle {dispute.payment_handle} is mapped to this provider",
        )

    def _transaction_id(self, dispute: Dispute) -> Optional[RouteMatch]:
        if not dispute.transaction_reference:
            return None
        transaction = self.transactions.get(dispute.transaction_reference)
        if transaction is None:
            return None
        provider_id = transaction.provider_id or (transaction.endpoint.provider_id if transaction.endpoint else None)
        return self._match(
            provider_id,
            RouteSource.TRANSACTION_ID,
            f"Transaction {transaction.id} was collected by this provider",
        )

    def _settlement_reference(self, dispute: Dispute) -> Optional[RouteMatch]:
        utr = dispute.settlement_reference or dispute.transaction_reference
        if not utr:
            return None
        transaction = self.transactions.find_by_utr(utr)
        if transaction is None:
            return None
        provider_id = transaction.provider_id or (transaction.endpoint.provider_id if transaction.endpoint else None)
        return self._match(
            provider_id,
            RouteSource.SETTLEMENT_REFERENCE,
            f"Settlement reference {utr} matches transaction {transaction.id}",
        )

    def _endpoint_pool(self, dispute: Dispute) -> Optional[RouteMatch]:
        if not dispute.payment_handle:
            return None
        endpoint = self.endpoints.find_by_handle(dispute.payment_handle)
        if endpoint is None:
            return None
        return self._match(
            endpoint.provider_id,
            RouteSource.ENDPOINT_POOL,
            f"Payment handle {dispute.payment_handle} belongs to a pooled endpoint",
        )

    def _payout_id(self, dispute: Dispute) -> Optional[RouteMatch]:
        key = dispute.transaction_reference or dispute.order_reference
        if not key:
            return None
        payout = self.transactions.get_payout(key)
        if payout is None:
            return None
        return self._match(payout.provider_id, RouteSource.PAYOUT_ID, f"Payout {payout.id} was executed by this provider")

    def _payout_order_reference(self, dispute: Dispute) -> Optional[RouteMatch]:
        key = dispute.order_reference or dispute.transaction_reference
        if not key:
            return None
        payout = self.transactions.find_payout_by_order_reference(key)
        if payout is None:
            return None
        return self._match(
            payout.provider_id,
            RouteSource.PAYOUT_ORDER_REFERENCE,
            f"Order reference {key} matches payout {payout.id}",
        )
