"""Data access layer for the ledger store"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payops_gateway.domain.circuit import normalize_bank
from payops_gateway.domain.exceptions import NotFoundError
from payops_gateway.domain.models import (
    FAILURE_STATUSES,
    TERMINAL_STATUSES,
    BalanceChange,
    CircuitState,
    DeltaType,
    DisputeStatus,
    EndpointCandidate,
    ProviderCircuit,
    TransactionOutcome,
    TransactionStatus,
)
from payops_gateway.infrastructure.database.models import (
    BalanceChangeLog,
    Dispute,
    DisputeEventLog,
    Endpoint,
    Payout,
    Provider,
    ProviderCircuitRecord,
    RoutingLog,
    SelectionLog,
    StandingMapping,
    SystemConfig,
    Transaction,
)
from payops_gateway.utils.time_utils import as_utc

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")

_DIALECT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


def _money(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(_CENT)


def _optional_money(value: Any) -> Optional[Decimal]:
    return None if value is None else _money(value)


class EndpointRepository:
    """Repository for the collection endpoint pool"""

    def __init__(self, db: Session):
        self.db = db

    def list_active_candidates(self, now: datetime) -> List[EndpointCandidate]:
        """Active endpoints owned by active providers, with failures over the last hour"""
        failures = (
            self.db.query(Transaction.endpoint_id, func.count(Transaction.id).label("failures"))
            .filter(
                Transaction.status.in_([s.value for s in FAILURE_STATUSES]),
                Transaction.created_at >= now - timedelta(hours=1),
            )
            .group_by(Transaction.endpoint_id)
            .subquery()
        )
        rows = (
            self.db.query(Endpoint, Provider, failures.c.failures)
            .join(Provider, Endpoint.provider_id == Provider.id)
            .outerjoin(failures, failures.c.endpoint_id == Endpoint.id)
            .filter(Endpoint.status == "active", Provider.is_active.is_(True))
            .all()
        )
        return [
            EndpointCandidate(
                id=endpoint.id,
                handle=endpoint.handle,
                holder_name=endpoint.holder_name or "Account Holder",
                provider_id=provider.id,
                provider_name=provider.name or "Unknown",
                provider_balance=_money(provider.balance),
                status=endpoint.status,
                daily_limit=_money(endpoint.daily_limit),
                daily_volume_used=_money(endpoint.daily_volume_used),
                daily_count=endpoint.daily_count or 0,
                success_rate=endpoint.success_rate if endpoint.success_rate is not None else 100.0,
                last_used_at=as_utc(endpoint.last_used_at),
                failures_last_hour=recent_failures or 0,
                amount_tier=endpoint.amount_tier or "medium",
                min_amount=_optional_money(endpoint.min_amount),
                max_amount=_optional_money(endpoint.max_amount),
                bank_name=normalize_bank(endpoint.bank_name),
            )
            for endpoint, provider, recent_failures in rows
        ]

    def reserve_capacity(self, endpoint_id: str, amount: Decimal, now: datetime) -> bool:
        """Atomically add `amount` to today's volume unless it would exceed the daily limit"""
        result = self.db.execute(
            update(Endpoint)
            .where(
                Endpoint.id == endpoint_id,
                Endpoint.status == "active",
                Endpoint.daily_volume_used + amount <= Endpoint.daily_limit,
            )
            .values(
                daily_volume_used=Endpoint.daily_volume_used + amount,
                daily_count=Endpoint.daily_count + 1,
                last_used_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_capacity(self, endpoint_id: str, amount: Decimal) -> None:
        self.db.execute(
            update(Endpoint)
            .where(Endpoint.id == endpoint_id, Endpoint.daily_volume_used >= amount)
            .values(daily_volume_used=Endpoint.daily_volume_used - amount)
            .execution_options(synchronize_session=False)
        )

    def record_result(self, endpoint_id: str, success: bool) -> None:
        """Bump lifetime counters and recompute the success percentage in one statement"""
        increment = 1 if success else 0
        self.db.execute(
            update(Endpoint)
            .where(Endpoint.id == endpoint_id)
            .values(
                total_count=Endpoint.total_count + 1,
                success_count=Endpoint.success_count + increment,
                success_rate=(Endpoint.success_count + increment) * 100.0 / (Endpoint.total_count + 1),
            )
            .execution_options(synchronize_session=False)
        )

    def find_by_handle(self, handle: str) -> Optional[Endpoint]:
        return (
            self.db.query(Endpoint)
            .filter(Endpoint.handle == handle)
            .order_by(Endpoint.created_at.asc())
            .first()
        )


class CircuitRepository:
    """Repository for per-bank circuit records and the outcomes that drive them"""

    def __init__(self, db: Session):
        self.db = db

    def load_all(self) -> List[ProviderCircuit]:
        return [
            ProviderCircuit(
                bank_name=record.bank_name,
                state=CircuitState(record.state),
                failure_rate=record.failure_rate or 0.0,
                sample_count=record.sample_count or 0,
                failure_count=record.failure_count or 0,
                last_tripped_at=as_utc(record.last_tripped_at),
                half_open_at=as_utc(record.half_open_at),
                half_open_attempts=record.half_open_attempts or 0,
            )
            for record in self.db.query(ProviderCircuitRecord).populate_existing().all()
        ]

    def load_outcomes(self, since: datetime) -> List[TransactionOutcome]:
        """Terminal transactions created since `since`, attributed to their endpoint's bank"""
        rows = (
            self.db.query(Endpoint.bank_name, Transaction.status, Transaction.created_at)
            .join(Endpoint, Transaction.endpoint_id == Endpoint.id)
            .filter(
                Transaction.created_at >= since,
                Transaction.status.in_([s.value for s in TERMINAL_STATUSES]),
            )
            .all()
        )
        return [
            TransactionOutcome(
                bank_name=normalize_bank(bank_name),
                status=TransactionStatus(status),
                created_at=as_utc(created_at),
            )
            for bank_name, status, created_at in rows
        ]

    def upsert(self, circuits: Iterable[ProviderCircuit], now: datetime) -> None:
        """Insert or overwrite each bank's record; the last writer wins"""
        dialect_insert = _DIALECT_INSERTS[self.db.get_bind().dialect.name]
        for circuit in circuits:
            statement = dialect_insert(ProviderCircuitRecord.__table__).values(
                bank_name=normalize_bank(circuit.bank_name),
                state=circuit.state.value,
                failure_rate=circuit.failure_rate,
                sample_count=circuit.sample_count,
                failure_count=circuit.failure_count,
                last_tripped_at=circuit.last_tripped_at,
                half_open_at=circuit.half_open_at,
                half_open_attempts=circuit.half_open_attempts,
                updated_at=now,
            )
            self.db.execute(
                statement.on_conflict_do_update(
                    index_elements=["bank_name"],
                    set_={
                        name: statement.excluded[name]
                        for name in (
                            "state",
                            "failure_rate",
                            "sample_count",
                            "failure_count",
                            "last_tripped_at",
                            "half_open_at",
                            "half_open_attempts",
                            "updated_at",
                        )
                    },
                )
            )

    def increment_test_attempt(self, bank_name: str, now: datetime) -> None:
        self.db.execute(
            update(ProviderCircuitRecord)
            .where(
                ProviderCircuitRecord.bank_name == normalize_bank(bank_name),
                ProviderCircuitRecord.state == CircuitState.HALF_OPEN.value,
            )
            .values(
                half_open_attempts=ProviderCircuitRecord.half_open_attempts + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )


class TransactionRepository:
    """Repository for incoming payments and outgoing payouts"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self.db.get(Transaction, transaction_id)

    def find_by_utr(self, utr: str) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.utr == utr)
            .order_by(Transaction.created_at.asc())
            .first()
        )

    def get_payout(self, payout_id: str) -> Optional[Payout]:
        return self.db.get(Payout, payout_id)

    def find_payout_by_order_reference(self, order_reference: str) -> Optional[Payout]:
        return (
            self.db.query(Payout)
            .filter(Payout.order_reference == order_reference)
            .order_by(Payout.created_at.asc())
            .first()
        )

    def mark_terminal(self, transaction_id: str, expected: str, status: TransactionStatus, now: datetime) -> bool:
        result = self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.status == expected)
            .values(status=status.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ProviderRepository:
    """Repository for providers, their payment-handle mappings and balances"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, provider_id: str) -> Optional[Provider]:
        return self.db.get(Provider, provider_id)

    def find_standing_owner(self, payment_handle: str) -> Optional[StandingMapping]:
        """First non-deleted mapping for the handle, else any mapping if all are deleted"""
        return (
            self.db.query(StandingMapping)
            .filter(StandingMapping.payment_handle == payment_handle)
            .order_by(StandingMapping.is_deleted.asc(), StandingMapping.created_at.asc())
            .first()
        )

    def apply_balance_change(
        self,
        provider_id: str,
        delta_type: DeltaType,
        amount: Decimal,
        reason: str,
        breakdown: Optional[Dict[str, str]] = None,
        dispute_id: Optional[str] = None,
    ) -> BalanceChange:
        """
        Move a provider balance and append its change record in the caller's transaction.

        The balance is changed with a single atomic `balance = balance + delta` statement so
        concurrent resolutions against the same provider never read a stale balance; the
        previous balance is derived from the value the statement returns.
        """
        amount = _money(amount)
        delta = amount if delta_type == DeltaType.CREDIT else -amount
        row = self.db.execute(
            update(Provider)
            .where(Provider.id == provider_id)
            .values(balance=Provider.balance + delta)
            .returning(Provider.balance)
            .execution_options(synchronize_session=False)
        ).first()
        if row is None:
            raise NotFoundError(f"Provider {provider_id} not found")

        balance_after = _money(row[0])
        change = BalanceChange(
            entity_type="provider",
            entity_id=provider_id,
            delta_type=delta_type,
            amount=amount,
            balance_before=balance_after - delta,
            balance_after=balance_after,
            reason=reason,
            breakdown=breakdown or {},
        )
        self.db.add(
            BalanceChangeLog(
                dispute_id=dispute_id,
                entity_type=change.entity_type,
                entity_id=change.entity_id,
                delta_type=change.delta_type.value,
                amount=change.amount,
                breakdown=change.breakdown,
                balance_before=change.balance_before,
                balance_after=change.balance_after,
                reason=change.reason,
            )
        )
        self.db.flush()
        return change

    def balance_changes_for_dispute(self, dispute_id: str) -> List[BalanceChangeLog]:
        return (
            self.db.query(BalanceChangeLog)
            .filter(BalanceChangeLog.dispute_id == dispute_id)
            .order_by(BalanceChangeLog.created_at.asc())
            .all()
        )


class DisputeRepository:
    """Repository for disputes"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> Dispute:
        dispute = Dispute(status=DisputeStatus.PENDING.value, **fields)
        self.db.add(dispute)
        self.db.flush()
        return dispute

    def get(self, dispute_id: str) -> Optional[Dispute]:
        return self.db.get(Dispute, dispute_id)

    def transition(
        self,
        dispute_id: str,
        expected: DisputeStatus,
        target: DisputeStatus,
        now: datetime,
        **fields: Any,
    ) -> bool:
        """Compare-and-set the status; False when another writer moved the dispute first"""
        result = self.db.execute(
            update(Dispute)
            .where(Dispute.id == dispute_id, Dispute.status == expected.value)
            .values(status=target.value, updated_at=now, **fields)
        )
        return result.rowcount == 1

    def list_by_status(self, status: DisputeStatus, limit: int = 50) -> List[Dispute]:
        return (
            self.db.query(Dispute)
            .filter(Dispute.status == status.value)
            .order_by(Dispute.created_at.asc())
            .limit(limit)
            .all()
        )

    def stats(self) -> Dict[str, Any]:
        by_status = dict(self.db.query(Dispute.status, func.count(Dispute.id)).group_by(Dispute.status).all())
        by_type = dict(self.db.query(Dispute.type, func.count(Dispute.id)).group_by(Dispute.type).all())
        total_amount = self.db.query(func.coalesce(func.sum(Dispute.amount), 0)).scalar()
        return {
            "total": sum(by_status.values()),
            "by_status": {status.value: by_status.get(status.value, 0) for status in DisputeStatus},
            "by_type": by_type,
            "total_amount": _money(total_amount),
        }


class LogRepository:
    """Append-only inserts into the selection, routing and dispute event logs"""

    def __init__(self, db: Session):
        self.db = db

    def add_selection_log(self, **fields: Any) -> SelectionLog:
        log = SelectionLog(**fields)
        self.db.add(log)
        return log

    def add_routing_log(self, **fields: Any) -> RoutingLog:
        log = RoutingLog(**fields)
        self.db.add(log)
        return log

    def add_dispute_event(self, **fields: Any) -> DisputeEventLog:
        log = DisputeEventLog(**fields)
        self.db.add(log)
        return log


class ConfigRepository:
    """Read-only access to runtime overrides in `system_config`"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Stored override for `key`; None when missing or unreadable"""
        try:
            record = self.db.get(SystemConfig, key)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not read system config %r: %s", key, e)
            return None
        if record is None or not isinstance(record.value, dict):
            return None
        return record.value

