"""Pytest fixtures for testing"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from payops_gateway.api.main import create_app
from payops_gateway.domain.models import EndpointCandidate
from payops_gateway.infrastructure.database.models import (
    Base,
    Dispute,
    Endpoint,
    Payout,
    Provider,
    ProviderCircuitRecord,
    StandingMapping,
    SystemConfig,
    Transaction,
)
from payops_gateway.infrastructure.database.session import get_db
from payops_gateway.utils.time_utils import utcnow

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def other_db(db: Session) -> Generator[Session, None, None]:
    """A second session on the same database, standing in for a concurrent request"""
    other = TestingSessionLocal()
    try:
        yield other
    finally:
        other.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


class Seeder:
    """Inserts and commits ledger rows with sensible defaults"""

    def __init__(self, db: Session):
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def provider(
        self,
        name: str = "Acme Liquidity",
        balance: Decimal = Decimal("50000"),
        commission_rate: Optional[Decimal] = None,
        is_active: bool = True,
        **fields,
    ) -> Provider:
        return self._save(
            Provider(name=name, balance=balance, payout_commission_rate=commission_rate, is_active=is_active, **fields)
        )

    def endpoint(
        self,
        provider: Provider,
        handle: str = "acme@upi",
        bank_name: str = "hdfc",
        amount_tier: str = "medium",
        daily_limit: Decimal = Decimal("100000"),
        daily_volume_used: Decimal = Decimal("0"),
        **fields,
    ) -> Endpoint:
        return self._save(
            Endpoint(
                handle=handle,
                holder_name=fields.pop("holder_name", "Acme Collections"),
                provider_id=provider.id,
                bank_name=bank_name,
                amount_tier=amount_tier,
                daily_limit=daily_limit,
                daily_volume_used=daily_volume_used,
                **fields,
            )
        )

    def transaction(
        self,
        endpoint: Optional[Endpoint] = None,
        amount: Decimal = Decimal("1000"),
        status: str = "pending",
        created_at: Optional[datetime] = None,
        **fields,
    ) -> Transaction:
        return self._save(
            Transaction(
                endpoint_id=endpoint.id if endpoint else None,
                provider_id=fields.pop("provider_id", endpoint.provider_id if endpoint else None),
                amount=amount,
                status=status,
                created_at=created_at or utcnow(),
                **fields,
            )
        )

    def outcomes(self, endpoint: Endpoint, completed: int, failed: int, minutes_ago: int = 5) -> None:
        created_at = utcnow() - timedelta(minutes=minutes_ago)
        for _ in range(completed):
            self.db.add(Transaction(endpoint_id=endpoint.id, provider_id=endpoint.provider_id,
                                    amount=Decimal("1000"), status="completed", created_at=created_at))
        for _ in range(failed):
            self.db.add(Transaction(endpoint_id=endpoint.id, provider_id=endpoint.provider_id,
                                    amount=Decimal("1000"), status="failed", created_at=created_at))
        self.db.commit()

    def payout(self, provider: Provider, amount: Decimal = Decimal("10000"), **fields) -> Payout:
        return self._save(Payout(provider_id=provider.id, amount=amount, **fields))

    def standing_mapping(self, provider: Provider, payment_handle: str, is_deleted: bool = False, **fields) -> StandingMapping:
        return self._save(
            StandingMapping(provider_id=provider.id, payment_handle=payment_handle, is_deleted=is_deleted, **fields)
        )

    def circuit(self, bank_name: str, state: str, **fields) -> ProviderCircuitRecord:
        return self._save(ProviderCircuitRecord(bank_name=bank_name, state=state, **fields))

    def config(self, key: str, value: dict) -> SystemConfig:
        return self._save(SystemConfig(key=key, value=value))

    def dispute(self, **fields) -> Dispute:
        fields.setdefault("type", "incoming")
        fields.setdefault("amount", Decimal("5000"))
        fields.setdefault("claimant_principal_id", "merchant-1")
        fields.setdefault("reason", "Customer paid, order not credited")
        fields.setdefault("status", "pending")
        return self._save(Dispute(**fields))


@pytest.fixture
def seed(db: Session) -> Seeder:
    return Seeder(db)


@pytest.fixture
def make_candidate():
    """Factory for in-memory endpoint candidates; defaults score 95"""

    def factory(**overrides) -> EndpointCandidate:
        values = dict(
            id="ep-1",
            handle="acme@upi",
            holder_name="Acme Collections",
            provider_id="prov-1",
            provider_name="Acme Liquidity",
            provider_balance=Decimal("50000"),
            status="active",
            daily_limit=Decimal("100000"),
            daily_volume_used=Decimal("0"),
            daily_count=0,
            success_rate=100.0,
            last_used_at=None,
            failures_last_hour=0,
            amount_tier="medium",
            min_amount=None,
            max_amount=None,
            bank_name="hdfc",
        )
        values.update(overrides)
        return EndpointCandidate(**values)

    return factory
