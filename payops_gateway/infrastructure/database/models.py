"""SQLAlchemy ORM models for the ledger store"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import declarative_base, relationship

from payops_gateway.utils.time_utils import utcnow

Base = declarative_base()

Money = Numeric(14, 2, asdecimal=True)


def _new_id() -> str:
    return str(uuid.uuid4())


class Provider(Base):
    """Counter-party that owns collection endpoints and carries a balance"""

    __tablename__ = "providers"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    balance = Column(Money, nullable=False, default=0)
    payout_commission_rate = Column(Numeric(6, 3), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    endpoints = relationship("Endpoint", back_populates="provider")


class Principal(Base):
    """Merchant / claimant side of a payment"""

    __tablename__ = "principals"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    balance = Column(Money, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Endpoint(Base):
    """Collection endpoint in the selection pool"""

    __tablename__ = "endpoint_pool"

    id = Column(String(64), primary_key=True, default=_new_id)
    handle = Column(Text, nullable=False, index=True)
    holder_name = Column(Text, nullable=True)
    provider_id = Column(String(64), ForeignKey("providers.id"), nullable=False, index=True)
    status = Column(Text, nullable=False, default="active")
    daily_limit = Column(Money, nullable=False, default=100000)
    daily_volume_used = Column(Money, nullable=False, default=0)
    daily_count = Column(Integer, nullable=False, default=0)
    success_rate = Column(Float, nullable=False, default=100.0)
    total_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    amount_tier = Column(Text, nullable=False, default="medium")
    min_amount = Column(Money, nullable=True)
    max_amount = Column(Money, nullable=True)
    bank_name = Column(Text, nullable=False, default="unknown")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    provider = relationship("Provider", back_populates="endpoints")


class StandingMapping(Base):
    """Durable payment-handle ownership record; soft-deleted, never removed"""

    __tablename__ = "standing_mappings"

    id = Column(String(64), primary_key=True, default=_new_id)
    payment_handle = Column(Text, nullable=False, index=True)
    provider_id = Column(String(64), ForeignKey("providers.id"), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Transaction(Base):
    """Incoming payment routed to a collection endpoint"""

    __tablename__ = "transactions"

    id = Column(String(64), primary_key=True, default=_new_id)
    endpoint_id = Column(String(64), ForeignKey("endpoint_pool.id"), nullable=True, index=True)
    provider_id = Column(String(64), ForeignKey("providers.id"), nullable=True)
    principal_id = Column(String(64), nullable=True)
    amount = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    utr = Column(Text, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    endpoint = relationship("Endpoint")


class Payout(Base):
    """Outgoing payment executed by a provider"""

    __tablename__ = "payouts"

    id = Column(String(64), primary_key=True, default=_new_id)
    order_reference = Column(Text, nullable=True, index=True)
    provider_id = Column(String(64), ForeignKey("providers.id"), nullable=True)
    principal_id = Column(String(64), nullable=True)
    amount = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ProviderCircuitRecord(Base):
    """Persisted breaker state, one row per upstream bank"""

    __tablename__ = "provider_circuits"

    bank_name = Column(Text, primary_key=True)
    state = Column(Text, nullable=False, default="closed")
    failure_rate = Column(Float, nullable=False, default=0.0)
    sample_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    last_tripped_at = Column(DateTime(timezone=True), nullable=True)
    half_open_at = Column(DateTime(timezone=True), nullable=True)
    half_open_attempts = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Dispute(Base):
    """Contested transaction; terminal rows are kept for audit"""

    __tablename__ = "disputes"

    id = Column(String(64), primary_key=True, default=_new_id)
    type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    claimant_principal_id = Column(String(64), nullable=False, index=True)
    responsible_party_id = Column(String(64), ForeignKey("providers.id"), nullable=True, index=True)
    payment_handle = Column(Text, nullable=True)
    order_reference = Column(Text, nullable=True)
    transaction_reference = Column(Text, nullable=True)
    settlement_reference = Column(Text, nullable=True)
    reason = Column(Text, nullable=False)
    evidence_reference = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending", index=True)
    route_source = Column(Text, nullable=True)
    route_reason = Column(Text, nullable=True)
    routed_at = Column(DateTime(timezone=True), nullable=True)
    counterparty_action = Column(Text, nullable=True)
    counterparty_note = Column(Text, nullable=True)
    counterparty_proof_reference = Column(Text, nullable=True)
    counterparty_responded_at = Column(DateTime(timezone=True), nullable=True)
    adjudicator_id = Column(String(64), nullable=True)
    adjudicator_note = Column(Text, nullable=True)
    resolution = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    responsible_party = relationship("Provider")


class SelectionLog(Base):
    __tablename__ = "selection_logs"

    id = Column(String(64), primary_key=True, default=_new_id)
    requesting_principal_id = Column(String(64), nullable=True)
    amount = Column(Money, nullable=False)
    amount_tier = Column(Text, nullable=False)
    success = Column(Boolean, nullable=False)
    endpoint_id = Column(Text, nullable=True)
    provider_id = Column(String(64), nullable=True)
    bank_name = Column(Text, nullable=True)
    tier_match = Column(Text, nullable=True)
    score = Column(Float, nullable=True)
    score_breakdown = Column(JSON, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    candidates_considered = Column(Integer, nullable=False, default=0)
    candidates_qualified = Column(Integer, nullable=False, default=0)
    circuit_status = Column(Text, nullable=True)
    error_code = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class RoutingLog(Base):
    __tablename__ = "routing_logs"

    id = Column(String(64), primary_key=True, default=_new_id)
    dispute_id = Column(String(64), nullable=False, index=True)
    dispute_type = Column(Text, nullable=False)
    provider_id = Column(String(64), nullable=True)
    provider_name = Column(Text, nullable=True)
    source = Column(Text, nullable=True)
    reason = Column(Text, nullable=False)
    success = Column(Boolean, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class DisputeEventLog(Base):
    """Counter-party responses and adjudicator decisions"""

    __tablename__ = "dispute_events"

    id = Column(String(64), primary_key=True, default=_new_id)
    dispute_id = Column(String(64), nullable=False, index=True)
    kind = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    from_status = Column(Text, nullable=False)
    to_status = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    actor_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class BalanceChangeLog(Base):
    """Authoritative, append-only record of why a balance changed"""

    __tablename__ = "balance_change_logs"

    id = Column(String(64), primary_key=True, default=_new_id)
    dispute_id = Column(String(64), nullable=True, index=True)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    delta_type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    breakdown = Column(JSON, nullable=True)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SystemConfig(Base):
    """Runtime overrides: weight sets and feature flags"""

    __tablename__ = "system_config"

    key = Column(String(128), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
