"""
Engine configuration structs and the merge of stored overrides over defaults.

Configs are frozen and built once per request; nothing mutates them afterwards.
Overrides come from the `system_config` table as plain dicts. Unknown keys and
values of the wrong type are dropped so that a bad override can never stop the
engine from running.
"""

import logging
import math
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from payops_gateway.config import Settings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionWeights:
    """Point budget per scoring term"""

    success_rate: float = 25.0
    daily_capacity: float = 20.0
    cooldown: float = 15.0
    amount_match: float = 20.0
    provider_balance: float = 5.0
    bank_health: float = 10.0
    recent_failures: float = 5.0  # penalty cap

    @property
    def max_score(self) -> float:
        return (
            self.success_rate
            + self.daily_capacity
            + self.cooldown
            + self.amount_match
            + self.provider_balance
            + self.bank_health
        )


@dataclass(frozen=True)
class CircuitConfig:
    failure_threshold: float = 0.30
    window_minutes: int = 15
    cooldown_minutes: int = 10
    min_sample_size: int = 5
    half_open_test_count: int = 2


@dataclass(frozen=True)
class SelectionConfig:
    weights: SelectionWeights = field(default_factory=SelectionWeights)
    circuit: CircuitConfig = field(default_factory=CircuitConfig)
    large_amount_threshold: Decimal = Decimal("15000")
    min_score_floor: float = 20.0
    top_candidates: int = 10
    max_attempts: int = 3
    provider_balance_floor: Decimal = Decimal("10000")
    cooldown_saturation_minutes: float = 30.0
    half_open_health_factor: float = 0.3
    enable_logging: bool = True


@dataclass(frozen=True)
class DisputeConfig:
    enable_logging: bool = True
    enable_auto_route: bool = True
    default_commission_rate: Decimal = Decimal("1.0")


def _coerce(value: Any, target: Any) -> Any:
    """Coerce an override value to the type of the default, or raise ValueError"""
    if isinstance(target, bool):
        if isinstance(value, bool):
            return value
        raise ValueError(f"expected bool, got {value!r}")
    if isinstance(target, Decimal):
        if isinstance(value, bool):
            raise ValueError(f"expected number, got {value!r}")
        try:
            number = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"expected number, got {value!r}") from e
        if not number.is_finite() or number < 0:
            raise ValueError(f"expected non-negative number, got {value!r}")
        return number
    if isinstance(target, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"expected number, got {value!r}")
        number = float(value)
        if math.isnan(number) or math.isinf(number) or number < 0:
            raise ValueError(f"expected non-negative number, got {value!r}")
        return int(number) if isinstance(target, int) else number
    raise ValueError(f"unsupported setting type for {value!r}")


def _merge(base: Any, override: Optional[Mapping[str, Any]], section: str) -> Any:
    if not override:
        return base
    if not isinstance(override, Mapping):
        logger.warning("Ignoring %s override: not a mapping", section)
        return base

    known = {f.name for f in fields(base)}
    changes: Dict[str, Any] = {}
    for key, value in override.items():
        if key not in known:
            logger.warning("Ignoring unknown %s setting %r", section, key)
            continue
        current = getattr(base, key)
        if hasattr(current, "__dataclass_fields__"):
            changes[key] = _merge(current, value, f"{section}.{key}")
            continue
        try:
            changes[key] = _coerce(value, current)
        except ValueError as e:
            logger.warning("Ignoring %s setting %r: %s", section, key, e)
    return replace(base, **changes)


def default_selection_config(source: Settings = settings) -> SelectionConfig:
    return SelectionConfig(
        circuit=CircuitConfig(
            failure_threshold=source.circuit_failure_threshold,
            window_minutes=source.circuit_window_minutes,
            cooldown_minutes=source.circuit_cooldown_minutes,
            min_sample_size=source.circuit_min_sample_size,
            half_open_test_count=source.circuit_half_open_test_count,
        ),
        large_amount_threshold=source.large_amount_threshold,
        min_score_floor=source.min_score_floor,
        top_candidates=source.top_candidates,
        max_attempts=source.max_selection_attempts,
        provider_balance_floor=source.provider_balance_floor,
        cooldown_saturation_minutes=source.cooldown_saturation_minutes,
    )


def merge_selection_config(
    weights_override: Optional[Mapping[str, Any]] = None,
    engine_override: Optional[Mapping[str, Any]] = None,
    source: Settings = settings,
) -> SelectionConfig:
    """Build the per-request selection config: defaults, then engine flags, then weights"""
    config = _merge(default_selection_config(source), engine_override, "selection_engine")
    weights = _merge(config.weights, weights_override, "selection_weights")
    return replace(config, weights=weights)


def merge_dispute_config(
    override: Optional[Mapping[str, Any]] = None,
    source: Settings = settings,
) -> DisputeConfig:
    base = DisputeConfig(default_commission_rate=source.default_commission_rate)
    return _merge(base, override, "dispute_engine")
