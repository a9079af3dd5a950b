"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from payops_gateway.config import settings
from payops_gateway.utils.time_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_selection(
    request_id: Optional[str],
    principal_id: str,
    success: bool,
    tier: str,
    attempts: int,
    endpoint_id: Optional[str] = None,
    score: Optional[float] = None,
    error_code: Optional[str] = None,
    circuit_status: Optional[str] = None,
) -> None:
    """Log structured selection outcome"""
    logging.info(
        "Endpoint selection completed" if success else "Endpoint selection failed",
        extra={
            "request_id": request_id,
            "principal_id": principal_id,
            "step": "selection_complete",
            "outcome": "selected" if success else "no_endpoint",
            "amount_tier": tier,
            "attempts": attempts,
            "endpoint_id": endpoint_id,
            "score": score,
            "error_code": error_code,
            "circuit_status": circuit_status,
        },
    )


def log_routing(
    request_id: Optional[str],
    dispute_id: str,
    success: bool,
    source: Optional[str],
    provider_id: Optional[str],
    reason: str,
) -> None:
    level = logging.INFO if success else logging.WARNING
    logging.log(
        level,
        "Dispute routed" if success else "Dispute unroutable",
        extra={
            "request_id": request_id,
            "dispute_id": dispute_id,
            "step": "routing",
            "route_source": source,
            "provider_id": provider_id,
            "reason": reason,
        },
    )


def log_dispute_action(
    request_id: Optional[str],
    dispute_id: str,
    kind: str,
    action: str,
    from_status: str,
    to_status: str,
    balance_delta: Optional[str] = None,
) -> None:
    logging.info(
        "Dispute status changed",
        extra={
            "request_id": request_id,
            "dispute_id": dispute_id,
            "step": kind,
            "action": action,
            "from_status": from_status,
            "to_status": to_status,
            "balance_delta": balance_delta,
        },
    )
