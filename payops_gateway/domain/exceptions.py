"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    error_code = "DOMAIN_ERROR"


class NotFoundError(DomainException):
    """Referenced dispute, transaction or candidate does not exist"""

    error_code = "NOT_FOUND"


class NoEligibleCandidateError(DomainException):
    """Selection found zero viable endpoints"""

    error_code = "NO_ELIGIBLE_CANDIDATE"

    def __init__(self, reason_code, message: str, circuit_status_summary: str | None = None):
        super().__init__(message)
        self.reason_code = reason_code
        self.circuit_status_summary = circuit_status_summary


class RoutingFailureError(DomainException):
    """No method in the priority chain identified a responsible party"""

    error_code = "ROUTING_FAILURE"


class ConcurrentCapacityViolation(DomainException):
    """Endpoint capacity was exhausted between scoring and reservation"""

    error_code = "CAPACITY_VIOLATION"


class InvalidTransitionError(DomainException):
    """Action is not defined for the dispute's current status"""

    error_code = "INVALID_TRANSITION"
