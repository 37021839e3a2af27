"""
Ambitionly Core - Errors
========================

Error taxonomy shared by the engine and the HTTP surface.

- Transport errors (network, timeout, HTTP status, open circuit) carry a
  ``retryable`` flag; retryable ones are retried with backoff before they
  reach the caller.
- Parse errors never leave the plan generator; they select the fallback plan.
- Sync errors are logged and swallowed by the sync coordinator.
"""

from typing import Optional


class AmbitionError(Exception):
    """Base class for all engine errors."""

    code = "APP_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.status = status


# ==========================================================================
# Transport
# ==========================================================================

class TransportError(AmbitionError):
    code = "TRANSPORT_ERROR"


class NetworkError(TransportError):
    code = "NETWORK_ERROR"
    retryable = True


class RequestTimeoutError(TransportError):
    code = "TIMEOUT"
    retryable = True


class HttpStatusError(TransportError):
    code = "HTTP_ERROR"


class CircuitOpenError(TransportError):
    code = "CIRCUIT_OPEN"
    retryable = True


def is_retryable_status(status: Optional[int]) -> bool:
    """429 and 5xx are worth another attempt."""
    if not status:
        return False
    return status == 429 or 500 <= status < 600


# ==========================================================================
# Validation / parsing
# ==========================================================================

class InputValidationError(AmbitionError):
    code = "VALIDATION_ERROR"


class PlanParseError(AmbitionError):
    """The generation response could not be turned into a plan."""

    code = "PLAN_PARSE_ERROR"

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class GenerationFailedError(AmbitionError):
    """Not even the fallback plan could be produced."""

    code = "GENERATION_FAILED"


class UnknownTaskError(AmbitionError):
    code = "UNKNOWN_TASK"
