"""
Error taxonomy for URL retrieval.

StrategyError subclasses never leave the orchestrator: they are turned into
Failure outcomes. Only InvalidInput, AllStrategiesExhausted and
DeadlineExceeded reach callers.
"""

from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    REFUSED = "refused"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    HTTP_ERROR = "http_error"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    OVERSIZED = "oversized"
    NON_TEXT = "non_text"
    EMPTY = "empty"
    ENGINE_ERROR = "engine_error"
    UNKNOWN = "unknown"


class FetchError(Exception):
    pass


class InvalidInput(FetchError):
    """Bad or missing URL, or an unknown strategy name."""


class DeadlineExceeded(FetchError):
    """The caller's overall deadline ran out before any strategy succeeded."""


class StrategyError(FetchError):
    reason = FailureReason.UNKNOWN


class StrategyTimeout(StrategyError):
    reason = FailureReason.TIMEOUT


class StrategyRefused(StrategyError):
    """DNS failure, refused or reset connection."""
    reason = FailureReason.REFUSED


class StrategyRedirectLoop(StrategyError):
    reason = FailureReason.TOO_MANY_REDIRECTS


class StrategyHTTPError(StrategyError):
    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"HTTP error {status_code}")

    @property
    def reason(self) -> FailureReason:
        if self.status_code in (401, 403):
            return FailureReason.FORBIDDEN
        if self.status_code in (404, 410):
            return FailureReason.NOT_FOUND
        return FailureReason.HTTP_ERROR


class StrategyOversized(StrategyError):
    reason = FailureReason.OVERSIZED


class StrategyNonText(StrategyError):
    reason = FailureReason.NON_TEXT


class StrategyEmptyContent(StrategyError):
    reason = FailureReason.EMPTY


class StrategyEngineFailure(StrategyError):
    """The rendering engine crashed or could not start."""
    reason = FailureReason.ENGINE_ERROR


class AllStrategiesExhausted(FetchError):
    def __init__(self, result):
        self.result = result
        super().__init__(result.summary)
