import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from app.core.config import settings
from app.fetch.errors import AllStrategiesExhausted, FailureReason, StrategyEmptyContent, StrategyError
from app.fetch.utils import page_stats, validate_url


@dataclass(frozen=True)
class FetchRequest:
    url: str
    timeout: float
    strategy: Optional[str] = None

    @classmethod
    def create(cls, url: str, timeout: Optional[float] = None, strategy: Optional[str] = None) -> "FetchRequest":
        """Validate the URL and build a request. Raises InvalidInput."""
        return cls(
            url=validate_url(url),
            timeout=timeout if timeout else settings.REQUEST_TIMEOUT,
            strategy=strategy or None,
        )


@dataclass(frozen=True)
class RetrievedContent:
    """What a strategy's transport hands back before it is judged."""
    content: str
    status_code: Optional[int] = None
    final_url: Optional[str] = None


@dataclass(frozen=True)
class Success:
    strategy: str
    content: str
    elapsed: float
    status_code: Optional[int] = None
    final_url: Optional[str] = None
    tls_verified: bool = True

    ok = True


@dataclass(frozen=True)
class Failure:
    strategy: str
    reason: FailureReason
    message: str
    elapsed: float
    tls_verified: bool = True

    ok = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "reason": self.reason.value,
            "detail": self.message,
            "elapsed": round(self.elapsed, 3),
            "tls_verified": self.tls_verified,
        }


StrategyOutcome = Union[Success, Failure]

EXHAUSTED_SUMMARY = "no retrieval strategy succeeded"


@dataclass(frozen=True)
class FetchResult:
    url: str
    success: Optional[Success]
    attempts: Tuple[Failure, ...] = field(default_factory=tuple)
    elapsed: float = 0.0
    summary: str = ""

    @property
    def ok(self) -> bool:
        return self.success is not None

    def raise_for_failure(self) -> "FetchResult":
        if not self.ok:
            raise AllStrategiesExhausted(self)
        return self

    def to_dict(self) -> Dict[str, Any]:
        attempts = [failure.to_dict() for failure in self.attempts]
        if self.success is None:
            return {
                "success": False,
                "url": self.url,
                "attempts": attempts,
                "summary": self.summary,
                "elapsed": round(self.elapsed, 3),
            }

        won = self.success
        return {
            "success": True,
            "url": self.url,
            "strategy": won.strategy,
            "content": won.content,
            "elapsed": round(self.elapsed, 3),
            "tls_verified": won.tls_verified,
            "status_code": won.status_code,
            "final_url": won.final_url,
            **page_stats(won.content),
            "attempts": attempts,
        }


class BaseStrategy:
    """
    One way of retrieving a URL.

    Subclasses implement _retrieve() and raise StrategyError subclasses on
    failure; attempt() turns that into a Failure and never raises for
    retrieval problems. Cancellation is always propagated.
    """

    name: str = "base"
    tls_verified: bool = True

    async def attempt(self, url: str, timeout: float) -> StrategyOutcome:
        started = time.monotonic()
        try:
            retrieved = await asyncio.wait_for(self._retrieve(url, timeout), timeout)
            if not retrieved.content or not retrieved.content.strip():
                raise StrategyEmptyContent(f"{self.name} returned an empty document")
        except asyncio.TimeoutError:
            return self._failure(FailureReason.TIMEOUT, f"timed out after {timeout:g}s", started)
        except StrategyError as e:
            return self._failure(e.reason, str(e), started)

        return Success(
            strategy=self.name,
            content=retrieved.content,
            elapsed=time.monotonic() - started,
            status_code=retrieved.status_code,
            final_url=retrieved.final_url,
            tls_verified=self.tls_verified,
        )

    async def _retrieve(self, url: str, timeout: float) -> RetrievedContent:
        raise NotImplementedError

    def _failure(self, reason: FailureReason, message: str, started: float) -> Failure:
        return Failure(
            strategy=self.name,
            reason=reason,
            message=message,
            elapsed=time.monotonic() - started,
            tls_verified=self.tls_verified,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
