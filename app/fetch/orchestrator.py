"""
Fallback orchestration over an ordered list of retrieval strategies.

Strategies run one at a time, cheapest first. The first non-empty success
wins and nothing after it is invoked; every failure before it is kept, in
order, on the result.
"""

import asyncio
import time
from typing import Dict, List, Optional, Sequence

from app.core.config import Settings, settings as default_settings
from app.core.log import get_logger
from app.fetch.base import (
    EXHAUSTED_SUMMARY,
    BaseStrategy,
    Failure,
    FetchRequest,
    FetchResult,
    StrategyOutcome,
)
from app.fetch.errors import FailureReason, InvalidInput
from app.fetch.js_scraper import RenderedBrowserStrategy
from app.fetch.requests_fetcher import MinimalClientStrategy
from app.fetch.scraper import (
    AlternateHeaderStrategy,
    DirectHTTPStrategy,
    InsecureTransportStrategy,
    browser_headers,
)

logger = get_logger(__name__)

# Extra time given to a strategy past its own budget before the orchestrator
# abandons it
GUARD_MARGIN_SECONDS = 2.0


class FallbackOrchestrator:
    def __init__(self, strategies: Sequence[BaseStrategy], guard_margin: float = GUARD_MARGIN_SECONDS):
        names = [s.name for s in strategies]
        if len(set(names)) != len(names):
            raise ValueError(f"Strategy names must be unique, got {names}")
        self._strategies = tuple(strategies)
        self.guard_margin = guard_margin

    @property
    def strategies(self) -> List[BaseStrategy]:
        return list(self._strategies)

    @property
    def strategy_names(self) -> List[str]:
        return [s.name for s in self._strategies]

    def get_strategy(self, name: str) -> BaseStrategy:
        for strategy in self._strategies:
            if strategy.name == name:
                return strategy
        raise InvalidInput(
            f"Unknown strategy {name!r}, expected one of: {', '.join(self.strategy_names)}"
        )

    async def fetch(self, request: FetchRequest) -> FetchResult:
        started = time.monotonic()

        if request.strategy:
            strategy = self.get_strategy(request.strategy)
            outcome = await self._run(strategy, request)
            elapsed = time.monotonic() - started
            if outcome.ok:
                return FetchResult(url=request.url, success=outcome, elapsed=elapsed)
            return FetchResult(
                url=request.url,
                success=None,
                attempts=(outcome,),
                elapsed=elapsed,
                summary=f"strategy {strategy.name!r} failed: {outcome.message}",
            )

        failures: List[Failure] = []
        for strategy in self._strategies:
            outcome = await self._run(strategy, request)
            if outcome.ok:
                logger.info(
                    "Fetched %s via %s in %.2fs (%d failed before)",
                    request.url, strategy.name, outcome.elapsed, len(failures),
                )
                return FetchResult(
                    url=request.url,
                    success=outcome,
                    attempts=tuple(failures),
                    elapsed=time.monotonic() - started,
                )
            failures.append(outcome)

        logger.warning("All strategies failed for %s: %s", request.url,
                       ", ".join(f"{f.strategy}={f.reason.value}" for f in failures))
        return FetchResult(
            url=request.url,
            success=None,
            attempts=tuple(failures),
            elapsed=time.monotonic() - started,
            summary=EXHAUSTED_SUMMARY,
        )

    async def fetch_many(
        self, requests: Sequence[FetchRequest], deadline: Optional[float] = None
    ) -> List[FetchResult]:
        """
        One independent fetch per request; results keep the input order.

        With a deadline, a fetch still running when it expires is cancelled and
        reported as its own failed result. Siblings keep their outcomes.
        """
        return list(await asyncio.gather(*(self._fetch_within(r, deadline) for r in requests)))

    async def _fetch_within(self, request: FetchRequest, deadline: Optional[float]) -> FetchResult:
        if deadline is None:
            return await self.fetch(request)
        started = time.monotonic()
        try:
            return await asyncio.wait_for(self.fetch(request), deadline)
        except asyncio.TimeoutError:
            logger.warning("Deadline of %gs exceeded for %s", deadline, request.url)
            return FetchResult(
                url=request.url,
                success=None,
                elapsed=time.monotonic() - started,
                summary=f"No result for {request.url} within {deadline:g}s",
            )

    async def _run(self, strategy: BaseStrategy, request: FetchRequest) -> StrategyOutcome:
        started = time.monotonic()
        try:
            outcome = await asyncio.wait_for(
                strategy.attempt(request.url, request.timeout),
                request.timeout + self.guard_margin,
            )
        except asyncio.TimeoutError:
            outcome = Failure(
                strategy=strategy.name,
                reason=FailureReason.TIMEOUT,
                message=f"abandoned after {request.timeout + self.guard_margin:g}s",
                elapsed=time.monotonic() - started,
                tls_verified=strategy.tls_verified,
            )
        except Exception as e:
            logger.exception("Strategy %s raised unexpectedly for %s", strategy.name, request.url)
            outcome = Failure(
                strategy=strategy.name,
                reason=FailureReason.UNKNOWN,
                message=f"{type(e).__name__}: {e}",
                elapsed=time.monotonic() - started,
                tls_verified=strategy.tls_verified,
            )

        # strategies that override attempt() skip the check in BaseStrategy
        if outcome.ok and not (outcome.content or "").strip():
            outcome = Failure(
                strategy=strategy.name,
                reason=FailureReason.EMPTY,
                message=f"{strategy.name} returned an empty document",
                elapsed=outcome.elapsed,
                tls_verified=strategy.tls_verified,
            )

        if not outcome.ok:
            logger.info("Strategy %s failed for %s: %s (%s)",
                        strategy.name, request.url, outcome.reason.value, outcome.message)
        return outcome


def build_default_strategies(config: Optional[Settings] = None) -> List[BaseStrategy]:
    """Cost-ordered strategy list. ENABLED_STRATEGIES can drop entries, not reorder them."""
    config = config or default_settings
    limits = {"max_bytes": config.MAX_CONTENT_BYTES, "max_redirects": config.MAX_REDIRECTS}
    available: Dict[str, BaseStrategy] = {
        "direct": DirectHTTPStrategy(headers=browser_headers(config.USER_AGENT), **limits),
        "mobile": AlternateHeaderStrategy(headers=browser_headers(config.MOBILE_USER_AGENT), **limits),
        "rendered": RenderedBrowserStrategy(
            headless=config.PLAYWRIGHT_HEADLESS,
            settle_ms=config.RENDER_SETTLE_MS,
            user_agent=config.USER_AGENT,
            max_bytes=config.MAX_CONTENT_BYTES,
        ),
        "minimal": MinimalClientStrategy(user_agent=config.MINIMAL_USER_AGENT, **limits),
    }
    if config.ALLOW_INSECURE_TRANSPORT:
        available["insecure"] = InsecureTransportStrategy(headers=browser_headers(config.USER_AGENT), **limits)

    enabled = set(config.enabled_strategies())
    order = ("direct", "mobile", "insecure", "rendered", "minimal")
    return [available[name] for name in order if name in available and name in enabled]


def build_default_orchestrator(config: Optional[Settings] = None) -> FallbackOrchestrator:
    return FallbackOrchestrator(build_default_strategies(config))
