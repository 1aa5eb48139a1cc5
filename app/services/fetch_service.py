import asyncio
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.log import get_logger
from app.fetch.base import FetchRequest, FetchResult
from app.fetch.errors import DeadlineExceeded, InvalidInput
from app.fetch.orchestrator import FallbackOrchestrator

logger = get_logger(__name__)


async def process_fetch_request(
    orchestrator: FallbackOrchestrator,
    url: Optional[str],
    timeout: Optional[float] = None,
    strategy: Optional[str] = None,
    deadline: Optional[float] = None,
) -> FetchResult:
    """
    Validate input and run the orchestrator under the caller's deadline.

    Raises InvalidInput before any strategy runs, and DeadlineExceeded if the
    whole ladder outlives the deadline (the running strategy is cancelled).
    """
    request = FetchRequest.create(url, timeout=timeout, strategy=strategy)
    if request.strategy:
        # fail fast on unknown names, before the deadline clock starts
        orchestrator.get_strategy(request.strategy)

    deadline = deadline or settings.REQUEST_DEADLINE
    logger.info("Fetching %s", request.url)
    try:
        return await asyncio.wait_for(orchestrator.fetch(request), deadline)
    except asyncio.TimeoutError:
        logger.warning("Deadline of %gs exceeded for %s", deadline, request.url)
        raise DeadlineExceeded(f"No result for {request.url} within {deadline:g}s")


async def process_batch_request(
    orchestrator: FallbackOrchestrator,
    urls: List[str],
    timeout: Optional[float] = None,
    strategy: Optional[str] = None,
    deadline: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """
    Fetch up to MAX_BATCH_URLS URLs concurrently and report per URL.

    Each URL gets its own entry; a rejected or overdue URL never touches its
    siblings.
    """
    if not urls:
        raise InvalidInput("At least one URL is required")
    if len(urls) > settings.MAX_BATCH_URLS:
        raise InvalidInput(f"At most {settings.MAX_BATCH_URLS} URLs per batch, got {len(urls)}")
    if strategy:
        orchestrator.get_strategy(strategy)

    entries: List[Optional[Dict[str, Any]]] = []
    requests: List[FetchRequest] = []
    for url in urls:
        try:
            requests.append(FetchRequest.create(url, timeout=timeout, strategy=strategy))
        except InvalidInput as e:
            entries.append({"success": False, "url": url, "attempts": [], "summary": str(e), "elapsed": 0.0})
        else:
            entries.append(None)

    logger.info("Fetching batch of %d URLs", len(requests))
    results = iter(await orchestrator.fetch_many(requests, deadline=deadline or settings.REQUEST_DEADLINE))
    return [entry if entry is not None else next(results).to_dict() for entry in entries]
