from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.core.ratelimit import RateLimiter
from app.fetch.errors import DeadlineExceeded, InvalidInput
from app.fetch.orchestrator import FallbackOrchestrator
from app.schemas import (
    BatchFetchRequest,
    BatchFetchResponse,
    FetchCodeRequest,
    FetchResponse,
    StrategiesResponse,
    StrategyInfo,
)
from app.services.fetch_service import process_batch_request, process_fetch_request

router = APIRouter()


def get_orchestrator(request: Request) -> FallbackOrchestrator:
    return request.app.state.orchestrator


def enforce_rate_limit(request: Request) -> None:
    limiter: RateLimiter = request.app.state.rate_limiter
    client_key = request.client.host if request.client else "unknown"
    if not limiter.hit(client_key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please wait and try again",
            headers={"Retry-After": str(int(limiter.retry_after(client_key)) + 1)},
        )


@router.post(
    "/fetch",
    response_model=FetchResponse,
    response_model_exclude_none=True,
    responses={502: {"model": FetchResponse}},
    dependencies=[Depends(enforce_rate_limit)],
)
async def fetch_code(body: FetchCodeRequest, orchestrator: FallbackOrchestrator = Depends(get_orchestrator)):
    """
    Fetch the source of a URL.

    Strategies are tried cheapest first until one returns content. On
    exhaustion the response is 502 with one attempt entry per strategy.
    """
    try:
        result = await process_fetch_request(orchestrator, body.url, timeout=body.timeout, strategy=body.strategy)
    except InvalidInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DeadlineExceeded as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))

    payload = FetchResponse(**result.to_dict())
    if result.ok:
        return payload
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=payload.model_dump(exclude_none=True),
    )


@router.post(
    "/fetch/batch",
    response_model=BatchFetchResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(enforce_rate_limit)],
)
async def fetch_batch(body: BatchFetchRequest, orchestrator: FallbackOrchestrator = Depends(get_orchestrator)):
    """Fetch several URLs at once, each reported separately."""
    try:
        results = await process_batch_request(orchestrator, body.urls, timeout=body.timeout, strategy=body.strategy)
    except InvalidInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return BatchFetchResponse(results=[FetchResponse(**r) for r in results])


@router.get("/strategies", response_model=StrategiesResponse)
async def list_strategies(orchestrator: FallbackOrchestrator = Depends(get_orchestrator)):
    """Configured strategies in the order they are tried"""
    return StrategiesResponse(
        strategies=[StrategyInfo(name=s.name, tls_verified=s.tls_verified) for s in orchestrator.strategies]
    )


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}
