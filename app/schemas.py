from pydantic import BaseModel, Field
from typing import List, Optional


class FetchCodeRequest(BaseModel):
    url: str
    timeout: Optional[float] = Field(None, gt=0, le=120, description="Per-strategy timeout in seconds")
    strategy: Optional[str] = Field(None, description="Run only this strategy, no fallback")


class BatchFetchRequest(BaseModel):
    urls: List[str] = Field(min_length=1)
    timeout: Optional[float] = Field(None, gt=0, le=120)
    strategy: Optional[str] = None


class AttemptOut(BaseModel):
    strategy: str
    reason: str = Field(description="Machine readable failure class, e.g. forbidden or timeout")
    detail: str
    elapsed: float
    tls_verified: bool = True


class FetchResponse(BaseModel):
    success: bool
    url: str
    elapsed: float
    attempts: List[AttemptOut] = Field(default_factory=list)

    # success only
    strategy: Optional[str] = None
    content: Optional[str] = None
    tls_verified: Optional[bool] = Field(None, description="False when certificate validation was skipped")
    status_code: Optional[int] = None
    final_url: Optional[str] = None
    byte_count: Optional[int] = None
    line_count: Optional[int] = None
    title: Optional[str] = None

    # failure only
    summary: Optional[str] = None


class BatchFetchResponse(BaseModel):
    results: List[FetchResponse]


class StrategyInfo(BaseModel):
    name: str
    tls_verified: bool


class StrategiesResponse(BaseModel):
    strategies: List[StrategyInfo]
