import asyncio
from typing import Dict, Optional, Union

import pytest

from app.fetch.base import BaseStrategy, RetrievedContent
from app.fetch.errors import StrategyError


class FakeStrategy(BaseStrategy):
    """Strategy double that counts calls and returns canned content or errors"""

    def __init__(
        self,
        name: str,
        content: Union[str, Exception, None] = None,
        delay: float = 0.0,
        per_url: Optional[Dict[str, Union[str, Exception]]] = None,
        tls_verified: bool = True,
    ):
        self.name = name
        self.content = content
        self.delay = delay
        self.per_url = per_url or {}
        self.tls_verified = tls_verified
        self.calls = []

    async def _retrieve(self, url: str, timeout: float) -> RetrievedContent:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.per_url.get(url, self.content)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise StrategyError(f"{self.name} has nothing for {url}")
        return RetrievedContent(content=result, status_code=200, final_url=url)


@pytest.fixture
def make_strategy():
    """Factory for FakeStrategy instances"""
    return FakeStrategy
