"""
httpx based strategies: the cheap rungs of the fallback ladder.

All three share one transport path and differ only in header profile and
certificate verification.
"""

from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.fetch.base import BaseStrategy, RetrievedContent
from app.fetch.errors import (
    StrategyError,
    StrategyRedirectLoop,
    StrategyRefused,
    StrategyTimeout,
)
from app.fetch.utils import (
    aread_capped,
    charset_from_content_type,
    check_content_type,
    check_declared_length,
    check_status,
    decode_body,
)


def browser_headers(user_agent: str) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.7",
        "Accept-Encoding": "gzip, deflate",
        "DNT": "1",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }


class HttpStrategy(BaseStrategy):
    name = "http"

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        max_bytes: Optional[int] = None,
        max_redirects: Optional[int] = None,
        accept_client_errors: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        name: Optional[str] = None,
    ):
        self.headers = headers if headers is not None else browser_headers(settings.USER_AGENT)
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_CONTENT_BYTES
        self.max_redirects = max_redirects if max_redirects is not None else settings.MAX_REDIRECTS
        self.accept_client_errors = accept_client_errors
        self.transport = transport
        if name:
            self.name = name

    def _client_kwargs(self, timeout: float) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "timeout": timeout,
            "headers": self.headers,
            "follow_redirects": True,
            "max_redirects": self.max_redirects,
            "verify": self.tls_verified,
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return kwargs

    async def _retrieve(self, url: str, timeout: float) -> RetrievedContent:
        try:
            async with httpx.AsyncClient(**self._client_kwargs(timeout)) as client:
                async with client.stream("GET", url) as response:
                    check_status(response.status_code, self.accept_client_errors)
                    content_type = response.headers.get("content-type")
                    check_content_type(content_type)
                    check_declared_length(response.headers, self.max_bytes)

                    body = await aread_capped(response.aiter_bytes(), self.max_bytes)
                    charset = charset_from_content_type(content_type)
                    return RetrievedContent(
                        content=decode_body(body, charset),
                        status_code=response.status_code,
                        final_url=str(response.url),
                    )
        except httpx.TimeoutException as e:
            raise StrategyTimeout(f"Timeout while fetching {url}: {type(e).__name__}")
        except httpx.TooManyRedirects:
            raise StrategyRedirectLoop(f"More than {self.max_redirects} redirects for {url}")
        except (httpx.ConnectError, httpx.RemoteProtocolError, httpx.NetworkError) as e:
            raise StrategyRefused(f"Could not connect to {url}: {e}")
        except httpx.HTTPError as e:
            raise StrategyError(f"Request to {url} failed: {e}")


class DirectHTTPStrategy(HttpStrategy):
    """Single GET with a desktop browser header set."""
    name = "direct"


class AlternateHeaderStrategy(HttpStrategy):
    """Same transport with another header profile, mobile by default."""
    name = "mobile"

    def __init__(self, headers: Optional[Dict[str, str]] = None, **kwargs):
        if headers is None:
            headers = browser_headers(settings.MOBILE_USER_AGENT)
        super().__init__(headers=headers, **kwargs)


class InsecureTransportStrategy(HttpStrategy):
    """
    Direct fetch without certificate validation, for targets with broken TLS.

    Every outcome is marked tls_verified=False so the API can say so.
    """
    name = "insecure"
    tls_verified = False
