import asyncio
import socket
import threading
import time
from typing import Iterator, Optional

import requests

from app.core.config import settings
from app.core.log import get_logger
from app.fetch.base import BaseStrategy, RetrievedContent
from app.fetch.errors import (
    StrategyError,
    StrategyRedirectLoop,
    StrategyRefused,
    StrategyTimeout,
)
from app.fetch.utils import (
    charset_from_content_type,
    check_content_type,
    check_declared_length,
    check_status,
    decode_body,
    read_capped,
)

logger = get_logger(__name__)

_CHUNK_SIZE = 64 * 1024


class _Transfer:
    """
    Handle shared between the event loop and the worker thread for one download.

    The worker stops at the total deadline or once cancel() is called. cancel()
    also shuts the response socket down, which wakes a read blocked on a server
    that trickles bytes slower than the chunk size but faster than the read
    timeout.
    """

    def __init__(self, deadline: float):
        self.deadline = deadline
        self.cancelled = threading.Event()
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None

    @property
    def stopped(self) -> bool:
        return self.cancelled.is_set() or time.monotonic() >= self.deadline

    def attach(self, response: requests.Response) -> None:
        with self._lock:
            self._response = response

    def detach(self) -> None:
        with self._lock:
            self._response = None

    def cancel(self) -> None:
        with self._lock:
            self.cancelled.set()
            response = self._response
        if response is not None:
            _shutdown_socket(response)

    def chunks(self, response: requests.Response) -> Iterator[bytes]:
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if self.stopped:
                raise StrategyTimeout(f"Gave up reading {response.url}")
            yield chunk
        # a shut down socket can look like a short close-delimited body
        if self.stopped:
            raise StrategyTimeout(f"Gave up reading {response.url}")


def _shutdown_socket(response: requests.Response) -> None:
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("Socket for %s already closed: %s", response.url, e)


class MinimalClientStrategy(BaseStrategy):
    """
    Last resort: plain requests session with nothing but a short User-Agent,
    for endpoints that reject elaborate browser fingerprints.

    requests is blocking, so the call runs in a worker thread. The requests
    timeout only bounds each socket read, so the thread also carries a total
    deadline, and when the coroutine is cancelled the open socket is shut down
    so the thread exits instead of reading on in the background.
    """

    name = "minimal"

    def __init__(
        self,
        user_agent: Optional[str] = None,
        max_bytes: Optional[int] = None,
        max_redirects: Optional[int] = None,
        accept_client_errors: bool = False,
    ):
        self.user_agent = user_agent or settings.MINIMAL_USER_AGENT
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_CONTENT_BYTES
        self.max_redirects = max_redirects if max_redirects is not None else settings.MAX_REDIRECTS
        self.accept_client_errors = accept_client_errors

    async def _retrieve(self, url: str, timeout: float) -> RetrievedContent:
        transfer = _Transfer(deadline=time.monotonic() + timeout)
        try:
            return await asyncio.to_thread(self._get, url, timeout, transfer)
        finally:
            transfer.cancel()

    def _get(self, url: str, timeout: float, transfer: _Transfer) -> RetrievedContent:
        try:
            with requests.Session() as session:
                session.max_redirects = self.max_redirects
                with session.get(
                    url,
                    headers={"User-Agent": self.user_agent, "Accept": "*/*"},
                    timeout=timeout,
                    stream=True,
                    allow_redirects=True,
                ) as resp:
                    transfer.attach(resp)
                    try:
                        check_status(resp.status_code, self.accept_client_errors)
                        content_type = resp.headers.get("content-type")
                        check_content_type(content_type)
                        check_declared_length(resp.headers, self.max_bytes)

                        body = read_capped(transfer.chunks(resp), self.max_bytes)
                    finally:
                        transfer.detach()
                    return RetrievedContent(
                        content=decode_body(body, charset_from_content_type(content_type)),
                        status_code=int(resp.status_code),
                        final_url=str(resp.url),
                    )
        except requests.Timeout as e:
            raise StrategyTimeout(f"Timeout while fetching {url}: {type(e).__name__}")
        except requests.RequestException as e:
            if transfer.stopped:
                # the read failed because cancel() shut the socket
                raise StrategyTimeout(f"Gave up on {url} after {timeout:g}s")
            if isinstance(e, requests.TooManyRedirects):
                raise StrategyRedirectLoop(f"More than {self.max_redirects} redirects for {url}")
            if isinstance(e, requests.ConnectionError):
                raise StrategyRefused(f"Could not connect to {url}: {e}")
            raise StrategyError(f"Request to {url} failed: {e}")
