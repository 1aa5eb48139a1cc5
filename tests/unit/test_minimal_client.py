import asyncio
import socketserver
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.fetch.errors import FailureReason
from app.fetch.requests_fetcher import MinimalClientStrategy

URL = "http://example.com/"


def fake_session(status=200, chunks=(b"<html>", b"min</html>"), headers=None, error=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers if headers is not None else {"content-type": "text/html"}
    resp.url = URL
    resp.iter_content.return_value = iter(chunks)
    resp.__enter__.return_value = resp

    session = MagicMock()
    session.__enter__.return_value = session
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = resp
    return session


def attempt(strategy, session, timeout=5.0):
    with patch("app.fetch.requests_fetcher.requests.Session", return_value=session):
        return asyncio.run(strategy.attempt(URL, timeout))


class TestMinimalClientStrategy:
    def test_success_with_minimal_headers(self):
        session = fake_session()
        outcome = attempt(MinimalClientStrategy(user_agent="curl/8.0", max_redirects=4), session)

        assert outcome.ok
        assert outcome.strategy == "minimal"
        assert outcome.content == "<html>min</html>"
        assert session.max_redirects == 4
        kwargs = session.get.call_args.kwargs
        assert kwargs["headers"] == {"User-Agent": "curl/8.0", "Accept": "*/*"}
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == 5.0

    def test_forbidden(self):
        outcome = attempt(MinimalClientStrategy(), fake_session(status=403))

        assert outcome.reason == FailureReason.FORBIDDEN

    def test_oversized_stream(self):
        session = fake_session(chunks=[b"x" * 10] * 50)
        outcome = attempt(MinimalClientStrategy(max_bytes=25), session)

        assert outcome.reason == FailureReason.OVERSIZED

    def test_declared_oversize(self):
        session = fake_session(headers={"content-type": "text/html", "content-length": "999999"})
        outcome = attempt(MinimalClientStrategy(max_bytes=100), session)

        assert outcome.reason == FailureReason.OVERSIZED

    def test_non_text(self):
        session = fake_session(headers={"content-type": "application/pdf"})
        outcome = attempt(MinimalClientStrategy(), session)

        assert outcome.reason == FailureReason.NON_TEXT

    def test_timeout(self):
        outcome = attempt(MinimalClientStrategy(), fake_session(error=requests.Timeout("slow")))

        assert outcome.reason == FailureReason.TIMEOUT

    def test_connection_error(self):
        outcome = attempt(MinimalClientStrategy(), fake_session(error=requests.ConnectionError("dns")))

        assert outcome.reason == FailureReason.REFUSED

    def test_redirect_loop(self):
        outcome = attempt(MinimalClientStrategy(), fake_session(error=requests.TooManyRedirects("loop")))

        assert outcome.reason == FailureReason.TOO_MANY_REDIRECTS


class TrickleHandler(socketserver.BaseRequestHandler):
    """Sends headers promising a large body, then one byte every 0.3s"""

    def handle(self):
        self.request.recv(65536)
        self.request.sendall(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/html\r\n"
            b"Content-Length: 100000\r\n"
            b"\r\n"
        )
        try:
            while not self.server.stopping.wait(0.3):
                self.request.sendall(b"a")
        except OSError:
            self.server.client_gone.set()


@pytest.fixture
def trickle_url():
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), TrickleHandler)
    server.daemon_threads = True
    server.stopping = threading.Event()
    server.client_gone = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address
    yield f"http://{host}:{port}/", server
    server.stopping.set()
    server.shutdown()
    server.server_close()


class TestTrickledBody:
    def test_gives_up_at_budget_and_releases_the_connection(self, trickle_url):
        url, server = trickle_url
        started = time.monotonic()
        # asyncio.run only returns once its worker threads have exited
        outcome = asyncio.run(MinimalClientStrategy().attempt(url, 1.0))
        elapsed = time.monotonic() - started

        assert not outcome.ok
        assert outcome.reason == FailureReason.TIMEOUT
        assert elapsed < 3.0
        assert server.client_gone.wait(3.0)
