import asyncio

import httpx
import pytest

from app.fetch.errors import FailureReason
from app.fetch.scraper import (
    AlternateHeaderStrategy,
    DirectHTTPStrategy,
    InsecureTransportStrategy,
    browser_headers,
)

URL = "http://example.com/"


def attempt(strategy, url=URL, timeout=5.0):
    return asyncio.run(strategy.attempt(url, timeout))


def transport_for(handler):
    return httpx.MockTransport(handler)


def html_response(body, status=200, content_type="text/html; charset=utf-8", **kwargs):
    return httpx.Response(status, headers={"content-type": content_type}, content=body, **kwargs)


class TestDirectHTTPStrategy:
    def test_returns_page_source(self):
        strategy = DirectHTTPStrategy(transport=transport_for(lambda request: html_response(b"<html>OK</html>")))
        outcome = attempt(strategy)

        assert outcome.ok
        assert outcome.strategy == "direct"
        assert outcome.content == "<html>OK</html>"
        assert outcome.status_code == 200
        assert outcome.final_url == URL
        assert outcome.tls_verified is True

    def test_sends_browser_headers(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return html_response(b"<html></html> ")

        strategy = DirectHTTPStrategy(headers=browser_headers("DesktopBrowser/1.0"), transport=transport_for(handler))
        attempt(strategy)

        assert seen["user-agent"] == "DesktopBrowser/1.0"
        assert "text/html" in seen["accept"]

    def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "http://example.com/new"})
            return html_response(b"<html>moved</html>")

        outcome = attempt(DirectHTTPStrategy(transport=transport_for(handler)), url="http://example.com/old")

        assert outcome.ok
        assert outcome.final_url == "http://example.com/new"

    @pytest.mark.parametrize("status,reason", [
        (403, FailureReason.FORBIDDEN),
        (401, FailureReason.FORBIDDEN),
        (404, FailureReason.NOT_FOUND),
        (429, FailureReason.HTTP_ERROR),
        (503, FailureReason.HTTP_ERROR),
    ])
    def test_status_classification(self, status, reason):
        strategy = DirectHTTPStrategy(transport=transport_for(lambda request: html_response(b"<html>no</html>", status=status)))
        outcome = attempt(strategy)

        assert not outcome.ok
        assert outcome.reason == reason
        assert str(status) in outcome.message

    def test_client_errors_accepted_when_configured(self):
        strategy = DirectHTTPStrategy(
            accept_client_errors=True,
            transport=transport_for(lambda request: html_response(b"<html>gone</html>", status=404)),
        )
        outcome = attempt(strategy)

        assert outcome.ok
        assert outcome.status_code == 404

    def test_non_text_rejected(self):
        strategy = DirectHTTPStrategy(
            transport=transport_for(lambda request: html_response(b"\x89PNG....", content_type="image/png"))
        )
        outcome = attempt(strategy)

        assert outcome.reason == FailureReason.NON_TEXT

    def test_declared_length_over_limit(self):
        strategy = DirectHTTPStrategy(
            max_bytes=10,
            transport=transport_for(lambda request: html_response(b"x" * 100)),
        )
        outcome = attempt(strategy)

        assert outcome.reason == FailureReason.OVERSIZED

    def test_streamed_body_stops_at_limit(self):
        produced = []

        async def chunks():
            for _ in range(100):
                produced.append(1)
                yield b"0123456789"

        strategy = DirectHTTPStrategy(
            max_bytes=25,
            transport=transport_for(lambda request: httpx.Response(
                200, headers={"content-type": "text/plain"}, content=chunks()
            )),
        )
        outcome = attempt(strategy)

        assert outcome.reason == FailureReason.OVERSIZED
        assert len(produced) < 100

    def test_empty_body_is_failure(self):
        strategy = DirectHTTPStrategy(transport=transport_for(lambda request: html_response(b"")))
        outcome = attempt(strategy)

        assert outcome.reason == FailureReason.EMPTY

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        outcome = attempt(DirectHTTPStrategy(transport=transport_for(handler)))

        assert outcome.reason == FailureReason.REFUSED

    def test_read_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = attempt(DirectHTTPStrategy(transport=transport_for(handler)))

        assert outcome.reason == FailureReason.TIMEOUT

    def test_redirect_loop(self):
        def handler(request):
            return httpx.Response(302, headers={"location": URL})

        outcome = attempt(DirectHTTPStrategy(max_redirects=3, transport=transport_for(handler)))

        assert outcome.reason == FailureReason.TOO_MANY_REDIRECTS

    def test_declared_charset_is_used(self):
        body = "<p>café</p>".encode("latin-1")
        strategy = DirectHTTPStrategy(
            transport=transport_for(lambda request: html_response(body, content_type="text/html; charset=ISO-8859-1"))
        )
        outcome = attempt(strategy)

        assert outcome.content == "<p>café</p>"


class TestHeaderVariants:
    def test_mobile_profile_by_default(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers["user-agent"]
            return html_response(b"<html>m</html>")

        outcome = attempt(AlternateHeaderStrategy(transport=transport_for(handler)))

        assert outcome.strategy == "mobile"
        assert "Mobile" in seen["ua"]

    def test_custom_name_for_extra_profiles(self):
        strategy = AlternateHeaderStrategy(
            headers={"User-Agent": "Bot/2.0"},
            name="bot",
            transport=transport_for(lambda request: html_response(b"<html>b</html>")),
        )

        assert attempt(strategy).strategy == "bot"


class TestInsecureTransport:
    def test_disables_certificate_verification(self):
        strategy = InsecureTransportStrategy()

        assert strategy._client_kwargs(5.0)["verify"] is False
        assert DirectHTTPStrategy()._client_kwargs(5.0)["verify"] is True

    def test_outcomes_are_flagged(self):
        ok = attempt(InsecureTransportStrategy(transport=transport_for(lambda request: html_response(b"<html>ok</html>"))))
        failed = attempt(InsecureTransportStrategy(transport=transport_for(lambda request: html_response(b"", status=403))))

        assert ok.ok and ok.tls_verified is False
        assert not failed.ok and failed.tls_verified is False
