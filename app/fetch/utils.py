import re
from typing import Any, AsyncIterable, Dict, Iterable, Mapping, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from app.fetch.errors import (
    InvalidInput,
    StrategyHTTPError,
    StrategyNonText,
    StrategyOversized,
)

ALLOWED_SCHEMES = ("http", "https")

_TEXT_TYPES = (
    "application/json",
    "application/javascript",
    "application/ecmascript",
    "application/x-javascript",
    "application/xml",
    "application/xhtml+xml",
)

_CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


def validate_url(url: Optional[str]) -> str:
    """
    Return the stripped URL if it is an absolute http(s) URL with a host.
    Raises InvalidInput otherwise.
    """
    if not url or not url.strip():
        raise InvalidInput("URL is required")

    url = url.strip()
    try:
        parts = urlsplit(url)
        # .port raises on garbage like "http://host:abc"
        parts.port
    except ValueError as e:
        raise InvalidInput(f"Malformed URL: {e}")

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidInput("URL must start with http:// or https://")
    if not parts.hostname:
        raise InvalidInput("URL has no host")
    if any(ch.isspace() for ch in url):
        raise InvalidInput("URL must not contain whitespace")
    return url


def is_text_content_type(content_type: Optional[str]) -> bool:
    """Missing content type is accepted, the body is decoded as text anyway."""
    if not content_type:
        return True
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime:
        return True
    return (
        mime.startswith("text/")
        or mime in _TEXT_TYPES
        or mime.endswith("+xml")
        or mime.endswith("+json")
    )


def check_content_type(content_type: Optional[str]) -> None:
    if not is_text_content_type(content_type):
        raise StrategyNonText(f"Content type {content_type!r} is not text")


def check_declared_length(headers: Mapping[str, str], max_bytes: int) -> None:
    """Reject up front when Content-Length already exceeds the ceiling."""
    declared = headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise StrategyOversized(f"Declared size {int(declared)} bytes exceeds limit of {max_bytes} bytes")


def check_status(status_code: int, accept_client_errors: bool = False) -> None:
    if 200 <= status_code < 300:
        return
    if accept_client_errors and 400 <= status_code < 500:
        return
    raise StrategyHTTPError(status_code)


def _check_size(body: bytearray, max_bytes: int) -> None:
    if len(body) > max_bytes:
        raise StrategyOversized(f"Response body exceeds limit of {max_bytes} bytes")


def read_capped(chunks: Iterable[bytes], max_bytes: int) -> bytes:
    """Join chunks, stopping as soon as the total passes max_bytes."""
    body = bytearray()
    for chunk in chunks:
        body.extend(chunk)
        _check_size(body, max_bytes)
    return bytes(body)


async def aread_capped(chunks: AsyncIterable[bytes], max_bytes: int) -> bytes:
    """Async twin of read_capped for streaming clients."""
    body = bytearray()
    async for chunk in chunks:
        body.extend(chunk)
        _check_size(body, max_bytes)
    return bytes(body)


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    match = _CHARSET_RE.search(content_type)
    return match.group(1) if match else None


def decode_body(body: bytes, charset: Optional[str] = None) -> str:
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        # unknown charset label from the server
        return body.decode("utf-8", errors="replace")


def page_stats(content: str) -> Dict[str, Any]:
    """Byte/line counts and document title for display."""
    stats: Dict[str, Any] = {
        "byte_count": len(content.encode("utf-8")),
        "line_count": content.count("\n") + 1 if content else 0,
        "title": None,
    }
    if "<title" in content.lower():
        soup = BeautifulSoup(content, "html.parser")
        if soup.title and soup.title.string:
            stats["title"] = soup.title.string.strip() or None
    return stats
