import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import Browser, Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from app.core.config import settings
from app.core.log import get_logger
from app.fetch.base import BaseStrategy, RetrievedContent
from app.fetch.errors import (
    StrategyEngineFailure,
    StrategyOversized,
    StrategyRefused,
    StrategyTimeout,
)
from app.fetch.utils import check_status

logger = get_logger(__name__)

# Bound on browser.close(); the driver shutdown after it kills whatever is left
CLOSE_TIMEOUT_SECONDS = 5.0

_REFUSED_MARKERS = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_ADDRESS_UNREACHABLE",
    "ERR_INTERNET_DISCONNECTED",
)

_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--disable-features=VizDisplayCompositor'
]


@asynccontextmanager
async def launch_chromium(headless: bool = True) -> AsyncIterator[Browser]:
    """
    Start a Playwright driver and a chromium instance for one attempt.

    The browser is closed on every exit path, including cancellation. The
    driver is stopped after that, which also takes down a browser whose
    close() failed.
    """
    try:
        p = await async_playwright().start()
    except (PlaywrightError, OSError) as e:
        raise StrategyEngineFailure(f"Could not start Playwright driver: {e}")

    try:
        try:
            browser = await p.chromium.launch(headless=headless, args=_LAUNCH_ARGS)
        except PlaywrightError as e:
            raise StrategyEngineFailure(f"Could not start browser: {e}")

        try:
            yield browser
        finally:
            try:
                await asyncio.wait_for(browser.close(), CLOSE_TIMEOUT_SECONDS)
            except (PlaywrightError, asyncio.TimeoutError):
                logger.warning("Browser close failed, stopping the driver instead", exc_info=True)
    finally:
        await p.stop()


class RenderedBrowserStrategy(BaseStrategy):
    """
    Load the page in headless chromium and return the rendered DOM.

    Navigation waits for DOMContentLoaded rather than network idle, plus an
    optional settle delay for late scripts. The navigation timeout is the
    attempt budget and BaseStrategy.attempt adds a wall-clock guard on top, so
    a hung engine is cancelled and torn down.
    """

    name = "rendered"

    def __init__(
        self,
        headless: Optional[bool] = None,
        settle_ms: Optional[int] = None,
        user_agent: Optional[str] = None,
        max_bytes: Optional[int] = None,
        accept_client_errors: bool = False,
        launcher: Optional[Callable[..., AsyncIterator[Browser]]] = None,
    ):
        self.headless = settings.PLAYWRIGHT_HEADLESS if headless is None else headless
        self.settle_ms = settings.RENDER_SETTLE_MS if settle_ms is None else settle_ms
        self.user_agent = user_agent or settings.USER_AGENT
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_CONTENT_BYTES
        self.accept_client_errors = accept_client_errors
        self.launcher = launcher or launch_chromium

    async def _retrieve(self, url: str, timeout: float) -> RetrievedContent:
        async with self.launcher(headless=self.headless) as browser:
            try:
                page = await browser.new_page(user_agent=self.user_agent)
                response = await page.goto(url, timeout=timeout * 1000, wait_until="domcontentloaded")
                if response is not None:
                    check_status(response.status, self.accept_client_errors)

                if self.settle_ms > 0:
                    await page.wait_for_timeout(self.settle_ms)

                html = await page.content()
                final_url = page.url
            except PlaywrightTimeout:
                raise StrategyTimeout(f"Timeout while rendering {url}")
            except PlaywrightError as e:
                message = str(e)
                if any(marker in message for marker in _REFUSED_MARKERS):
                    raise StrategyRefused(f"Could not connect to {url}: {message}")
                raise StrategyEngineFailure(f"Failed to render {url}: {message}")

        if len(html.encode("utf-8")) > self.max_bytes:
            raise StrategyOversized(f"Rendered document exceeds limit of {self.max_bytes} bytes")

        return RetrievedContent(
            content=html,
            status_code=response.status if response is not None else None,
            final_url=final_url,
        )
