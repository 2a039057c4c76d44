"""Browser session for CLI extraction runs: one Chromium, one context, one page."""

from typing import Optional

import structlog
from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from ..core.config import BrowserConfig
from ..core.errors import BrowserError
from .playwright_page import PlaywrightPage


logger = structlog.get_logger()

LAUNCH_ARGS = [
    "--disable-dev-shm-usage",  # Limited /dev/shm in containers
    "--no-sandbox",
    "--mute-audio",
]


class BrowserManager:
    """
    Owns the Playwright driver and browser for the length of one run.

    Use as an async context manager; the page capability handed out by
    get_page() is only valid inside the block.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()

        self._driver: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Launch Chromium and open the session page."""
        if self._driver is not None:
            return

        logger.info("browser_starting", headless=self.config.headless)

        try:
            self._driver = await async_playwright().start()
            self._browser = await self._driver.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                viewport={
                    "width": self.config.viewport_width,
                    "height": self.config.viewport_height,
                },
            )
            self._context.set_default_timeout(self.config.default_timeout_ms)
            self._page = await self._context.new_page()
        except Exception as e:
            logger.error("browser_start_failed", error=str(e))
            await self.close()
            raise BrowserError(f"Browser launch failed: {e}")

        logger.info("browser_started")

    async def close(self) -> None:
        """Close the browser and stop the driver; safe to call twice."""
        if self._driver is None:
            return

        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            await self._driver.stop()
            self._driver = None
            self._browser = None
            self._context = None
            self._page = None
            logger.info("browser_closed")

    async def get_page(self) -> PlaywrightPage:
        """The session page wrapped as a page capability."""
        if self._context is None:
            raise BrowserError("Browser not started")

        if self._page is None or self._page.is_closed():
            self._page = await self._context.new_page()

        return PlaywrightPage(self._page, default_timeout=self.config.default_timeout_ms)

    @property
    def is_running(self) -> bool:
        return self._browser is not None
