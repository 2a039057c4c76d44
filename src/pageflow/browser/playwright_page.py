"""
Playwright adapter - exposes a Playwright page through the page capability.

Wraps the async Playwright API with:
- CSS and xpath= selectors (Playwright understands both natively)
- A fixed metadata snippet evaluated in the page
- Default timeouts for load-state waits
"""

from typing import Optional

import structlog
from playwright.async_api import ElementHandle as PWElementHandle
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..core.errors import BrowserError


logger = structlog.get_logger()


METADATA_SCRIPT = """() => {
    const getMeta = (name) => {
        const el = document.querySelector(`meta[name="${name}"], meta[property="${name}"]`);
        return el ? el.getAttribute('content') : null;
    };
    const canonical = document.querySelector('link[rel="canonical"]');
    return {
        title: document.title,
        description: getMeta('description'),
        keywords: getMeta('keywords'),
        author: getMeta('author'),
        ogTitle: getMeta('og:title'),
        ogDescription: getMeta('og:description'),
        ogImage: getMeta('og:image'),
        canonical: canonical ? canonical.getAttribute('href') : null,
    };
}"""


class PlaywrightElement:
    """Element handle adapter."""

    def __init__(self, handle: PWElementHandle):
        self.handle = handle

    async def find(self, selector: str) -> Optional["PlaywrightElement"]:
        element = await self.handle.query_selector(selector)
        return PlaywrightElement(element) if element else None

    async def find_all(self, selector: str) -> list["PlaywrightElement"]:
        elements = await self.handle.query_selector_all(selector)
        return [PlaywrightElement(el) for el in elements]

    async def read_text(self) -> Optional[str]:
        return await self.handle.text_content()

    async def read_html(self) -> str:
        return await self.handle.inner_html()

    async def read_attribute(self, name: str) -> Optional[str]:
        return await self.handle.get_attribute(name)

    async def read_value(self) -> Optional[str]:
        return await self.handle.input_value()

    async def is_checked(self) -> bool:
        return await self.handle.is_checked()

    async def click(self) -> None:
        await self.handle.click()

    async def screenshot(self) -> bytes:
        return await self.handle.screenshot(type="png")


class PlaywrightPage:
    """Page capability backed by a Playwright page."""

    def __init__(self, page: Page, default_timeout: int = 30000):
        """
        Initialize the adapter.

        Args:
            page: Playwright page instance
            default_timeout: Timeout in milliseconds for load-state waits
        """
        self.page = page
        self.default_timeout = default_timeout

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        """Navigate to URL (used by the CLI before extracting)."""
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=self.default_timeout)
        except PlaywrightError as e:
            raise BrowserError(f"Navigation failed: {e}", url=url)
        logger.info("page_navigated", url=self.page.url)

    async def find(self, selector: str) -> Optional[PlaywrightElement]:
        element = await self.page.query_selector(selector)
        return PlaywrightElement(element) if element else None

    async def find_all(self, selector: str) -> list[PlaywrightElement]:
        elements = await self.page.query_selector_all(selector)
        return [PlaywrightElement(el) for el in elements]

    async def read_metadata(self) -> dict[str, Optional[str]]:
        return await self.page.evaluate(METADATA_SCRIPT)

    async def wait_for(self, state: str = "networkidle") -> None:
        await self.page.wait_for_load_state(state, timeout=self.default_timeout)

    async def wait(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)
