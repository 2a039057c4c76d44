"""
Page capability interface consumed by the extraction engine.

The engine never talks to a browser driver directly. Anything that can find
elements and read their content satisfies these protocols: the Playwright
adapter in production, an in-memory fake in tests.

Selectors are CSS unless prefixed with ``xpath=``.
"""

from typing import Optional, Protocol, runtime_checkable


XPATH_PREFIX = "xpath="


def xpath_selector(xpath: str) -> str:
    return f"{XPATH_PREFIX}{xpath}"


@runtime_checkable
class ElementHandle(Protocol):
    """A single element within a page."""

    async def find(self, selector: str) -> Optional["ElementHandle"]:
        ...

    async def find_all(self, selector: str) -> list["ElementHandle"]:
        ...

    async def read_text(self) -> Optional[str]:
        ...

    async def read_html(self) -> str:
        ...

    async def read_attribute(self, name: str) -> Optional[str]:
        ...

    async def read_value(self) -> Optional[str]:
        ...

    async def is_checked(self) -> bool:
        ...

    async def click(self) -> None:
        ...

    async def screenshot(self) -> bytes:
        ...


@runtime_checkable
class PageHandle(Protocol):
    """The current page."""

    @property
    def url(self) -> str:
        ...

    async def find(self, selector: str) -> Optional[ElementHandle]:
        ...

    async def find_all(self, selector: str) -> list[ElementHandle]:
        ...

    async def read_metadata(self) -> dict[str, Optional[str]]:
        """Title, description, keywords, author, Open Graph fields, canonical link."""
        ...

    async def wait_for(self, state: str = "networkidle") -> None:
        ...

    async def wait(self, ms: int) -> None:
        ...
