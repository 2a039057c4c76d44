"""Page capability and its Playwright implementation."""

from .capability import ElementHandle, PageHandle, xpath_selector, XPATH_PREFIX

__all__ = ["ElementHandle", "PageHandle", "xpath_selector", "XPATH_PREFIX"]
