"""Pagination driver - repeats schema extraction across "next page" clicks."""

from typing import Awaitable, Callable, Optional

import structlog

from ..browser.capability import PageHandle
from ..core.config import ExtractionConfig
from .interpreter import RuleInterpreter
from .models import ExtractionResult, ExtractionSchema


logger = structlog.get_logger()

# advance_page(page, next_selector, wait_ms) -> moved to a new page?
AdvancePage = Callable[[PageHandle, str, int], Awaitable[bool]]


async def advance_to_next_page(
    page: PageHandle,
    next_selector: str,
    wait_ms: int,
    load_state: str = "networkidle",
) -> bool:
    """
    Click the next-page affordance, wait for the network to settle, then pause.

    Returns False when the affordance is missing or disabled, or when
    clicking/navigation fails. That is the natural end of results.
    """
    try:
        next_button = await page.find(next_selector)
        if next_button is None:
            logger.info("pagination_stopped", reason="next_not_found", selector=next_selector)
            return False

        if await next_button.read_attribute("disabled") is not None:
            logger.info("pagination_stopped", reason="next_disabled", selector=next_selector)
            return False

        await next_button.click()
        await page.wait_for(load_state)
        await page.wait(wait_ms)
        return True

    except Exception as e:
        logger.info("pagination_stopped", reason="navigation_failed", error=str(e))
        return False


class PaginationDriver:
    """Runs a schema on the current page and on each following page up to maxPages."""

    def __init__(
        self,
        interpreter: Optional[RuleInterpreter] = None,
        advance_page: Optional[AdvancePage] = None,
        config: Optional[ExtractionConfig] = None,
    ):
        self.config = config or ExtractionConfig()
        self.interpreter = interpreter or RuleInterpreter(max_depth=self.config.max_rule_depth)
        self._advance_page = advance_page

    async def run(self, schema: ExtractionSchema, page: PageHandle) -> list[ExtractionResult]:
        pagination = schema.pagination
        next_selector = pagination.next_selector if pagination else None
        max_pages = pagination.max_pages if pagination else self.config.default_max_pages
        wait_ms = pagination.wait_between_pages if pagination else self.config.wait_between_pages_ms

        results: list[ExtractionResult] = []
        page_number = 1

        while True:
            results.append(await self.interpreter.extract_schema(schema, page, page_number))

            if not next_selector or page_number >= max_pages:
                break

            if not await self._advance(page, next_selector, wait_ms):
                break
            page_number += 1

        logger.info(
            "pagination_complete",
            schema_id=schema.id,
            pages=len(results),
            max_pages=max_pages,
        )
        return results

    async def _advance(self, page: PageHandle, next_selector: str, wait_ms: int) -> bool:
        if self._advance_page:
            try:
                return await self._advance_page(page, next_selector, wait_ms)
            except Exception as e:
                logger.info("pagination_stopped", reason="navigation_failed", error=str(e))
                return False
        return await advance_to_next_page(page, next_selector, wait_ms, self.config.load_state)
