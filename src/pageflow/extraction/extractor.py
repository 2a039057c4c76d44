"""Extraction session: run a schema, keep the results, export them."""

import csv
import io
import json
from typing import Any, Optional

import structlog

from ..browser.capability import PageHandle
from .interpreter import RuleInterpreter
from .models import ExtractionResult, ExtractionSchema
from .pagination import PaginationDriver


logger = structlog.get_logger()


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


class DataExtractor:
    """
    Extraction session bound to one page.

    Each extract() call replaces the previous session output. Results are
    never mutated after they are collected.
    """

    def __init__(
        self,
        page: PageHandle,
        interpreter: Optional[RuleInterpreter] = None,
        driver: Optional[PaginationDriver] = None,
    ):
        self.page = page
        self.driver = driver or PaginationDriver(interpreter)
        self._results: list[ExtractionResult] = []

    async def extract(self, schema: ExtractionSchema) -> list[ExtractionResult]:
        self._results = []
        logger.info("extraction_started", schema_id=schema.id, url=self.page.url)

        results = await self.driver.run(schema, self.page)
        self._results = list(results)

        logger.info(
            "extraction_finished",
            schema_id=schema.id,
            pages=len(results),
            errors=sum(len(r.errors) for r in results),
        )
        return list(self._results)

    @property
    def results(self) -> list[ExtractionResult]:
        return list(self._results)

    def to_json(self) -> str:
        """Export results as an indented JSON array (camelCase keys)."""
        return json.dumps(
            [r.model_dump(by_alias=True) for r in self._results],
            indent=2,
            default=str,
        )

    @staticmethod
    def parse_results(text: str) -> list[ExtractionResult]:
        """Rebuild results from to_json() output."""
        return [ExtractionResult.model_validate(item) for item in json.loads(text)]

    def to_csv(self) -> str:
        """
        Export one row per result.

        Columns are the data keys of the first result; every cell is quoted
        with embedded quotes doubled.
        """
        if not self._results:
            return ""

        headers = list(self._results[0].data.keys())
        if not headers:
            return ""

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(headers)
        for result in self._results:
            writer.writerow([_csv_cell(result.data.get(h)) for h in headers])

        return buffer.getvalue().rstrip("\n")


async def quick_extract(page: PageHandle, selectors: dict[str, str]) -> dict[str, Optional[str]]:
    """Read the text of the first match for each named selector; failures become None."""
    results: dict[str, Optional[str]] = {}

    for name, selector in selectors.items():
        try:
            element = await page.find(selector)
            results[name] = await element.read_text() if element else None
        except Exception as e:
            logger.debug("quick_extract_failed", name=name, selector=selector, error=str(e))
            results[name] = None

    return results
