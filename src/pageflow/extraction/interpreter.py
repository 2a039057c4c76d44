"""Extraction rule interpreter - dispatches rules to strategies and shapes results."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from ..browser.capability import ElementHandle, PageHandle
from ..core.errors import ExtractionError, FrameworkError, NoSelectorError
from . import strategies
from .models import DEFAULT_SELECTORS, ExtractionResult, ExtractionRule, ExtractionSchema
from .strategies import Scope, find_required
from .transforms import TransformFunc, post_process


logger = structlog.get_logger()

# Readers for the simple text-bearing types
TEXT_READERS: dict[str, Callable[[ElementHandle, ExtractionRule], Awaitable[Optional[str]]]] = {
    "text": lambda el, rule: strategies.read_trimmed_text(el),
    "html": lambda el, rule: el.read_html(),
    "value": lambda el, rule: el.read_value(),
    "attribute": lambda el, rule: el.read_attribute(rule.attribute or "value"),
    "href": lambda el, rule: el.read_attribute("href"),
    "src": lambda el, rule: el.read_attribute("src"),
}

FIXED_SHAPE_STRATEGIES = {
    "table": strategies.extract_table,
    "json": strategies.extract_json,
    "links": strategies.extract_links,
    "images": strategies.extract_images,
    "form": strategies.extract_form,
    "screenshot": strategies.extract_screenshot,
}


def error_message(error: Exception) -> str:
    return error.message if isinstance(error, FrameworkError) else str(error)


class RuleInterpreter:
    """
    Applies extraction rules to a page.

    Per-rule policy is best effort: a failing rule yields None for its field
    and, unless the rule is optional, an entry in the page's error list.
    Sibling rules always run. Nested list children are walked with an
    explicit depth counter bounded by max_depth.
    """

    def __init__(self, max_depth: int = 8):
        self.max_depth = max_depth
        self._transforms: dict[str, TransformFunc] = {}

    def register_transform(self, name: str, func: TransformFunc) -> None:
        """Register a custom transform (e.g. number/date coercion)."""
        self._transforms[name] = func

    async def extract_schema(
        self,
        schema: ExtractionSchema,
        page: PageHandle,
        page_number: int = 1,
    ) -> ExtractionResult:
        """Apply every top-level rule to the current page."""
        data: dict[str, Any] = {}
        errors: list[str] = []

        for rule in schema.rules:
            data[rule.name] = await self.extract_field(rule, page, errors)

        if errors:
            logger.info(
                "extraction_page_errors",
                schema_id=schema.id,
                page_number=page_number,
                errors=len(errors),
            )

        return ExtractionResult(
            schema_id=schema.id,
            url=page.url,
            data=data,
            errors=errors,
            page_number=page_number,
        )

    async def extract_field(
        self,
        rule: ExtractionRule,
        page: PageHandle,
        errors: list[str],
    ) -> Any:
        """Extract one top-level rule, converting failures into None."""
        try:
            return await self.extract_rule(rule, page, errors=errors)
        except Exception as e:
            message = error_message(e)
            if not rule.optional:
                errors.append(f"{rule.name}: {message}")
            logger.debug(
                "extraction_rule_failed",
                rule=rule.name,
                optional=rule.optional,
                error=message,
            )
            return None

    async def extract_rule(
        self,
        rule: ExtractionRule,
        page: PageHandle,
        scope: Optional[Scope] = None,
        errors: Optional[list[str]] = None,
        depth: int = 0,
    ) -> Any:
        """
        Extract a single rule.

        Args:
            rule: Rule to apply
            page: Page capability (metadata and URL are page level)
            scope: Element or page to query within (defaults to page)
            errors: Error list receiving nested child failures
            depth: Current nesting depth

        Raises the rule's failure; callers decide how to record it.
        """
        if depth > self.max_depth:
            raise ExtractionError(
                f"Maximum rule nesting depth exceeded ({self.max_depth})",
                rule=rule.name,
            )

        if not rule.selector and not rule.xpath and rule.type not in DEFAULT_SELECTORS:
            raise NoSelectorError(rule=rule.name)

        scope = scope or page
        locator = rule.locator

        try:
            return await self._apply(rule, locator, page, scope, errors, depth)
        except Exception as e:
            if not rule.fallback_selector:
                raise
            logger.debug(
                "extraction_fallback_selector",
                rule=rule.name,
                selector=locator,
                fallback=rule.fallback_selector,
                error=error_message(e),
            )
            return await self._apply(rule, rule.fallback_selector, page, scope, errors, depth)

    async def _apply(
        self,
        rule: ExtractionRule,
        selector: Optional[str],
        page: PageHandle,
        scope: Scope,
        errors: Optional[list[str]],
        depth: int,
    ) -> Any:
        if rule.type == "metadata":
            return await strategies.extract_metadata(page)

        if rule.type == "list":
            return await self._extract_list(rule, selector, page, scope, errors, depth)

        strategy = FIXED_SHAPE_STRATEGIES.get(rule.type)
        if strategy:
            return await strategy(scope, selector, rule.name)

        reader = TEXT_READERS.get(rule.type, TEXT_READERS["text"])

        if rule.multiple:
            elements = await scope.find_all(selector)
            values = await asyncio.gather(*(reader(el, rule) for el in elements))
            return [self._post_process(value, rule) for value in values]

        element = await find_required(scope, selector, rule.name)
        return self._post_process(await reader(element, rule), rule)

    async def _extract_list(
        self,
        rule: ExtractionRule,
        selector: str,
        page: PageHandle,
        scope: Scope,
        errors: Optional[list[str]],
        depth: int,
    ) -> list[Any]:
        items = await scope.find_all(selector)

        if not rule.children:
            texts = await asyncio.gather(*(strategies.read_trimmed_text(item) for item in items))
            return [self._post_process(text, rule) for text in texts]

        records = []
        for index, item in enumerate(items):
            record: dict[str, Any] = {}
            for child in rule.children:
                try:
                    record[child.name] = await self.extract_rule(
                        child, page, scope=item, errors=errors, depth=depth + 1,
                    )
                except Exception as e:
                    record[child.name] = None
                    if child.optional:
                        continue
                    message = f"{rule.name}[{index}].{child.name}: {error_message(e)}"
                    if errors is not None:
                        errors.append(message)
                    else:
                        logger.debug("extraction_child_failed", error=message)
            records.append(record)

        return records

    def _post_process(self, value: Any, rule: ExtractionRule) -> Any:
        if not isinstance(value, str):
            return value
        return post_process(value, rule.regex, rule.transform, self._transforms)
