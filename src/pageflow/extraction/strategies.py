"""Fixed-shape extraction strategies (tables, JSON, links, images, forms, metadata, screenshots)."""

import asyncio
import base64
import json
import re
from typing import Any, Optional, Union

import structlog

from ..browser.capability import ElementHandle, PageHandle
from ..core.errors import ExtractionError, SelectorNotFoundError


logger = structlog.get_logger()

Scope = Union[PageHandle, ElementHandle]

_EMBEDDED_JSON = re.compile(r"\{[\s\S]*\}")


async def find_required(scope: Scope, selector: str, rule: Optional[str] = None) -> ElementHandle:
    element = await scope.find(selector)
    if element is None:
        raise SelectorNotFoundError(selector, rule=rule)
    return element


async def read_trimmed_text(element: ElementHandle) -> str:
    text = await element.read_text()
    return text.strip() if text else ""


def _header_keys(texts: list[str]) -> list[str]:
    keys: list[str] = []
    for idx, text in enumerate(texts):
        key = text or f"col_{idx}"
        if key in keys:
            key = f"{key}_{idx}"
        keys.append(key)
    return keys


async def extract_table(scope: Scope, selector: str, rule: Optional[str] = None) -> list[dict[str, str]]:
    """
    First row supplies header labels, following rows become records.

    Blank or missing headers become col_<index>; cells beyond the header
    row are keyed positionally the same way. A repeated header label gets
    its column index appended (Name, Name_1) so no cell is overwritten.
    """
    table = await find_required(scope, selector, rule)
    rows = await table.find_all("tr")

    headers: list[str] = []
    records: list[dict[str, str]] = []

    for row_index, row in enumerate(rows):
        cells = await row.find_all("th, td")
        texts = await asyncio.gather(*(read_trimmed_text(cell) for cell in cells))

        if row_index == 0:
            headers = _header_keys(texts)
            continue

        record = {}
        for idx, text in enumerate(texts):
            key = headers[idx] if idx < len(headers) else f"col_{idx}"
            record[key] = text
        records.append(record)

    return records


async def extract_json(scope: Scope, selector: str, rule: Optional[str] = None) -> Any:
    """Parse element text as JSON, falling back to the outermost {...} span."""
    element = await find_required(scope, selector, rule)
    text = await element.read_text()
    if not text:
        return None

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = _EMBEDDED_JSON.search(text)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    raise ExtractionError("Could not parse JSON", rule=rule, selector=selector)


async def extract_links(scope: Scope, selector: str, rule: Optional[str] = None) -> list[dict[str, str]]:
    links = await scope.find_all(selector)

    async def read(link: ElementHandle) -> dict[str, str]:
        return {
            "text": await read_trimmed_text(link),
            "href": await link.read_attribute("href") or "",
        }

    return list(await asyncio.gather(*(read(link) for link in links)))


async def extract_images(scope: Scope, selector: str, rule: Optional[str] = None) -> list[dict[str, str]]:
    images = await scope.find_all(selector)

    async def read(img: ElementHandle) -> dict[str, str]:
        return {
            "alt": await img.read_attribute("alt") or "",
            "src": await img.read_attribute("src") or "",
        }

    return list(await asyncio.gather(*(read(img) for img in images)))


async def extract_form(scope: Scope, selector: str, rule: Optional[str] = None) -> dict[str, Any]:
    """Named controls only; checkbox/radio report checked state."""
    form = await find_required(scope, selector, rule)
    controls = await form.find_all("input, select, textarea")

    data: dict[str, Any] = {}
    for control in controls:
        name = await control.read_attribute("name")
        if not name:
            continue

        control_type = (await control.read_attribute("type") or "").lower()
        if control_type in ("checkbox", "radio"):
            data[name] = await control.is_checked()
            continue

        try:
            data[name] = await control.read_value()
        except Exception as e:
            logger.debug("form_control_unreadable", name=name, error=str(e))
            data[name] = None

    return data


async def extract_metadata(page: PageHandle) -> dict[str, Optional[str]]:
    return await page.read_metadata()


async def extract_screenshot(scope: Scope, selector: str, rule: Optional[str] = None) -> str:
    element = await find_required(scope, selector, rule)
    image = await element.screenshot()
    return "data:image/png;base64," + base64.b64encode(image).decode("ascii")
