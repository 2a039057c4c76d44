"""Extraction schema and result models."""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..browser.capability import xpath_selector
from ..core.errors import NoSelectorError


ExtractionType = Literal[
    "text", "html", "attribute", "value", "href", "src",
    "table", "list", "json", "screenshot",
    "form", "links", "images", "metadata",
]

TransformType = Literal["trim", "lowercase", "uppercase", "number", "date", "json"]

# Types that work without an explicit locator
DEFAULT_SELECTORS: dict[str, Optional[str]] = {
    "metadata": None,
    "links": "a[href]",
    "images": "img",
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractionRule(_CamelModel):
    """One node of an extraction rule tree."""

    id: str = ""
    name: str
    type: ExtractionType = "text"
    selector: Optional[str] = None
    xpath: Optional[str] = None
    attribute: Optional[str] = None
    regex: Optional[str] = None
    transform: Optional[TransformType] = None
    multiple: bool = False
    optional: bool = False
    fallback_selector: Optional[str] = None
    children: list["ExtractionRule"] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_locator(self) -> "ExtractionRule":
        if not self.selector and not self.xpath and self.type not in DEFAULT_SELECTORS:
            raise NoSelectorError(
                f"Rule '{self.name}' of type '{self.type}' needs a selector or xpath",
                rule=self.name,
            )
        return self

    @property
    def locator(self) -> Optional[str]:
        """Authoritative locator: selector wins over xpath."""
        if self.selector:
            return self.selector
        if self.xpath:
            return xpath_selector(self.xpath)
        return DEFAULT_SELECTORS.get(self.type)


class PaginationConfig(_CamelModel):
    next_selector: Optional[str] = None
    max_pages: int = Field(default=1, ge=1)
    wait_between_pages: int = Field(default=2000, ge=0)


class OutputConfig(_CamelModel):
    format: Literal["json", "csv"] = "json"
    filename: Optional[str] = None


class ExtractionSchema(_CamelModel):
    """Rules to apply to every page, plus optional pagination policy."""

    id: str
    name: str = ""
    description: Optional[str] = None
    url: Optional[str] = None
    rules: list[ExtractionRule] = Field(default_factory=list)
    pagination: Optional[PaginationConfig] = None
    output: Optional[OutputConfig] = None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExtractionResult(_CamelModel):
    """Data extracted from one visited page."""

    schema_id: str
    url: str
    timestamp: str = Field(default_factory=utc_timestamp)
    data: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    page_number: int = 1
