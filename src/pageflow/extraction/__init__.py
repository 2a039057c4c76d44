"""Extraction module: rule interpretation, pagination and export."""

from .models import (
    ExtractionRule,
    ExtractionSchema,
    ExtractionResult,
    PaginationConfig,
    OutputConfig,
)
from .interpreter import RuleInterpreter
from .pagination import PaginationDriver, advance_to_next_page
from .extractor import DataExtractor, quick_extract

__all__ = [
    "ExtractionRule",
    "ExtractionSchema",
    "ExtractionResult",
    "PaginationConfig",
    "OutputConfig",
    "RuleInterpreter",
    "PaginationDriver",
    "advance_to_next_page",
    "DataExtractor",
    "quick_extract",
]
