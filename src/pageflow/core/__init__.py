"""Core engine components."""

from .config import ConfigLoader, EngineConfig, WorkflowDefinition
from .context import EvaluationContext
from .errors import (
    FrameworkError,
    ConfigError,
    NoSelectorError,
    ExtractionError,
    SelectorNotFoundError,
    ExpressionError,
    StepError,
    BrowserError,
)

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "WorkflowDefinition",
    "EvaluationContext",
    "FrameworkError",
    "ConfigError",
    "NoSelectorError",
    "ExtractionError",
    "SelectorNotFoundError",
    "ExpressionError",
    "StepError",
    "BrowserError",
]
