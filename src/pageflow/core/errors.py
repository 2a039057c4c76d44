"""Engine error definitions."""

import hashlib
from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Recovered locally (null field, false condition)
    MEDIUM = "medium"     # Recorded against the result, run continues
    HIGH = "high"         # Aborts the current operation
    CRITICAL = "critical" # Caller programming error


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    NOT_FOUND = "not_found"       # Selector matched nothing
    MALFORMED = "malformed"       # Bad regex, bad JSON, bad expression
    RESOURCE = "resource"         # Iteration caps, nesting depth
    EXTERNAL = "external"         # Browser/page capability failure
    CONFIGURATION = "configuration"  # Invalid schema, workflow or config file


class FrameworkError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.MALFORMED,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def fingerprint(self) -> str:
        """Generate error fingerprint for deduplication."""
        components = [
            self.__class__.__name__,
            self.category.value,
            str(self.context.get("rule", "")),
            str(self.context.get("selector", "")),
        ]
        return hashlib.sha256(":".join(components).encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
            "fingerprint": self.fingerprint(),
        }


class ConfigError(FrameworkError):
    """Configuration, schema or workflow loading error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class NoSelectorError(FrameworkError):
    """An extraction rule that needs a locator was built without one."""

    def __init__(self, message: str = "No selector provided", rule: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)
        self.context["rule"] = rule


class ExtractionError(FrameworkError):
    """A single extraction rule failed."""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        selector: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.context["rule"] = rule
        self.context["selector"] = selector


class SelectorNotFoundError(ExtractionError):
    """Selector matched no element."""

    def __init__(self, selector: str, rule: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("category", ErrorCategory.NOT_FOUND)
        super().__init__(f"Element not found: {selector}", rule=rule, selector=selector, **kwargs)


class ExpressionError(FrameworkError):
    """Expression could not be tokenized, parsed or evaluated."""

    def __init__(self, message: str, expression: Optional[str] = None, position: Optional[int] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        super().__init__(message, **kwargs)
        self.context["expression"] = expression
        self.context["position"] = position


class StepError(FrameworkError):
    """Workflow step execution error."""

    def __init__(
        self,
        message: str,
        step_id: Optional[str] = None,
        step_type: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.context["step_id"] = step_id
        self.context["step_type"] = step_type


class BrowserError(FrameworkError):
    """Page capability error."""

    def __init__(
        self,
        message: str,
        selector: Optional[str] = None,
        url: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.context["selector"] = selector
        self.context["url"] = url
