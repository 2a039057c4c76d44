"""Value resolution: variable references, dotted paths and interpolation."""

import json
import math
import re
from collections.abc import Mapping
from typing import Any

from ..core.context import EvaluationContext


# Whole-token references: ${path} or {{path}}
_DOLLAR_REF = re.compile(r"^\$\{([^}]+)\}$")
_MUSTACHE_REF = re.compile(r"^\{\{([^}]+)\}\}$")

# Embedded references inside literal text
_EMBEDDED_REF = re.compile(r"\$\{([^}]+)\}|\{\{([^}]+)\}\}")


def stringify(value: Any) -> str:
    """
    Display string of a runtime value.

    Shared by interpolation, string operators and switch matching so that
    a value renders the same way everywhere.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def navigate_path(data: Any, path: list[str]) -> Any:
    """Descend a dotted path; returns None as soon as a segment is missing."""
    current = data
    for part in path:
        if current is None:
            return None

        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return None
            current = current[index] if 0 <= index < len(current) else None
        else:
            return None

    return current


class ValueResolver:
    """
    Resolves step/condition tokens against an EvaluationContext.

    Priority:
    1. Whole-token reference (${a.b} or {{a.b}}) -> native value at path
    2. Exact variable name -> that variable's value
    3. Literal text with embedded references -> interpolated string

    Resolution never mutates the context.
    """

    def resolve(self, token: Any, context: EvaluationContext) -> Any:
        if not isinstance(token, str):
            return token

        match = _DOLLAR_REF.match(token) or _MUSTACHE_REF.match(token)
        if match:
            return self.lookup(match.group(1).strip(), context)

        if token in context.variables:
            return context.variables[token]

        return self.interpolate(token, context)

    def lookup(self, path: str, context: EvaluationContext) -> Any:
        """Resolve a dotted path against the merged variables/results view."""
        return navigate_path(context.snapshot(), path.split("."))

    def interpolate(self, template: str, context: EvaluationContext) -> str:
        """Replace every embedded reference with its display string."""

        def replace(match: re.Match) -> str:
            path = (match.group(1) or match.group(2)).strip()
            return stringify(self.lookup(path, context))

        return _EMBEDDED_REF.sub(replace, template)

    def interpolate_params(self, params: Any, context: EvaluationContext) -> Any:
        """
        Recursively interpolate step parameters.

        Whole-token references keep their native type, everything else
        becomes an interpolated string. Bare variable names are left alone
        so plain parameter text is never swapped for a variable value.
        """
        if isinstance(params, str):
            match = _DOLLAR_REF.match(params) or _MUSTACHE_REF.match(params)
            if match:
                return self.lookup(match.group(1).strip(), context)
            return self.interpolate(params, context)
        if isinstance(params, dict):
            return {k: self.interpolate_params(v, context) for k, v in params.items()}
        if isinstance(params, list):
            return [self.interpolate_params(v, context) for v in params]
        return params
