"""Post-processing of extracted text: regex capture, then case/trim transforms."""

import re
from typing import Callable, Optional

from ..core.errors import ExtractionError


TransformFunc = Callable[[str], object]

BUILTIN_TRANSFORMS: dict[str, TransformFunc] = {
    "trim": str.strip,
    "lowercase": str.lower,
    "uppercase": str.upper,
}


def apply_regex(value: str, pattern: str) -> str:
    """
    First capture group if the pattern has one, else the whole match.

    A non-matching pattern leaves the value unchanged.
    """
    try:
        match = re.search(pattern, value)
    except re.error as e:
        raise ExtractionError(f"Invalid regex {pattern!r}: {e}")

    if not match:
        return value
    if match.re.groups and match.group(1) is not None:
        return match.group(1)
    return match.group(0)


def post_process(
    value: str,
    regex: Optional[str] = None,
    transform: Optional[str] = None,
    custom: Optional[dict[str, TransformFunc]] = None,
) -> object:
    """Apply regex then transform. Unregistered transforms pass the value through."""
    if regex:
        value = apply_regex(value, regex)

    if transform:
        func = (custom or {}).get(transform) or BUILTIN_TRANSFORMS.get(transform)
        if func:
            return func(value)

    return value
