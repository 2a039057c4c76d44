"""Condition evaluation for control-flow steps."""

import re
from typing import Any, Callable, Literal, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..core.context import EvaluationContext
from ..core.errors import ExpressionError
from .expression import evaluate_expression, is_truthy, strict_equals, to_number
from .resolver import ValueResolver, stringify


logger = structlog.get_logger()


class Condition(BaseModel):
    """
    Declarative boolean test.

    type=simple uses left/operator/right, type=compound folds nested
    conditions with and/or, type=expression evaluates a raw expression.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: str = "simple"
    # Simple condition
    left: Any = ""
    operator: str = "equals"
    right: Any = ""
    # Compound condition
    logic: Literal["and", "or"] = "and"
    conditions: tuple["Condition", ...] = Field(default_factory=tuple)
    # Expression
    expression: Optional[str] = None


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple)) and len(value) == 0)


def _matches(left: Any, right: Any) -> bool:
    try:
        return re.search(stringify(right), stringify(left)) is not None
    except re.error:
        return False


def _is_true(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return value == "true"


def _is_false(value: Any) -> bool:
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    return value == "false"


class ConditionEvaluator:
    """
    Evaluates Condition trees against an EvaluationContext.

    Supports:
    - Equality (equals, notEquals) without coercion
    - String operators (contains, notContains, startsWith, endsWith, matches)
    - Numeric comparison (greaterThan, lessThan, greaterOrEqual, lessOrEqual)
    - Emptiness and existence (isEmpty, isNotEmpty, exists, notExists)
    - Boolean checks (isTrue, isFalse)
    - Compound and/or and free-form expressions

    Evaluation is deterministic and never mutates the condition or context.
    """

    OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
        "equals": strict_equals,
        "notEquals": lambda a, b: not strict_equals(a, b),
        "contains": lambda a, b: stringify(b) in stringify(a),
        "notContains": lambda a, b: stringify(b) not in stringify(a),
        "startsWith": lambda a, b: stringify(a).startswith(stringify(b)),
        "endsWith": lambda a, b: stringify(a).endswith(stringify(b)),
        "greaterThan": lambda a, b: to_number(a) > to_number(b),
        "lessThan": lambda a, b: to_number(a) < to_number(b),
        "greaterOrEqual": lambda a, b: to_number(a) >= to_number(b),
        "lessOrEqual": lambda a, b: to_number(a) <= to_number(b),
        "isEmpty": lambda a, b: _is_empty(a),
        "isNotEmpty": lambda a, b: not _is_empty(a),
        "matches": _matches,
        "exists": lambda a, b: a is not None,
        "notExists": lambda a, b: a is None,
        "isTrue": lambda a, b: _is_true(a),
        "isFalse": lambda a, b: _is_false(a),
    }

    def __init__(self, resolver: Optional[ValueResolver] = None):
        self.resolver = resolver or ValueResolver()
        self._custom_operators: dict[str, Callable[[Any, Any], bool]] = {}

    def register_operator(
        self,
        name: str,
        func: Callable[[Any, Any], bool],
    ) -> None:
        """Register a custom operator receiving the resolved left/right values."""
        self._custom_operators[name] = func

    def evaluate(
        self,
        condition: Union[Condition, dict[str, Any]],
        context: EvaluationContext,
    ) -> bool:
        if isinstance(condition, dict):
            try:
                condition = Condition.model_validate(condition)
            except ValidationError as e:
                logger.warning("invalid_condition", errors=e.error_count(), error=str(e))
                return False

        if condition.type == "simple":
            return self._evaluate_simple(condition, context)
        if condition.type == "compound":
            return self._evaluate_compound(condition, context)
        if condition.type == "expression":
            return self.evaluate_expression(condition.expression or "false", context)

        logger.warning("unknown_condition_type", condition_type=condition.type)
        return False

    def _evaluate_simple(self, condition: Condition, context: EvaluationContext) -> bool:
        left = self.resolver.resolve(condition.left, context)
        right = self.resolver.resolve(condition.right, context)

        op_func = self._custom_operators.get(condition.operator) or self.OPERATORS.get(condition.operator)
        if not op_func:
            logger.warning("unknown_condition_operator", operator=condition.operator)
            return False

        return bool(op_func(left, right))

    def _evaluate_compound(self, condition: Condition, context: EvaluationContext) -> bool:
        # Every child is evaluated; conditions are side-effect free so order is irrelevant.
        results = [self.evaluate(child, context) for child in condition.conditions]
        if condition.logic == "and":
            return all(results)
        return any(results) if results else True

    def evaluate_expression(self, expression: str, context: EvaluationContext) -> bool:
        """Evaluate a free-form expression; any failure yields False."""
        try:
            return is_truthy(evaluate_expression(expression, context.snapshot()))
        except ExpressionError as e:
            logger.warning(
                "expression_evaluation_failed",
                expression=expression,
                error=e.message,
            )
            return False
