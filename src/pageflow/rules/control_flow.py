"""Control-flow expansion: if, switch, while, for and forEach steps."""

from typing import Any, Iterator, Literal, Optional, Union
from dataclasses import dataclass, field

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..core.config import LoopConfig
from ..core.context import EvaluationContext
from .evaluator import Condition, ConditionEvaluator
from .resolver import ValueResolver, stringify


logger = structlog.get_logger()

CONTROL_FLOW_TYPES = frozenset({"if", "switch", "while", "for", "forEach"})

LOOP_INDEX_VARIABLE = "_loopIndex"

# Workflow steps are opaque records: {"id": ..., "type": ..., **params}
WorkflowStep = dict[str, Any]


class SwitchCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any
    steps: tuple[WorkflowStep, ...] = ()


class ConditionalStep(BaseModel):
    """A control-flow step description, as authored in a workflow."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = ""
    type: Literal["if", "switch", "while", "for", "forEach"]
    condition: Optional[Condition] = None

    # switch
    switch_value: Any = ""
    cases: tuple[SwitchCase, ...] = ()
    default_case: tuple[WorkflowStep, ...] = ()

    # loops
    loop_variable: Optional[str] = None
    loop_start: Optional[float] = None
    loop_end: Optional[float] = None
    loop_step: Optional[float] = None
    loop_items: Any = None
    max_iterations: Optional[int] = Field(default=None, ge=0)

    then_steps: tuple[WorkflowStep, ...] = ()
    else_steps: tuple[WorkflowStep, ...] = ()


@dataclass
class ExpansionResult:
    """Expanded steps plus whether a loop was cut off by its iteration cap."""
    steps: list[WorkflowStep] = field(default_factory=list)
    iterations: int = 0
    truncated: bool = False


def is_control_flow(step: Any) -> bool:
    """Check whether a step dict is a control-flow step."""
    step_type = step.get("type") if isinstance(step, dict) else getattr(step, "type", None)
    return step_type in CONTROL_FLOW_TYPES


def _as_number(value: Optional[float], default: float) -> Union[int, float]:
    number = default if value is None else value
    return int(number) if float(number).is_integer() else number


class ControlFlowExpander:
    """
    Turns control-flow step descriptions into concrete step lists.

    The expander never executes steps. It decides which steps run, in which
    order and how many times; loop variables (loopVariable and _loopIndex)
    are written into the context as each iteration is produced so that the
    returned step templates can be interpolated per iteration.

    Iteration caps are a hard bound. Hitting one stops the loop, marks the
    expansion as truncated and logs a warning.
    """

    def __init__(
        self,
        evaluator: Optional[ConditionEvaluator] = None,
        resolver: Optional[ValueResolver] = None,
        loops: Optional[LoopConfig] = None,
    ):
        self.resolver = resolver or (evaluator.resolver if evaluator else ValueResolver())
        self.evaluator = evaluator or ConditionEvaluator(self.resolver)
        self.loops = loops or LoopConfig()

    def expand(
        self,
        step: Union[ConditionalStep, dict[str, Any]],
        context: EvaluationContext,
    ) -> list[WorkflowStep]:
        """Expand a control-flow step into the ordered list of steps to run."""
        return self.expand_with_status(step, context).steps

    def expand_with_status(
        self,
        step: Union[ConditionalStep, dict[str, Any]],
        context: EvaluationContext,
    ) -> ExpansionResult:
        status = ExpansionResult()
        for batch in self.iterations(step, context, status):
            status.steps.extend(batch)
        return status

    def iterations(
        self,
        step: Union[ConditionalStep, dict[str, Any]],
        context: EvaluationContext,
        status: Optional[ExpansionResult] = None,
    ) -> Iterator[list[WorkflowStep]]:
        """
        Lazily yield one batch of steps per iteration.

        Loop variables are set before each batch is yielded. A while
        condition is only re-checked when the next batch is requested, so a
        consumer that executes each batch before asking for the next one
        sees body side effects in the following condition check.
        """
        if isinstance(step, dict):
            try:
                step = ConditionalStep.model_validate(step)
            except ValidationError as e:
                logger.warning(
                    "invalid_control_flow_step",
                    step_id=step.get("id"),
                    errors=e.error_count(),
                    error=str(e),
                )
                return iter(())
        if status is None:
            status = ExpansionResult()

        if step.type == "if":
            return self._iter_if(step, context, status)
        if step.type == "switch":
            return self._iter_switch(step, context, status)
        if step.type == "while":
            return self._iter_while(step, context, status)
        if step.type == "for":
            return self._iter_for(step, context, status)
        return self._iter_for_each(step, context, status)

    def _iter_if(self, step: ConditionalStep, context: EvaluationContext, status: ExpansionResult):
        if step.condition is not None and self.evaluator.evaluate(step.condition, context):
            branch = step.then_steps
        else:
            branch = step.else_steps
        status.iterations = 1
        yield list(branch)

    def _iter_switch(self, step: ConditionalStep, context: EvaluationContext, status: ExpansionResult):
        value = stringify(self.resolver.resolve(step.switch_value, context))
        status.iterations = 1

        for case in step.cases:
            if value == stringify(case.value):
                yield list(case.steps)
                return

        yield list(step.default_case)

    def _iter_while(self, step: ConditionalStep, context: EvaluationContext, status: ExpansionResult):
        max_iterations = self._cap(step.max_iterations, self.loops.while_max_iterations)

        while True:
            # No condition means loop until the cap.
            if step.condition is not None and not self.evaluator.evaluate(step.condition, context):
                return
            if status.iterations >= max_iterations:
                self._truncated(step, status, max_iterations)
                return

            context.set_variable(LOOP_INDEX_VARIABLE, status.iterations)
            status.iterations += 1
            yield list(step.then_steps)

    def _iter_for(self, step: ConditionalStep, context: EvaluationContext, status: ExpansionResult):
        start = _as_number(step.loop_start, 0)
        end = _as_number(step.loop_end, 10)
        increment = _as_number(step.loop_step, 1)
        variable = step.loop_variable or "i"
        max_iterations = self._cap(step.max_iterations, self.loops.for_max_iterations)

        value = start
        while value < end:
            if status.iterations >= max_iterations:
                self._truncated(step, status, max_iterations)
                return

            context.set_variable(variable, value)
            context.set_variable(LOOP_INDEX_VARIABLE, status.iterations)
            status.iterations += 1
            yield list(step.then_steps)
            value += increment

    def _iter_for_each(self, step: ConditionalStep, context: EvaluationContext, status: ExpansionResult):
        items = self.resolver.resolve(step.loop_items if step.loop_items is not None else "[]", context)
        variable = step.loop_variable or "item"
        max_iterations = self._cap(step.max_iterations, self.loops.for_each_max_iterations)

        if not isinstance(items, (list, tuple)):
            logger.warning(
                "for_each_items_not_a_list",
                step_id=step.id,
                loop_items=step.loop_items,
                resolved_type=type(items).__name__,
            )
            return

        for index, item in enumerate(items):
            if index >= max_iterations:
                self._truncated(step, status, max_iterations)
                return

            context.set_variable(variable, item)
            context.set_variable(LOOP_INDEX_VARIABLE, index)
            status.iterations += 1
            yield list(step.then_steps)

    @staticmethod
    def _cap(step_cap: Optional[int], default: int) -> int:
        return default if step_cap is None else step_cap

    @staticmethod
    def _truncated(step: ConditionalStep, status: ExpansionResult, max_iterations: int) -> None:
        status.truncated = True
        logger.warning(
            "loop_iteration_cap_reached",
            step_id=step.id,
            step_type=step.type,
            max_iterations=max_iterations,
            truncated=True,
        )
