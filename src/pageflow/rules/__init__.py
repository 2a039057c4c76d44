"""Rules module: value resolution, conditions and control-flow expansion."""

from .resolver import ValueResolver, stringify
from .evaluator import Condition, ConditionEvaluator
from .control_flow import ConditionalStep, ControlFlowExpander, ExpansionResult, is_control_flow
from .runner import StepRunner, StepOutcome, RunReport

__all__ = [
    "ValueResolver",
    "stringify",
    "Condition",
    "ConditionEvaluator",
    "ConditionalStep",
    "ControlFlowExpander",
    "ExpansionResult",
    "is_control_flow",
    "StepRunner",
    "StepOutcome",
    "RunReport",
]
