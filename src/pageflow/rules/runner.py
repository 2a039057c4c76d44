"""Step runner - expands control flow and dispatches plain steps to handlers."""

import asyncio
import time
from typing import Any, Callable, Optional, Awaitable
from dataclasses import dataclass, field

import structlog

from ..core.context import EvaluationContext
from ..core.errors import StepError
from .control_flow import ControlFlowExpander, ExpansionResult, is_control_flow
from .resolver import ValueResolver


logger = structlog.get_logger()

# Keys that describe the step itself rather than handler parameters
STEP_META_KEYS = frozenset({"id", "type", "description", "stopOnFailure"})

StepHandler = Callable[[dict[str, Any], EvaluationContext], Awaitable[Any]]


@dataclass
class StepOutcome:
    """Result of running one plain step."""
    step_id: str
    step_type: str
    success: bool
    output: Any = None
    error: Optional[str] = None
    duration_ms: float = 0


@dataclass
class RunReport:
    """Outcomes of a run plus control-flow bookkeeping."""
    outcomes: list[StepOutcome] = field(default_factory=list)
    truncated_loops: list[str] = field(default_factory=list)
    stopped: bool = False

    @property
    def success(self) -> bool:
        return not self.stopped and all(o.success for o in self.outcomes)


class StepRunner:
    """
    Executes workflow step lists against one EvaluationContext.

    Flow:
    1. Control-flow steps are expanded one iteration at a time
    2. Each produced batch is run before the next iteration is requested
    3. Plain steps get their parameters interpolated and are dispatched
    4. Handler output is stored in context.results under the step id

    Handlers are config-driven operations registered by step type.
    """

    def __init__(
        self,
        context: EvaluationContext,
        expander: Optional[ControlFlowExpander] = None,
        resolver: Optional[ValueResolver] = None,
        max_depth: int = 16,
    ):
        self.context = context
        self.expander = expander or ControlFlowExpander(resolver=resolver)
        self.resolver = resolver or self.expander.resolver
        self.max_depth = max_depth

        self._handlers: dict[str, StepHandler] = {}
        self._register_builtin_handlers()

    def register(self, step_type: str, handler: StepHandler) -> None:
        """Register a step handler."""
        self._handlers[step_type] = handler

    def unregister(self, step_type: str) -> None:
        """Unregister a step handler."""
        self._handlers.pop(step_type, None)

    def list_step_types(self) -> list[str]:
        """List all registered step types."""
        return list(self._handlers.keys())

    async def run(self, steps: list[dict[str, Any]]) -> RunReport:
        """Run a step list to completion (or until a stopOnFailure step fails)."""
        report = RunReport()
        await self._run_steps(steps, report, depth=0)
        logger.info(
            "step_run_complete",
            steps=len(report.outcomes),
            succeeded=sum(1 for o in report.outcomes if o.success),
            stopped=report.stopped,
            truncated_loops=report.truncated_loops,
        )
        return report

    async def _run_steps(self, steps: list[dict[str, Any]], report: RunReport, depth: int) -> None:
        for step in steps:
            if report.stopped:
                return

            if is_control_flow(step):
                await self._run_control_flow(step, report, depth)
                continue

            outcome = await self.execute_step(step)
            report.outcomes.append(outcome)

            if not outcome.success and step.get("stopOnFailure", False):
                logger.warning("step_run_stopped", step_id=outcome.step_id, error=outcome.error)
                report.stopped = True

    async def _run_control_flow(self, step: dict[str, Any], report: RunReport, depth: int) -> None:
        if depth >= self.max_depth:
            message = f"Maximum control-flow nesting depth exceeded ({self.max_depth})"
            logger.warning("control_flow_depth_exceeded", step_id=step.get("id"), max_depth=self.max_depth)
            report.outcomes.append(StepOutcome(
                step_id=step.get("id", ""),
                step_type=step.get("type", ""),
                success=False,
                error=message,
            ))
            report.stopped = True
            return

        status = ExpansionResult()
        for batch in self.expander.iterations(step, self.context, status):
            await self._run_steps(batch, report, depth + 1)
            if report.stopped:
                return

        if status.truncated:
            report.truncated_loops.append(step.get("id", ""))

    async def execute_step(self, step: dict[str, Any]) -> StepOutcome:
        """Execute a single plain step."""
        start_time = time.monotonic()
        step_id = step.get("id", "")
        step_type = step.get("type", "")

        handler = self._handlers.get(step_type)
        if not handler:
            return StepOutcome(
                step_id=step_id,
                step_type=step_type,
                success=False,
                error=f"Unknown step type: {step_type}",
            )

        params = {k: v for k, v in step.items() if k not in STEP_META_KEYS}
        params = self.resolver.interpolate_params(params, self.context)

        try:
            output = await handler(params, self.context)
        except Exception as e:
            logger.warning("step_failed", step_id=step_id, step_type=step_type, error=str(e))
            return StepOutcome(
                step_id=step_id,
                step_type=step_type,
                success=False,
                error=str(e),
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        if step_id:
            self.context.set_result(step_id, output)

        return StepOutcome(
            step_id=step_id,
            step_type=step_type,
            success=True,
            output=output,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

    def _register_builtin_handlers(self) -> None:
        """Register built-in step handlers."""
        self.register("setVariable", self._step_set_variable)
        self.register("log", self._step_log)
        self.register("delay", self._step_delay)
        self.register("noop", self._step_noop)
        self.register("extract", self._step_extract)

    async def _step_set_variable(self, params: dict[str, Any], context: EvaluationContext) -> Any:
        """Set a run variable (visible to later steps and loop conditions)."""
        name = params.get("name")
        if not name:
            raise StepError("Variable name required", step_type="setVariable")

        value = params.get("value")
        context.set_variable(name, value)
        return {name: value}

    async def _step_log(self, params: dict[str, Any], context: EvaluationContext) -> Any:
        message = params.get("message", "")
        level = str(params.get("level", "info")).lower()
        log = getattr(logger, level, logger.info)
        log("workflow_log", message=message)
        return {"logged": True, "message": message}

    async def _step_delay(self, params: dict[str, Any], context: EvaluationContext) -> Any:
        """Delay execution for the given milliseconds (or seconds)."""
        if "ms" in params:
            seconds = float(params["ms"]) / 1000
        else:
            seconds = float(params.get("seconds", 1))
        await asyncio.sleep(seconds)
        return {"delayed_seconds": seconds}

    async def _step_noop(self, params: dict[str, Any], context: EvaluationContext) -> Any:
        return {"action": "noop"}

    async def _step_extract(self, params: dict[str, Any], context: EvaluationContext) -> Any:
        """Run an inline extraction schema against the context page."""
        from ..extraction.extractor import DataExtractor
        from ..extraction.models import ExtractionSchema

        if context.page is None:
            raise StepError("No page available for extraction", step_type="extract")
        if not params.get("schema"):
            raise StepError("Extraction schema required", step_type="extract")

        schema = ExtractionSchema.model_validate(params["schema"])
        extractor = DataExtractor(context.page)
        results = await extractor.extract(schema)
        return [r.model_dump(by_alias=True) for r in results]
