"""Evaluation context shared by the control-flow and extraction engines."""

from typing import Any, Optional
from dataclasses import dataclass, field


@dataclass
class EvaluationContext:
    """
    Mutable per-run state.

    Created once per workflow run and owned by it. Variables and prior
    step results are updated in place; the page handle is opaque here.
    """
    variables: dict[str, Any] = field(default_factory=dict)
    results: dict[str, Any] = field(default_factory=dict)
    page: Optional[Any] = None

    def set_variable(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get_variable(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def get_variables(self) -> dict[str, Any]:
        """Get a shallow copy of all variables."""
        return dict(self.variables)

    def set_result(self, step_id: str, value: Any) -> None:
        self.results[step_id] = value

    def update(
        self,
        variables: Optional[dict[str, Any]] = None,
        results: Optional[dict[str, Any]] = None,
        page: Optional[Any] = None,
    ) -> None:
        """Merge new variables/results into the context and swap the page."""
        if variables:
            self.variables.update(variables)
        if results:
            self.results.update(results)
        if page is not None:
            self.page = page

    def snapshot(self) -> dict[str, Any]:
        """Merged lookup view; results shadow variables of the same name."""
        return {**self.variables, **self.results}
