"""Tests for value resolution, conditions, expressions and control flow."""

import pytest
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pageflow.core.config import LoopConfig
from pageflow.core.context import EvaluationContext
from pageflow.core.errors import ExpressionError
from pageflow.rules.resolver import ValueResolver, stringify
from pageflow.rules.evaluator import Condition, ConditionEvaluator
from pageflow.rules.expression import evaluate_expression, parse_expression
from pageflow.rules.control_flow import ControlFlowExpander, ExpansionResult
from pageflow.rules.runner import StepRunner


BODY = [{"id": "body", "type": "click", "selector": "#item-{{i}}"}]


class TestValueResolver:
    """Test token resolution."""

    @pytest.fixture
    def resolver(self):
        return ValueResolver()

    def test_whole_token_reference_keeps_type(self, resolver):
        context = EvaluationContext(variables={"a": {"b": 5}})

        assert resolver.resolve("${a.b}", context) == 5
        assert resolver.resolve("{{a.b}}", context) == 5
        assert resolver.resolve("{{ a.b }}", context) == 5

    def test_interpolation(self, resolver):
        context = EvaluationContext(variables={"a": {"b": 5}, "name": "Ada"})

        assert resolver.resolve("x=${a.b}", context) == "x=5"
        assert resolver.resolve("Hi {{name}}, ${a.b} new", context) == "Hi Ada, 5 new"

    def test_missing_reference(self, resolver):
        context = EvaluationContext(variables={"a": 1})

        assert resolver.resolve("${missing.path}", context) is None
        assert resolver.resolve("${a.deeper}", context) is None
        assert resolver.resolve("value: ${missing}", context) == "value: "

    def test_exact_variable_name(self, resolver):
        context = EvaluationContext(variables={"items": [1, 2]})

        assert resolver.resolve("items", context) == [1, 2]
        assert resolver.resolve("other", context) == "other"

    def test_results_are_visible(self, resolver):
        context = EvaluationContext(variables={}, results={"step1": {"data": {"count": 3}}})

        assert resolver.resolve("${step1.data.count}", context) == 3

    def test_list_index_segment(self, resolver):
        context = EvaluationContext(variables={"rows": [{"id": "a"}, {"id": "b"}]})

        assert resolver.resolve("${rows.1.id}", context) == "b"
        assert resolver.resolve("${rows.9.id}", context) is None

    def test_non_string_token(self, resolver):
        context = EvaluationContext()
        assert resolver.resolve(42, context) == 42

    def test_resolution_is_idempotent_and_pure(self, resolver):
        context = EvaluationContext(variables={"a": {"b": 5}})
        before = {"a": {"b": 5}}

        first = resolver.resolve("x=${a.b}", context)
        second = resolver.resolve("x=${a.b}", context)

        assert first == second
        assert context.variables == before

    def test_stringify(self):
        assert stringify(None) == ""
        assert stringify(True) == "true"
        assert stringify(3.0) == "3"
        assert stringify(2.5) == "2.5"
        assert stringify([1, 2]) == "[1,2]"

    def test_interpolate_params(self, resolver):
        context = EvaluationContext(variables={"user": {"id": 7}, "q": "shoes"})
        params = {"url": "/search?q={{q}}", "payload": {"id": "${user.id}"}, "tags": ["{{q}}"]}

        assert resolver.interpolate_params(params, context) == {
            "url": "/search?q=shoes",
            "payload": {"id": 7},
            "tags": ["shoes"],
        }


class TestConditionEvaluator:
    """Test condition evaluation."""

    @pytest.fixture
    def evaluator(self):
        return ConditionEvaluator()

    def simple(self, left, operator, right=""):
        return {"type": "simple", "left": left, "operator": operator, "right": right}

    def test_equals_without_coercion(self, evaluator):
        context = EvaluationContext(variables={"status": "active", "count": 1, "flag": True})

        assert evaluator.evaluate(self.simple("status", "equals", "active"), context)
        assert not evaluator.evaluate(self.simple("status", "equals", "inactive"), context)
        assert evaluator.evaluate(self.simple("status", "notEquals", "inactive"), context)
        # "1" is a string literal, count is the number 1
        assert not evaluator.evaluate(self.simple("count", "equals", "1"), context)
        assert not evaluator.evaluate(self.simple("flag", "equals", "${count}"), context)

    def test_string_operators(self, evaluator):
        context = EvaluationContext(variables={"url": "https://example.com/page"})

        assert evaluator.evaluate(self.simple("url", "startsWith", "https://"), context)
        assert evaluator.evaluate(self.simple("url", "endsWith", "/page"), context)
        assert evaluator.evaluate(self.simple("url", "contains", "example"), context)
        assert evaluator.evaluate(self.simple("url", "notContains", "other"), context)

    def test_numeric_comparison_coerces(self, evaluator):
        context = EvaluationContext(variables={"count": "50"})

        assert evaluator.evaluate(self.simple("count", "greaterThan", "40"), context)
        assert evaluator.evaluate(self.simple("count", "lessThan", 60), context)
        assert evaluator.evaluate(self.simple("count", "greaterOrEqual", "50"), context)
        assert evaluator.evaluate(self.simple("count", "lessOrEqual", "50"), context)
        assert not evaluator.evaluate(self.simple("count", "greaterThan", "abc"), context)

    def test_emptiness(self, evaluator):
        context = EvaluationContext(variables={"blank": "", "none": None, "items": [], "full": [1]})

        assert evaluator.evaluate(self.simple("${blank}", "isEmpty"), context)
        assert evaluator.evaluate(self.simple("${none}", "isEmpty"), context)
        assert evaluator.evaluate(self.simple("${items}", "isEmpty"), context)
        assert evaluator.evaluate(self.simple("${missing}", "isEmpty"), context)
        assert evaluator.evaluate(self.simple("${full}", "isNotEmpty"), context)

    def test_existence(self, evaluator):
        context = EvaluationContext(variables={"present": 0})

        assert evaluator.evaluate(self.simple("${present}", "exists"), context)
        assert evaluator.evaluate(self.simple("${missing}", "notExists"), context)
        assert not evaluator.evaluate(self.simple("${missing}", "exists"), context)

    def test_matches(self, evaluator):
        context = EvaluationContext(variables={"email": "test@example.com"})

        assert evaluator.evaluate(self.simple("email", "matches", r"^\w+@\w+\.\w+$"), context)
        assert not evaluator.evaluate(self.simple("email", "matches", "(unclosed"), context)

    def test_boolean_checks(self, evaluator):
        context = EvaluationContext(variables={"yes": True, "text": "true", "one": 1, "no": False, "zero": 0})

        assert evaluator.evaluate(self.simple("yes", "isTrue"), context)
        assert evaluator.evaluate(self.simple("text", "isTrue"), context)
        assert evaluator.evaluate(self.simple("one", "isTrue"), context)
        assert evaluator.evaluate(self.simple("no", "isFalse"), context)
        assert evaluator.evaluate(self.simple("zero", "isFalse"), context)
        assert not evaluator.evaluate(self.simple("zero", "isTrue"), context)

    def test_unknown_operator_is_false(self, evaluator):
        context = EvaluationContext(variables={"a": 1})
        assert not evaluator.evaluate(self.simple("a", "bogus", 1), context)

    def test_custom_operator(self, evaluator):
        evaluator.register_operator("divisibleBy", lambda a, b: int(a) % int(b) == 0)
        context = EvaluationContext(variables={"n": 12})

        assert evaluator.evaluate(self.simple("n", "divisibleBy", "4"), context)

    def test_compound(self, evaluator):
        context = EvaluationContext(variables={"count": 50, "override": False})

        condition = {
            "type": "compound",
            "logic": "or",
            "conditions": [
                {
                    "type": "compound",
                    "logic": "and",
                    "conditions": [
                        self.simple("count", "greaterThan", 10),
                        self.simple("count", "lessThan", 100),
                    ],
                },
                self.simple("override", "isTrue"),
            ],
        }
        assert evaluator.evaluate(condition, context)

    def test_empty_compound_is_true(self, evaluator):
        context = EvaluationContext()

        assert evaluator.evaluate({"type": "compound", "logic": "and", "conditions": []}, context)
        assert evaluator.evaluate({"type": "compound", "logic": "or", "conditions": []}, context)

    def test_expression_condition(self, evaluator):
        context = EvaluationContext(variables={"count": 5, "status": "ready"}, results={"login": {"ok": True}})

        assert evaluator.evaluate(
            {"type": "expression", "expression": "count > 3 && status == 'ready' && login.ok"},
            context,
        )
        assert not evaluator.evaluate({"type": "expression", "expression": "count >"}, context)
        assert not evaluator.evaluate({"type": "expression", "expression": "undefinedName > 1"}, context)

    def test_evaluation_does_not_mutate(self, evaluator):
        context = EvaluationContext(variables={"a": [1, 2]})
        condition = Condition.model_validate(self.simple("${a}", "isNotEmpty"))

        first = evaluator.evaluate(condition, context)
        second = evaluator.evaluate(condition, context)

        assert first is second is True
        assert context.variables == {"a": [1, 2]}
        assert condition.left == "${a}"

    def test_unknown_condition_type(self, evaluator):
        assert not evaluator.evaluate({"type": "fuzzy"}, EvaluationContext())

    def test_deeply_nested_expression_is_false(self, evaluator):
        context = EvaluationContext()

        assert evaluator.evaluate({"type": "expression", "expression": "(" * 50 + "1" + ")" * 50}, context)
        assert not evaluator.evaluate({"type": "expression", "expression": "(" * 200 + "1" + ")" * 200}, context)
        assert not evaluator.evaluate({"type": "expression", "expression": "!" * 3000 + "true"}, context)

    def test_malformed_condition_is_false(self, evaluator):
        context = EvaluationContext()

        assert not evaluator.evaluate({"type": "compound", "logic": "xor", "conditions": []}, context)
        assert not evaluator.evaluate({"type": "compound", "conditions": "not-a-list"}, context)


class TestExpressionLanguage:
    """Test the restricted expression parser/evaluator."""

    def test_comparisons_and_logic(self):
        scope = {"a": 2, "b": 3, "name": "x"}

        assert evaluate_expression("a < b and not (a == b)", scope) is True
        assert evaluate_expression("a >= b || name === 'x'", scope) is True
        assert evaluate_expression("!(a != 2)", scope) is True

    def test_membership(self):
        scope = {"role": "admin", "tags": ["a", "b"], "user": {"name": "x"}}

        assert evaluate_expression("role in ['admin', 'owner']", scope) is True
        assert evaluate_expression("'c' not in tags", scope) is True
        assert evaluate_expression("'name' in user", scope) is True

    def test_property_access(self):
        scope = {"user": {"profile": {"age": 30}}, "items": [1, 2, 3]}

        assert evaluate_expression("user.profile.age", scope) == 30
        assert evaluate_expression("items.length", scope) == 3
        assert evaluate_expression("items[1]", scope) == 2
        assert evaluate_expression("user['profile'].missing", scope) is None

    def test_literals(self):
        assert evaluate_expression("-1.5 < 0", {}) is True
        assert evaluate_expression("null == undefined", {}) is True
        assert evaluate_expression('"a\\"b"', {}) == 'a"b'

    def test_strict_equality(self):
        assert evaluate_expression("1 == true", {}) is False
        assert evaluate_expression("'5' == 5", {}) is False
        assert evaluate_expression("'10' > 9", {}) is True

    def test_logical_operators_return_operands(self):
        assert evaluate_expression("name || 'default'", {"name": ""}) == "default"
        assert evaluate_expression("a && b", {"a": 1, "b": 2}) == 2

    def test_errors(self):
        with pytest.raises(ExpressionError):
            evaluate_expression("missing == 1", {})
        with pytest.raises(ExpressionError):
            evaluate_expression("a.b.c", {"a": None})
        with pytest.raises(ExpressionError):
            parse_expression("a ==")
        with pytest.raises(ExpressionError):
            parse_expression("a @ b")
        with pytest.raises(ExpressionError):
            parse_expression("")

    def test_deep_nesting_is_an_expression_error(self):
        with pytest.raises(ExpressionError, match="nested too deeply"):
            parse_expression("(" * 2000 + "1" + ")" * 2000)
        with pytest.raises(ExpressionError, match="nested too deeply"):
            parse_expression("!" * 3000 + "true")

    def test_no_code_execution(self):
        with pytest.raises(ExpressionError):
            evaluate_expression("__import__('os')", {})


class TestControlFlowExpander:
    """Test control-flow step expansion."""

    @pytest.fixture
    def expander(self):
        return ControlFlowExpander()

    def test_if_then_else(self, expander):
        context = EvaluationContext(variables={"loggedIn": True})
        step = {
            "id": "check",
            "type": "if",
            "condition": {"type": "simple", "left": "loggedIn", "operator": "isTrue"},
            "thenSteps": [{"id": "a", "type": "noop"}],
            "elseSteps": [{"id": "b", "type": "noop"}],
        }

        assert [s["id"] for s in expander.expand(step, context)] == ["a"]

        context.set_variable("loggedIn", False)
        assert [s["id"] for s in expander.expand(step, context)] == ["b"]

    def test_if_without_else(self, expander):
        step = {
            "id": "check",
            "type": "if",
            "condition": {"type": "expression", "expression": "false"},
            "thenSteps": BODY,
        }
        assert expander.expand(step, EvaluationContext()) == []

    def test_switch(self, expander):
        step = {
            "id": "route",
            "type": "switch",
            "switchValue": "${page.kind}",
            "cases": [
                {"value": "list", "steps": [{"id": "list", "type": "noop"}]},
                {"value": 2, "steps": [{"id": "two", "type": "noop"}]},
                {"value": "list", "steps": [{"id": "shadowed", "type": "noop"}]},
            ],
            "defaultCase": [{"id": "default", "type": "noop"}],
        }

        context = EvaluationContext(variables={"page": {"kind": "list"}})
        assert [s["id"] for s in expander.expand(step, context)] == ["list"]

        context.set_variable("page", {"kind": 2})
        assert [s["id"] for s in expander.expand(step, context)] == ["two"]

        context.set_variable("page", {"kind": "detail"})
        assert [s["id"] for s in expander.expand(step, context)] == ["default"]

    def test_for_loop(self, expander):
        context = EvaluationContext()
        step = {"id": "loop", "type": "for", "loopStart": 0, "loopEnd": 3, "loopStep": 1, "thenSteps": BODY}

        seen = []
        for batch in expander.iterations(step, context):
            seen.append((context.variables["i"], context.variables["_loopIndex"], len(batch)))

        assert seen == [(0, 0, 1), (1, 1, 1), (2, 2, 1)]
        assert len(expander.expand(step, EvaluationContext())) == 3

    def test_for_loop_defaults_and_custom_variable(self, expander):
        context = EvaluationContext()
        steps = expander.expand({"id": "loop", "type": "for", "loopVariable": "page", "thenSteps": BODY}, context)

        assert len(steps) == 10
        assert context.variables["page"] == 9

    def test_for_loop_zero_step_is_capped(self, expander):
        context = EvaluationContext()
        step = {"id": "loop", "type": "for", "loopStep": 0, "maxIterations": 7, "thenSteps": BODY}

        result = expander.expand_with_status(step, context)

        assert len(result.steps) == 7
        assert result.truncated is True
        assert context.variables["_loopIndex"] == 6

    def test_for_loop_empty_range(self, expander):
        step = {"id": "loop", "type": "for", "loopStart": 5, "loopEnd": 0, "thenSteps": BODY}
        result = expander.expand_with_status(step, EvaluationContext())

        assert result.steps == []
        assert result.truncated is False

    def test_for_each(self, expander):
        context = EvaluationContext(variables={"urls": ["/a", "/b"]})
        step = {"id": "each", "type": "forEach", "loopItems": "${urls}", "thenSteps": BODY * 2}

        seen = [context.variables["item"] for _ in expander.iterations(step, context)]

        assert seen == ["/a", "/b"]
        assert len(expander.expand(step, context)) == 4

    def test_for_each_non_list_is_empty(self, expander):
        context = EvaluationContext(variables={"urls": "not-a-list"})
        step = {"id": "each", "type": "forEach", "loopItems": "${urls}", "thenSteps": BODY}

        assert expander.expand(step, context) == []
        assert expander.expand({"id": "each", "type": "forEach", "thenSteps": BODY}, context) == []

    def test_for_each_cap(self, expander):
        context = EvaluationContext(variables={"items": list(range(10))})
        step = {
            "id": "each",
            "type": "forEach",
            "loopItems": "items",
            "loopVariable": "n",
            "maxIterations": 4,
            "thenSteps": BODY,
        }

        result = expander.expand_with_status(step, context)

        assert len(result.steps) == 4
        assert result.truncated is True
        assert context.variables["n"] == 3

    def test_while_always_true_hits_cap(self, expander):
        step = {
            "id": "poll",
            "type": "while",
            "condition": {"type": "expression", "expression": "true"},
            "maxIterations": 5,
            "thenSteps": BODY * 2,
        }

        result = expander.expand_with_status(step, EvaluationContext())

        assert len(result.steps) == 5 * 2
        assert result.iterations == 5
        assert result.truncated is True

    def test_while_default_cap(self):
        expander = ControlFlowExpander(loops=LoopConfig(while_max_iterations=3))
        step = {"id": "poll", "type": "while", "thenSteps": BODY}

        assert len(expander.expand(step, EvaluationContext())) == 3

    def test_while_sees_live_context(self, expander):
        context = EvaluationContext(variables={"remaining": 3})
        step = {
            "id": "drain",
            "type": "while",
            "condition": {"type": "simple", "left": "remaining", "operator": "greaterThan", "right": 0},
            "thenSteps": BODY,
        }

        status = ExpansionResult()
        for _ in expander.iterations(step, context, status):
            context.variables["remaining"] -= 1

        assert status.iterations == 3
        assert status.truncated is False

    def test_malformed_step_expands_to_nothing(self, expander):
        context = EvaluationContext()

        negative_cap = {"id": "loop", "type": "for", "maxIterations": -1, "thenSteps": BODY}
        bad_condition = {
            "id": "check",
            "type": "if",
            "condition": {"type": "compound", "logic": "xor"},
            "thenSteps": BODY,
        }

        assert expander.expand(negative_cap, context) == []
        assert expander.expand(bad_condition, context) == []
        assert expander.expand_with_status(negative_cap, context).iterations == 0
        assert context.variables == {}

    def test_steps_are_repeated_verbatim(self, expander):
        step = {"id": "loop", "type": "for", "loopEnd": 2, "thenSteps": BODY}
        steps = expander.expand(step, EvaluationContext())

        assert steps[0] == steps[1] == BODY[0]


class TestStepRunner:
    """Test step running with control flow."""

    @pytest.mark.asyncio
    async def test_loop_body_sees_loop_variable(self):
        context = EvaluationContext(variables={"products": ["p1", "p2", "p3"]})
        runner = StepRunner(context)
        visited = []

        async def visit(params, ctx):
            visited.append(params["url"])
            return {"url": params["url"]}

        runner.register("visit", visit)

        report = await runner.run([
            {
                "id": "each",
                "type": "forEach",
                "loopItems": "${products}",
                "thenSteps": [{"id": "open", "type": "visit", "url": "/p/{{item}}?n={{_loopIndex}}"}],
            },
        ])

        assert report.success
        assert visited == ["/p/p1?n=0", "/p/p2?n=1", "/p/p3?n=2"]
        assert context.results["open"] == {"url": "/p/p3?n=2"}

    @pytest.mark.asyncio
    async def test_while_loop_with_set_variable(self):
        context = EvaluationContext(variables={"count": 0})
        runner = StepRunner(context)

        report = await runner.run([
            {
                "id": "loop",
                "type": "while",
                "condition": {"type": "expression", "expression": "count < 3"},
                "thenSteps": [
                    {"id": "inc", "type": "setVariable", "name": "count", "value": "${next}"},
                ],
            },
        ])

        # next is never defined, so count becomes None and the loop ends
        assert len(report.outcomes) == 1
        assert context.variables["count"] is None

    @pytest.mark.asyncio
    async def test_nested_if_in_loop(self):
        context = EvaluationContext()
        runner = StepRunner(context)
        seen = []

        async def record(params, ctx):
            seen.append(params["label"])

        runner.register("record", record)

        await runner.run([
            {
                "id": "loop",
                "type": "for",
                "loopEnd": 4,
                "thenSteps": [
                    {
                        "id": "even",
                        "type": "if",
                        "condition": {"type": "expression", "expression": "i == 0 || i == 2"},
                        "thenSteps": [{"id": "r", "type": "record", "label": "even {{i}}"}],
                        "elseSteps": [{"id": "r", "type": "record", "label": "odd {{i}}"}],
                    },
                ],
            },
        ])

        assert seen == ["even 0", "odd 1", "even 2", "odd 3"]

    @pytest.mark.asyncio
    async def test_unknown_step_type(self):
        runner = StepRunner(EvaluationContext())
        report = await runner.run([{"id": "x", "type": "teleport"}])

        assert not report.success
        assert "Unknown step type" in report.outcomes[0].error

    @pytest.mark.asyncio
    async def test_stop_on_failure(self):
        runner = StepRunner(EvaluationContext())

        async def boom(params, ctx):
            raise RuntimeError("boom")

        runner.register("boom", boom)

        report = await runner.run([
            {"id": "a", "type": "boom", "stopOnFailure": True},
            {"id": "b", "type": "noop"},
        ])

        assert report.stopped
        assert [o.step_id for o in report.outcomes] == ["a"]
        assert report.outcomes[0].error == "boom"

    @pytest.mark.asyncio
    async def test_truncated_loops_are_reported(self):
        runner = StepRunner(EvaluationContext())
        report = await runner.run([
            {"id": "spin", "type": "while", "maxIterations": 2, "thenSteps": [{"id": "n", "type": "noop"}]},
        ])

        assert report.truncated_loops == ["spin"]
        assert len(report.outcomes) == 2

    @pytest.mark.asyncio
    async def test_nesting_beyond_max_depth_stops_run(self):
        runner = StepRunner(EvaluationContext())
        step = {"id": "leaf", "type": "noop"}
        for level in reversed(range(20)):
            step = {
                "id": f"if_{level}",
                "type": "if",
                "condition": {"type": "expression", "expression": "true"},
                "thenSteps": [step],
            }

        report = await runner.run([step, {"id": "after", "type": "noop"}])

        assert report.stopped
        assert not report.success
        assert [o.step_id for o in report.outcomes] == ["if_16"]
        assert "Maximum control-flow nesting depth exceeded (16)" in report.outcomes[0].error

    @pytest.mark.asyncio
    async def test_builtin_handlers(self):
        context = EvaluationContext(variables={"user": "ada"})
        runner = StepRunner(context)

        report = await runner.run([
            {"id": "set", "type": "setVariable", "name": "greeting", "value": "hi {{user}}"},
            {"id": "log", "type": "log", "message": "{{greeting}}"},
            {"id": "wait", "type": "delay", "ms": 1},
        ])

        assert report.success
        assert context.variables["greeting"] == "hi ada"
        assert context.results["log"]["message"] == "hi ada"
        assert "setVariable" in runner.list_step_types()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
