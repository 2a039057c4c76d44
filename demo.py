#!/usr/bin/env python3
"""
Demo script showing the engine without a browser.
Run with: python3 demo.py
"""

import asyncio
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from pageflow.core.config import EngineConfig
from pageflow.core.context import EvaluationContext
from pageflow.rules.resolver import ValueResolver
from pageflow.rules.evaluator import ConditionEvaluator
from pageflow.rules.control_flow import ControlFlowExpander
from pageflow.rules.runner import StepRunner


async def demo():
    print("=" * 60)
    print("PAGEFLOW - DEMO")
    print("=" * 60)
    print()

    # 1. Configuration
    print("[1] Configuration")
    print("-" * 40)

    config = EngineConfig()
    print(f"  ✓ Default config loaded")
    print(f"    - while cap: {config.loops.while_max_iterations}")
    print(f"    - for cap: {config.loops.for_max_iterations}")
    print(f"    - page wait: {config.extraction.wait_between_pages_ms}ms")
    print()

    context = EvaluationContext(
        variables={"user": {"name": "Ada", "role": "admin"}, "products": ["p1", "p2", "p3"]},
        results={"login": {"ok": True}},
    )

    # 2. Value resolution
    print("[2] Value Resolution")
    print("-" * 40)

    resolver = ValueResolver()
    for token in ["${user.name}", "Hello {{user.name}}!", "products", "${missing.path}"]:
        print(f"    {token!r:24} -> {resolver.resolve(token, context)!r}")
    print()

    # 3. Conditions
    print("[3] Conditions")
    print("-" * 40)

    evaluator = ConditionEvaluator(resolver)
    conditions = [
        {"type": "simple", "left": "${user.role}", "operator": "equals", "right": "admin"},
        {"type": "simple", "left": "${products}", "operator": "isNotEmpty"},
        {"type": "expression", "expression": "login.ok && products.length > 2"},
        {"type": "expression", "expression": "user.role in ['guest']"},
    ]
    for condition in conditions:
        print(f"    {condition.get('expression') or condition['operator']:36} -> {evaluator.evaluate(condition, context)}")
    print()

    # 4. Control flow
    print("[4] Control-Flow Expansion")
    print("-" * 40)

    expander = ControlFlowExpander(evaluator, loops=config.loops)
    result = expander.expand_with_status(
        {
            "id": "poll",
            "type": "while",
            "condition": {"type": "expression", "expression": "true"},
            "maxIterations": 3,
            "thenSteps": [{"id": "refresh", "type": "noop"}],
        },
        context,
    )
    print(f"  ✓ while(true) capped: {len(result.steps)} steps, truncated={result.truncated}")
    print()

    # 5. Running steps
    print("[5] Step Runner")
    print("-" * 40)

    runner = StepRunner(context, expander)
    report = await runner.run([
        {
            "id": "each",
            "type": "forEach",
            "loopItems": "${products}",
            "thenSteps": [
                {"id": "visit", "type": "log", "message": "visiting /products/{{item}} ({{_loopIndex}})"},
            ],
        },
    ])
    print(f"  ✓ {len(report.outcomes)} steps run, success={report.success}")
    for outcome in report.outcomes:
        print(f"    - {outcome.step_id}: {outcome.output['message']}")
    print()

    print("=" * 60)
    print("DEMO COMPLETE")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(demo())
