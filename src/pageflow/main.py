"""
Command line entry point.

    pageflow extract SCHEMA --url URL [--format json|csv] [--output PATH]
    pageflow expand WORKFLOW [--vars JSON]
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

from .core.config import ConfigLoader, EngineConfig
from .core.context import EvaluationContext
from .core.errors import FrameworkError
from .rules.control_flow import ControlFlowExpander, is_control_flow


def configure_logging(json_output: bool = False) -> None:
    """Configure structured logging on stderr; stdout carries command output."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_output
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def load_config(path: Optional[str]) -> EngineConfig:
    """Load engine config and apply environment overrides."""
    config_path = path or os.getenv("PAGEFLOW_CONFIG")
    config = ConfigLoader().load_engine_config(config_path)

    headless = os.getenv("BROWSER_HEADLESS")
    if headless is not None:
        config.browser.headless = headless.lower() == "true"

    return config


async def run_extract(args: argparse.Namespace) -> int:
    from .browser.manager import BrowserManager
    from .extraction.extractor import DataExtractor
    from .extraction.pagination import PaginationDriver

    config = load_config(args.config)
    schema = ConfigLoader().load_schema(args.schema)

    url = args.url or schema.url
    if not url:
        logger.error("extract_missing_url", schema_id=schema.id)
        return 1

    output_format = args.format or (schema.output.format if schema.output else "json")
    output_path = args.output or (schema.output.filename if schema.output else None)

    async with BrowserManager(config.browser) as browser:
        page = await browser.get_page()
        await page.navigate(url)

        extractor = DataExtractor(page, driver=PaginationDriver(config=config.extraction))
        await extractor.extract(schema)

    text = extractor.to_csv() if output_format == "csv" else extractor.to_json()

    if output_path:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(text)
        logger.info("extract_output_written", path=output_path, format=output_format)
    else:
        print(text)
    return 0


def run_expand(args: argparse.Namespace) -> int:
    """Dry run: expand top-level control-flow steps and print the step list."""
    config = load_config(args.config)
    workflow = ConfigLoader().load_workflow(args.workflow)

    variables = dict(workflow.variables)
    if args.vars:
        variables.update(json.loads(args.vars))

    context = EvaluationContext(variables=variables)
    expander = ControlFlowExpander(loops=config.loops)

    expanded = []
    for step in workflow.steps:
        if is_control_flow(step):
            expanded.extend(expander.expand(step, context))
        else:
            expanded.append(step)

    print(json.dumps({"steps": expanded, "variables": context.variables}, indent=2, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pageflow",
        description="Declarative page automation and extraction",
    )
    parser.add_argument("--config", help="Engine config file (YAML/JSON)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Run an extraction schema against a URL")
    extract.add_argument("schema", help="Extraction schema file (YAML/JSON)")
    extract.add_argument("--url", help="Page to open (defaults to the schema url)")
    extract.add_argument("--format", choices=["json", "csv"])
    extract.add_argument("--output", help="Write results to this file instead of stdout")

    expand = subparsers.add_parser("expand", help="Expand a workflow's control-flow steps")
    expand.add_argument("workflow", help="Workflow file (YAML/JSON)")
    expand.add_argument("--vars", help="JSON object of variables overriding the workflow's")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    configure_logging(json_output=os.getenv("LOG_FORMAT") == "json")

    args = build_parser().parse_args(argv)

    try:
        if args.command == "extract":
            return asyncio.run(run_extract(args))
        return run_expand(args)
    except FrameworkError as e:
        logger.error("command_failed", command=args.command, **e.to_dict())
        return 1
    except json.JSONDecodeError as e:
        logger.error("command_failed", command=args.command, error=f"Invalid --vars JSON: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
