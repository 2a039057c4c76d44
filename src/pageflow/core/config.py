"""Configuration, schema and workflow loading."""

import json
import hashlib
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING
from dataclasses import dataclass, field

import yaml
import jsonschema
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

if TYPE_CHECKING:
    from ..extraction.models import ExtractionSchema


class LoopConfig(BaseModel):
    """Iteration caps applied when a loop step omits maxIterations."""
    while_max_iterations: int = Field(default=100, ge=1)
    for_max_iterations: int = Field(default=1000, ge=1)
    for_each_max_iterations: int = Field(default=1000, ge=1)


class ExtractionConfig(BaseModel):
    """Extraction and pagination defaults."""
    max_rule_depth: int = Field(default=8, ge=1, le=64)
    wait_between_pages_ms: int = Field(default=2000, ge=0)
    load_state: str = Field(default="networkidle")
    default_max_pages: int = Field(default=1, ge=1)


class BrowserConfig(BaseModel):
    """Browser launch settings used by the CLI."""
    headless: bool = Field(default=True)
    default_timeout_ms: int = Field(default=30000, ge=1000)
    viewport_width: int = Field(default=1280, ge=320)
    viewport_height: int = Field(default=720, ge=240)


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="pageflow")
    version: str = Field(default="0.1.0")

    loops: LoopConfig = Field(default_factory=LoopConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    def config_hash(self) -> str:
        """Generate hash of config for change detection."""
        return hashlib.sha256(
            self.model_dump_json().encode()
        ).hexdigest()[:16]


# Structural check for workflow documents. Step bodies are otherwise opaque.
WORKFLOW_DOCUMENT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["id", "steps"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "variables": {"type": "object"},
        "steps": {"$ref": "#/definitions/stepList"},
    },
    "definitions": {
        "stepList": {"type": "array", "items": {"$ref": "#/definitions/step"}},
        "condition": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {"enum": ["simple", "compound", "expression"]},
                "logic": {"enum": ["and", "or"]},
                "conditions": {
                    "type": "array",
                    "items": {"$ref": "#/definitions/condition"},
                },
                "expression": {"type": "string"},
            },
        },
        "step": {
            "type": "object",
            "required": ["id", "type"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "type": {"type": "string", "minLength": 1},
                "condition": {"$ref": "#/definitions/condition"},
                "thenSteps": {"$ref": "#/definitions/stepList"},
                "elseSteps": {"$ref": "#/definitions/stepList"},
                "defaultCase": {"$ref": "#/definitions/stepList"},
                "cases": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["value", "steps"],
                        "properties": {"steps": {"$ref": "#/definitions/stepList"}},
                    },
                },
                "maxIterations": {"type": "integer", "minimum": 0},
                "loopStart": {"type": "number"},
                "loopEnd": {"type": "number"},
                "loopStep": {"type": "number"},
                "loopVariable": {"type": "string"},
            },
        },
    },
}


@dataclass
class WorkflowDefinition:
    """A workflow definition (ordered steps plus initial variables)."""
    id: str
    name: str
    description: str = ""

    # Steps to execute in order; control-flow steps nest further step lists
    steps: list[dict[str, Any]] = field(default_factory=list)

    # Initial run variables
    variables: dict[str, Any] = field(default_factory=dict)

    config_hash: str = ""

    def __post_init__(self):
        if not self.config_hash:
            self.config_hash = self._compute_hash()

    def _compute_hash(self) -> str:
        content = json.dumps(
            {"steps": self.steps, "variables": self.variables},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(content.encode()).hexdigest()[:16]


class ConfigLoader:
    """Loads and validates YAML/JSON configurations, schemas and workflows."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)
        self._hashes: dict[str, str] = {}

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """
        Load main engine configuration.

        A missing default file yields the built-in defaults; an explicit
        path that does not exist is an error.
        """
        if path is None:
            path = self.config_dir / "pageflow.yaml"
            if not path.exists():
                return EngineConfig()
        else:
            path = Path(path)

        data = self._load_file(path)
        try:
            return EngineConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(path))

    def load_schema(self, path: str) -> "ExtractionSchema":
        """Load an extraction schema from a YAML or JSON file."""
        from ..extraction.models import ExtractionSchema

        path = Path(path)
        data = self._load_file(path)
        try:
            return ExtractionSchema.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid extraction schema: {e}", config_path=str(path))

    def load_workflow(self, path: str) -> WorkflowDefinition:
        """Load and structurally validate a workflow document."""
        path = Path(path)
        data = self._load_file(path)

        try:
            jsonschema.validate(instance=data, schema=WORKFLOW_DOCUMENT_SCHEMA)
        except jsonschema.ValidationError as e:
            location = "/".join(str(p) for p in e.absolute_path) or "<root>"
            raise ConfigError(
                f"Invalid workflow at {location}: {e.message}",
                config_path=str(path),
            )

        return WorkflowDefinition(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            steps=data["steps"],
            variables=data.get("variables", {}),
        )

    def has_config_changed(self, path: str) -> bool:
        """Check if a config file has changed since last load."""
        path = Path(path)
        current_hash = self._compute_file_hash(path)
        previous_hash = self._hashes.get(str(path))
        return current_hash != previous_hash

    def _load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()
            self._hashes[str(path)] = hashlib.sha256(content.encode()).hexdigest()[:16]

            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                data = json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

        if not isinstance(data, dict):
            raise ConfigError(
                f"Expected a mapping at top level, got {type(data).__name__}",
                config_path=str(path),
            )
        return data

    def _compute_file_hash(self, path: Path) -> str:
        """Compute hash of file contents."""
        if not path.exists():
            return ""
        content = path.read_text()
        return hashlib.sha256(content.encode()).hexdigest()[:16]
