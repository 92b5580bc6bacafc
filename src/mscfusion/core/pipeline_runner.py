"""Offline runner: reads pipeline.yaml and executes the enabled steps in dependency order."""

from __future__ import annotations

import importlib
import json
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel

from .contracts import PipelineConfig, StepEntry
from .step_base import BaseStep

logger = logging.getLogger(__name__)

SUMMARY_FILE = "run_summary.json"


def load_pipeline_config(config_path: Path) -> PipelineConfig:
    """Load and validate pipeline.yaml; dependencies must name earlier steps."""
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    cfg = PipelineConfig(**raw)

    seen: set[str] = set()
    for entry in cfg.steps:
        unknown = [dep for dep in entry.depends_on if dep not in seen]
        if unknown:
            raise ValueError(f"Step '{entry.name}' depends on unknown or later steps: {unknown}")
        seen.add(entry.name)
    return cfg


def load_step_config(config_path: Path, config_class: type[BaseModel]) -> BaseModel:
    """Load a step-specific YAML config into its Pydantic model; empty files give defaults."""
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return config_class(**raw)


def import_step_class(module_path: str) -> type[BaseStep]:
    """Import the ``*Step`` class from ``<module_path>.step``."""
    step_module = importlib.import_module(f"{module_path}.step")
    for attr_name in dir(step_module):
        attr = getattr(step_module, attr_name)
        if (
            isinstance(attr, type)
            and issubclass(attr, BaseStep)
            and attr is not BaseStep
            and attr_name.endswith("Step")
        ):
            return attr
    raise ImportError(f"No Step class found in {module_path}.step")


def build_step(entry: StepEntry, data_root: Path) -> BaseStep:
    """Instantiate the step of one pipeline entry with its YAML config."""
    step_cls = import_step_class(entry.module)
    step_config = load_step_config(Path(entry.config_file), step_cls.config_type)
    return step_cls(config=step_config, data_root=data_root)


def run_pipeline(config_path: Path, initial_input: dict | None = None) -> dict[str, BaseModel]:
    """Execute every enabled step and return their outputs by step name.

    ``initial_input`` seeds the input of steps without dependencies
    (the rig file and frames directory of the fusion step). A timing
    summary of the run is written to ``<data_root>/run_summary.json``.
    """
    pipeline_cfg = load_pipeline_config(config_path)
    data_root = Path(pipeline_cfg.data_root)
    results: dict[str, BaseModel] = {}
    summary = []

    enabled_steps = [s for s in pipeline_cfg.steps if s.enabled]
    logger.info(f"Pipeline '{pipeline_cfg.project_name}' with {len(enabled_steps)} steps")

    for entry in enabled_steps:
        logger.info(f"--- Step: {entry.name} ---")
        step = build_step(entry, data_root)

        if entry.depends_on:
            input_data = {}
            for dep in entry.depends_on:
                if dep not in results:
                    raise RuntimeError(f"Step '{entry.name}' needs '{dep}', which is disabled")
                input_data.update(results[dep].model_dump())
        else:
            input_data = dict(initial_input or {})

        results[entry.name] = step.execute(step.input_type(**input_data))
        summary.append(step.meta.model_dump(mode="json"))

    data_root.mkdir(parents=True, exist_ok=True)
    with open(data_root / SUMMARY_FILE, "w", encoding="utf-8") as f:
        json.dump({"project_name": pipeline_cfg.project_name, "steps": summary}, f, indent=2)

    logger.info("Pipeline complete.")
    return results
