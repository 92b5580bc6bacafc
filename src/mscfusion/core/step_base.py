"""Base class for offline pipeline steps.

A step declares typed Input, Output and Config Pydantic models so the
runner can build its input from upstream outputs and validate it before
any work starts. Every run leaves a ``StepMeta`` record with the timing
and the exact config used.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar, Generic, Optional, TypeVar

from pydantic import BaseModel

from .contracts import StepMeta

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)
ConfigT = TypeVar("ConfigT", bound=BaseModel)

logger = logging.getLogger(__name__)


class BaseStep(ABC, Generic[InputT, OutputT, ConfigT]):
    """Abstract base for pipeline steps.

    Subclasses set ``input_type``, ``output_type``, ``config_type`` and
    ``output_subdir`` and implement ``run()`` and ``validate_inputs()``:

        class TsdfFusionStep(BaseStep[TsdfFusionInput, TsdfFusionOutput, TsdfFusionConfig]):
            name = "tsdf_fusion"
            output_subdir = "s01_tsdf_fusion"
            input_type = TsdfFusionInput
            output_type = TsdfFusionOutput
            config_type = TsdfFusionConfig
    """

    name: ClassVar[str] = ""
    output_subdir: ClassVar[str] = ""
    input_type: ClassVar[type[BaseModel]]
    output_type: ClassVar[type[BaseModel]]
    config_type: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT, data_root: Path):
        self.config = config
        self.data_root = Path(data_root)
        self.meta: Optional[StepMeta] = None

    @property
    def step_name(self) -> str:
        return self.name or self.__class__.__name__

    @property
    def output_dir(self) -> Path:
        """``<data_root>/interim/<output_subdir>``, created on first access."""
        path = self.data_root / "interim" / (self.output_subdir or self.step_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @abstractmethod
    def run(self, inputs: InputT) -> OutputT:
        ...

    @abstractmethod
    def validate_inputs(self, inputs: InputT) -> bool:
        """Check that all required input artifacts exist."""
        ...

    def execute(self, inputs: InputT) -> OutputT:
        """Validate, run and time the step; the record is kept in ``self.meta``."""
        logger.info(f"[{self.step_name}] Validating inputs...")
        if not self.validate_inputs(inputs):
            raise ValueError(f"[{self.step_name}] Input validation failed")

        logger.info(f"[{self.step_name}] Starting...")
        t0 = time.perf_counter()
        result = self.run(inputs)
        elapsed = time.perf_counter() - t0

        self.meta = StepMeta(
            step_name=self.step_name,
            elapsed_seconds=elapsed,
            params=self.config.model_dump(mode="json"),
        )
        logger.info(f"[{self.step_name}] Done in {elapsed:.1f}s")
        return result

    @classmethod
    def get_input_schema(cls) -> dict:
        return cls.input_type.model_json_schema()
