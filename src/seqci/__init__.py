from .dsl import sh, tolerated, optional_script, pipeline, matrix, PipelineBuilder, build
from .runner import run, run_pipeline, load_pipeline, StepFailure, CIError
from .model import Pipeline, RunResult, Step, StepRecord

__all__ = [
    "sh", "tolerated", "optional_script", "pipeline", "matrix", "PipelineBuilder", "build",
    "run", "run_pipeline", "load_pipeline", "StepFailure", "CIError",
    "Pipeline", "RunResult", "Step", "StepRecord",
]
