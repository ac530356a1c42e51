"""
Pipeline framework for composing the PID producer with its consumers.

- Stages declare the context keys they read and write
- The pipeline orders stages by those keys and runs them over a shared Context
- The inputs declared by all stages form the demand set that decides which
  PID tables are produced
"""

from tpcpid.pipelines.stage import Stage, StageConfig, FunctionalStage
from tpcpid.pipelines.context import Context
from tpcpid.pipelines.pipeline import Pipeline, REQUESTED_OUTPUTS_KEY

__all__ = [
    "Stage",
    "StageConfig",
    "FunctionalStage",
    "Context",
    "Pipeline",
    "REQUESTED_OUTPUTS_KEY",
]
