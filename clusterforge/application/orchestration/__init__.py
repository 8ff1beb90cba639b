"""
Application Orchestration Package

Architectural Intent:
- Contains the rollback-capable action pipeline used by every lifecycle
  operation
"""

from clusterforge.application.orchestration.action_pipeline import (
    ActionPipeline,
    PipelineResult,
    StepOutcome,
    StepPhase,
    StepRecord,
)

__all__ = [
    "ActionPipeline",
    "PipelineResult",
    "StepOutcome",
    "StepPhase",
    "StepRecord",
]
