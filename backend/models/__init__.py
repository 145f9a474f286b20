"""Pipeline execution records.

This module exposes the stage names and the records a stage runner appends
to as agents complete.
"""

from models.pipeline import (
    STAGE_ORDER,
    AgentExecutionRecord,
    PipelineExecution,
    PipelineStatus,
    StageExecution,
    StageName,
)

__all__ = [
    "STAGE_ORDER",
    "AgentExecutionRecord",
    "PipelineExecution",
    "PipelineStatus",
    "StageExecution",
    "StageName",
]
