from .clause import ClauseAnalyzer
from .pipeline import (
    PipelineState,
    SequentialAnalysisPipeline,
    STAGE_PLAN,
    StagePlan,
)

__all__ = [
    "ClauseAnalyzer",
    "PipelineState",
    "SequentialAnalysisPipeline",
    "STAGE_PLAN",
    "StagePlan",
]
