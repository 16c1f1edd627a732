from .checks import (
    CheckExecutionError,
    ComplianceCheck,
    ModelComplianceCheck,
    build_default_checks,
)
from .engine import (
    MANUAL_REVIEW_RECOMMENDATION,
    ParallelCheckEngine,
    synthetic_outcome,
)
from .scoring import aggregate

__all__ = [
    "CheckExecutionError",
    "ComplianceCheck",
    "ModelComplianceCheck",
    "build_default_checks",
    "MANUAL_REVIEW_RECOMMENDATION",
    "ParallelCheckEngine",
    "synthetic_outcome",
    "aggregate",
]
