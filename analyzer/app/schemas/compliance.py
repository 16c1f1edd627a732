"""
Compliance check schemas.

Defines the per-check CheckOutcome and the AggregateReport derived
from a set of outcomes. Both are immutable once constructed.
"""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class CheckStatus(str, Enum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    UNCLEAR = "unclear"
    NOT_APPLICABLE = "not_applicable"


class RiskLevel(str, Enum):
    """
    Risk level of a check outcome.

    Ordering (high > medium > low) drives recommendation ranking.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def priority(self) -> int:
        return _RISK_PRIORITY[self]


_RISK_PRIORITY = {
    RiskLevel.HIGH: 3,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 1,
}


class OverallStatus(str, Enum):
    COMPLIANT = "compliant"
    PARTIAL_COMPLIANCE = "partial_compliance"
    NON_COMPLIANT = "non_compliant"


# ---------------------------------------------------------------------------
# Model output (what a check's model call must return)
# ---------------------------------------------------------------------------

class CheckAssessment(BaseModel):
    """
    Structured output expected from a compliance check model call.

    The check name is NOT part of the model output; it is attached by
    the check itself.
    """

    status: CheckStatus
    score: float = Field(..., ge=0.0, le=1.0)
    findings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    risk_level: RiskLevel
    evidence: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


# ---------------------------------------------------------------------------
# Per-check outcome
# ---------------------------------------------------------------------------

class CheckOutcome(BaseModel):
    """
    Result of one independent compliance check.

    Produced independently per check; immutable once produced.
    """

    check_name: str
    status: CheckStatus
    score: float = Field(..., ge=0.0, le=1.0)
    findings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    risk_level: RiskLevel
    evidence: List[str] = Field(default_factory=list)

    degraded: bool = Field(
        False,
        description=(
            "True when the check failed to execute and this outcome was "
            "synthesized in its place"
        ),
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_assessment(
        cls,
        check_name: str,
        assessment: CheckAssessment,
    ) -> "CheckOutcome":
        return cls(
            check_name=check_name,
            **assessment.model_dump(),
        )


# ---------------------------------------------------------------------------
# Aggregate report
# ---------------------------------------------------------------------------

class AggregateReport(BaseModel):
    """
    Scored compliance report derived functionally from CheckOutcomes.

    Never mutated after construction.
    """

    overall_score: float
    overall_status: OverallStatus
    check_results: List[CheckOutcome]
    critical_issues: List[str]
    prioritized_recommendations: List[str]
    next_steps: List[str]
    generated_at: datetime

    model_config = ConfigDict(frozen=True, extra="forbid")
