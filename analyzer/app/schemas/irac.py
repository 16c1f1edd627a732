"""
IRAC (Issue, Rule, Application, Conclusion) schemas.

Defines:
- the structured output each sequential stage must return
- the composite SequentialResult handed to callers
- the single terminal PipelineError returned instead of a partial result

IMPORTANT:
- Stage output schemas are advisory model outputs; they do NOT assert
  legal validity.
- Unknown keys in model output are ignored; missing or mistyped keys
  are schema violations.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from analyzer.app.schemas.stage import StageErrorKind, StageOutput


class IracStage(str, Enum):
    """Sequential stage names, in execution order."""

    ISSUE = "issue"
    RULE = "rule"
    APPLICATION = "application"
    CONCLUSION = "conclusion"


IssueSeverity = Literal["high", "medium", "low"]


# ----------------------------------------------------------------------
# Issue stage
# ----------------------------------------------------------------------

class LegalIssue(BaseModel):
    issue: str = Field(..., min_length=1, description="The identified legal question")
    severity: IssueSeverity
    legal_area: str = Field(..., description="Area of law (e.g. contract law, employment law)")
    description: str
    potential_consequences: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


class IssueStageOutput(BaseModel):
    issues: List[LegalIssue] = Field(default_factory=list)
    missing_clauses: List[str] = Field(default_factory=list)
    ambiguities: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


# ----------------------------------------------------------------------
# Rule stage
# ----------------------------------------------------------------------

class LegalRule(BaseModel):
    law_reference: str = Field(..., min_length=1, description="Statute reference (e.g. OR Art. 123)")
    legal_text: str
    interpretation: str
    precedents: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


class RuleStageOutput(BaseModel):
    rules: List[LegalRule] = Field(default_factory=list)
    legal_principles: List[str] = Field(default_factory=list)
    jurisdiction_specifics: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")


# ----------------------------------------------------------------------
# Application stage
# ----------------------------------------------------------------------

class ApplicationStageOutput(BaseModel):
    fact_pattern: str
    legal_analysis: str
    risk_assessment: str
    recommended_actions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


# ----------------------------------------------------------------------
# Conclusion stage
# ----------------------------------------------------------------------

class ConclusionStageOutput(BaseModel):
    overall_assessment: str
    compliance_status: Literal[
        "compliant",
        "non_compliant",
        "unclear",
        "requires_review",
    ]
    critical_issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence_level: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="ignore")


# ----------------------------------------------------------------------
# Clause analysis (single-shot)
# ----------------------------------------------------------------------

class ClauseAnalysis(BaseModel):
    """Risk assessment of one isolated contract clause."""

    risk_level: Literal["low", "medium", "high"]
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")


# ----------------------------------------------------------------------
# Composite result
# ----------------------------------------------------------------------

class SequentialMetadata(BaseModel):
    started_at: datetime
    completed_at: datetime
    duration_ms: int = Field(..., ge=0)
    jurisdiction: str
    document_type: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class SequentialResult(BaseModel):
    """
    Composite IRAC opinion.

    Only assembled once all four stage outputs exist, are validated,
    and belong to `run_id`. An incomplete set is never exposed.
    """

    run_id: str
    issues: StageOutput
    rules: StageOutput
    application: StageOutput
    conclusion: StageOutput
    metadata: SequentialMetadata

    advisory_signals: List[str] = Field(
        default_factory=list,
        description="Non-gating plausibility warnings from cross-validation",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    def stage_outputs(self) -> List[StageOutput]:
        return [self.issues, self.rules, self.application, self.conclusion]


class PipelineError(BaseModel):
    """
    Single terminal failure of a sequential run.

    Names exactly one failing stage. The message is caller-safe.
    """

    run_id: str
    stage_name: str
    kind: StageErrorKind
    message: str
    timed_out: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")
