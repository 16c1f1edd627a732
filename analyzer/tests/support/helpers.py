from __future__ import annotations

from typing import Any, Dict, List

from analyzer.app.events.models import AnalysisEvent
from analyzer.app.schemas.analysis_input import AnalysisInput
from analyzer.app.schemas.compliance import CheckOutcome, CheckStatus, RiskLevel


SAMPLE_CONTRACT = (
    "Employment contract between Example AG and Jane Doe.\n"
    "1. The employee works 42 hours per week.\n"
    "2. Either party may terminate with one month's notice.\n"
    "3. The employee waives all overtime compensation."
)


def make_input(text: str = SAMPLE_CONTRACT, **overrides: Any) -> AnalysisInput:
    values: Dict[str, Any] = {
        "text": text,
        "document_type": "employment_contract",
        "jurisdiction": "CH",
    }
    values.update(overrides)
    return AnalysisInput(**values)


# ----------------------------------------------------------------------
# Scripted IRAC stage outputs
# ----------------------------------------------------------------------

def issue_output(severity: str = "medium", with_issues: bool = True) -> Dict[str, Any]:
    issues: List[Dict[str, Any]] = []
    if with_issues:
        issues.append(
            {
                "issue": "Waiver of overtime compensation",
                "severity": severity,
                "legal_area": "employment law",
                "description": "Blanket waivers may be void under OR Art. 321c.",
                "potential_consequences": ["Back pay claims"],
            }
        )
    return {
        "issues": issues,
        "missing_clauses": ["Data protection clause"],
        "ambiguities": [],
    }


def rule_output() -> Dict[str, Any]:
    return {
        "rules": [
            {
                "law_reference": "OR Art. 321c",
                "legal_text": "Overtime must be compensated.",
                "interpretation": "Waivers require written agreement.",
                "precedents": [],
            }
        ],
        "legal_principles": ["Protection of the weaker party"],
        "jurisdiction_specifics": "Swiss Code of Obligations",
    }


def application_output() -> Dict[str, Any]:
    return {
        "fact_pattern": "The contract contains a blanket overtime waiver.",
        "legal_analysis": "The waiver is likely unenforceable.",
        "risk_assessment": "Medium risk of back pay claims.",
        "recommended_actions": ["Replace the waiver with a compensation clause"],
    }


def conclusion_output(confidence: float = 0.8) -> Dict[str, Any]:
    return {
        "overall_assessment": "Largely sound with one problematic clause.",
        "compliance_status": "requires_review",
        "critical_issues": ["Overtime waiver"],
        "recommendations": ["Revise clause 3"],
        "confidence_level": confidence,
    }


def irac_responses(**overrides: Any) -> Dict[str, Any]:
    responses: Dict[str, Any] = {
        "issue": issue_output(),
        "rule": rule_output(),
        "application": application_output(),
        "conclusion": conclusion_output(),
    }
    responses.update(overrides)
    return responses


# ----------------------------------------------------------------------
# Compliance helpers
# ----------------------------------------------------------------------

def assessment(
    status: str = "compliant",
    score: float = 1.0,
    risk_level: str = "low",
    findings: List[str] | None = None,
    recommendations: List[str] | None = None,
) -> Dict[str, Any]:
    return {
        "status": status,
        "score": score,
        "findings": findings or [],
        "recommendations": recommendations or [],
        "risk_level": risk_level,
        "evidence": [],
    }


def make_outcome(
    check_name: str,
    score: float = 1.0,
    status: CheckStatus = CheckStatus.COMPLIANT,
    risk_level: RiskLevel = RiskLevel.LOW,
    findings: List[str] | None = None,
    recommendations: List[str] | None = None,
) -> CheckOutcome:
    return CheckOutcome(
        check_name=check_name,
        status=status,
        score=score,
        findings=findings or [],
        recommendations=recommendations or [],
        risk_level=risk_level,
        evidence=[],
    )


class RecordingSubscriber:
    """Collects every delivered event."""

    def __init__(self, subscriber_id: str = "recorder") -> None:
        self.subscriber_id = subscriber_id
        self.events: List[AnalysisEvent] = []

    def handle(self, event: AnalysisEvent) -> None:
        self.events.append(event)
