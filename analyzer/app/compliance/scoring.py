"""
Aggregation and scoring of compliance check outcomes.

Every function here is pure and deterministic: the same outcomes and
weights always yield the same report (apart from `generated_at`, which
callers may pin via `now`).

Scoring rules:
- overall_score = sum(score * weight(check_name)), rounded to 2 decimals
- checks absent from the weight table use the default weight
- weights are NOT renormalized, so the score may fall short of 1.0
  even when every check scores 1.0
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence

from analyzer.app.config import DEFAULT_CHECK_WEIGHTS
from analyzer.app.schemas.compliance import (
    AggregateReport,
    CheckOutcome,
    CheckStatus,
    OverallStatus,
    RiskLevel,
)


DEFAULT_WEIGHT = 0.1
DEFAULT_MAX_RECOMMENDATIONS = 10

# More than this many non_compliant checks is non_compliant overall.
NON_COMPLIANT_THRESHOLD = 2


_NEXT_STEPS = {
    OverallStatus.NON_COMPLIANT: [
        "Immediately review and correct critical compliance issues",
        "Consult legal counsel",
    ],
    OverallStatus.PARTIAL_COMPLIANCE: [
        "Improve compliance measures step by step",
        "Run internal compliance training",
    ],
    OverallStatus.COMPLIANT: [
        "Establish regular compliance reviews",
        "Keep documentation up to date",
    ],
}

CRITICAL_ISSUES_STEP = "Prioritize remediation of critical issues"
PERIODIC_REVIEW_STEP = "Schedule the next review in 6 months or upon changes"


def check_weight(
    check_name: str,
    weights: Mapping[str, float],
    default_weight: float = DEFAULT_WEIGHT,
) -> float:
    return weights.get(check_name, default_weight)


def compute_overall_score(
    outcomes: Sequence[CheckOutcome],
    weights: Mapping[str, float],
    default_weight: float = DEFAULT_WEIGHT,
) -> float:
    total = sum(
        outcome.score * check_weight(outcome.check_name, weights, default_weight)
        for outcome in outcomes
    )
    return round(total, 2)


def derive_overall_status(outcomes: Sequence[CheckOutcome]) -> OverallStatus:
    high_risk = [o for o in outcomes if o.risk_level == RiskLevel.HIGH]
    non_compliant = [o for o in outcomes if o.status == CheckStatus.NON_COMPLIANT]

    if high_risk or len(non_compliant) > NON_COMPLIANT_THRESHOLD:
        return OverallStatus.NON_COMPLIANT
    if non_compliant:
        return OverallStatus.PARTIAL_COMPLIANCE
    return OverallStatus.COMPLIANT


def collect_critical_issues(outcomes: Sequence[CheckOutcome]) -> List[str]:
    """
    Findings of every high-risk outcome, in outcome order.

    Identical findings from different checks are kept.
    """
    return [
        finding
        for outcome in outcomes
        if outcome.risk_level == RiskLevel.HIGH
        for finding in outcome.findings
    ]


def rank_recommendations(
    outcomes: Sequence[CheckOutcome],
    limit: int = DEFAULT_MAX_RECOMMENDATIONS,
) -> List[str]:
    """
    Recommendations ordered high > medium > low risk, formatted as
    "[check_name] recommendation".

    The sort is stable, so ties keep outcome order and, within an
    outcome, the model's original order.
    """
    tagged = [
        (outcome.risk_level, outcome.check_name, recommendation)
        for outcome in outcomes
        for recommendation in outcome.recommendations
    ]
    ranked = sorted(tagged, key=lambda item: item[0].priority, reverse=True)

    return [
        f"[{check_name}] {recommendation}"
        for _, check_name, recommendation in ranked[:limit]
    ]


def next_steps(
    status: OverallStatus,
    critical_issues: Sequence[str],
) -> List[str]:
    steps = list(_NEXT_STEPS[status])

    if status == OverallStatus.NON_COMPLIANT and critical_issues:
        steps.append(CRITICAL_ISSUES_STEP)

    steps.append(PERIODIC_REVIEW_STEP)
    return steps


def aggregate(
    outcomes: Sequence[CheckOutcome],
    weights: Optional[Mapping[str, float]] = None,
    *,
    default_weight: float = DEFAULT_WEIGHT,
    max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
    now: Optional[datetime] = None,
) -> AggregateReport:
    """
    Derive an immutable AggregateReport from check outcomes.
    """
    weights = weights if weights is not None else DEFAULT_CHECK_WEIGHTS

    status = derive_overall_status(outcomes)
    critical_issues = collect_critical_issues(outcomes)

    return AggregateReport(
        overall_score=compute_overall_score(outcomes, weights, default_weight),
        overall_status=status,
        check_results=list(outcomes),
        critical_issues=critical_issues,
        prioritized_recommendations=rank_recommendations(
            outcomes,
            max_recommendations,
        ),
        next_steps=next_steps(status, critical_issues),
        generated_at=now or datetime.now(timezone.utc),
    )
