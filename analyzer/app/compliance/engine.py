"""
Parallel compliance check engine.

Fans one AnalysisInput out to every registered check, waits for all of
them, and aggregates the outcomes into a scored report.

IMPORTANT:
- Checks run concurrently and independently; each receives its own
  deep copy of the input.
- A failing or overrunning check never fails the run. It is replaced
  by a synthetic degraded outcome (unclear, score 0, high risk).
- The report always contains exactly one outcome per check, in
  registration order, regardless of completion order.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

import anyio

from analyzer.app.compliance.checks import CheckExecutionError, ComplianceCheck
from analyzer.app.compliance.scoring import (
    DEFAULT_MAX_RECOMMENDATIONS,
    DEFAULT_WEIGHT,
    aggregate,
)
from analyzer.app.events import (
    AnalysisEvent,
    AnalysisEventKind,
    EventSubscriber,
    ProgressEventBus,
)
from analyzer.app.logging_config import bind_run_id
from analyzer.app.schemas.analysis_input import AnalysisInput
from analyzer.app.schemas.compliance import (
    AggregateReport,
    CheckOutcome,
    CheckStatus,
    RiskLevel,
)

logger = logging.getLogger(__name__)


MANUAL_REVIEW_RECOMMENDATION = "Manual review required"


def synthetic_outcome(check_name: str, reason: str) -> CheckOutcome:
    """
    Degraded outcome standing in for a check that produced none.
    """
    return CheckOutcome(
        check_name=check_name,
        status=CheckStatus.UNCLEAR,
        score=0.0,
        findings=[f"Check execution failed: {reason}"],
        recommendations=[MANUAL_REVIEW_RECOMMENDATION],
        risk_level=RiskLevel.HIGH,
        evidence=[],
        degraded=True,
    )


class ParallelCheckEngine:
    """
    Concurrent fan-out over a registered list of compliance checks.

    The engine holds no per-run state and may serve concurrent runs.
    """

    def __init__(
        self,
        checks: Sequence[ComplianceCheck],
        *,
        bus: Optional[ProgressEventBus] = None,
        check_timeout_seconds: float = 60.0,
        default_weight: float = DEFAULT_WEIGHT,
        max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
    ) -> None:
        if check_timeout_seconds <= 0:
            raise ValueError("check_timeout_seconds must be positive")

        self._checks = list(checks)
        self._bus = bus if bus is not None else ProgressEventBus()
        self._check_timeout_seconds = check_timeout_seconds
        self._default_weight = default_weight
        self._max_recommendations = max_recommendations

    @property
    def checks(self) -> List[ComplianceCheck]:
        return list(self._checks)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        analysis_input: AnalysisInput,
        checks: Optional[Sequence[ComplianceCheck]] = None,
        *,
        run_id: Optional[str] = None,
        subscribers: Optional[Iterable[EventSubscriber]] = None,
    ) -> AggregateReport:
        run_id = run_id or uuid4().hex
        checks = list(checks) if checks is not None else list(self._checks)
        bus = self._bus.with_subscribers(subscribers)

        with bind_run_id(run_id):
            return await self._run(analysis_input, checks, run_id=run_id, bus=bus)

    async def _run(
        self,
        analysis_input: AnalysisInput,
        checks: List[ComplianceCheck],
        *,
        run_id: str,
        bus: ProgressEventBus,
    ) -> AggregateReport:
        user_id = analysis_input.user_id
        total = len(checks)

        logger.info(
            "Compliance analysis started (checks=%d, document_chars=%d)",
            total,
            len(analysis_input.text),
        )
        bus.publish(
            AnalysisEvent(
                run_id=run_id,
                kind=AnalysisEventKind.STARTED,
                progress=0,
                payload={
                    "analysis_type": "compliance",
                    "checks": [check.name for check in checks],
                },
                user_id=user_id,
            )
        )

        outcomes: List[Optional[CheckOutcome]] = [None] * total
        finished = 0

        async def run_check(index: int, check: ComplianceCheck) -> None:
            nonlocal finished

            outcome = await self._execute_check(
                check,
                analysis_input.model_copy(deep=True),
                run_id=run_id,
                bus=bus,
            )
            outcomes[index] = outcome
            finished += 1

            bus.publish(
                AnalysisEvent(
                    run_id=run_id,
                    kind=AnalysisEventKind.PROGRESS,
                    progress=10 + int(80 * finished / total),
                    payload={
                        "check_name": check.name,
                        "status": outcome.status.value,
                        "degraded": outcome.degraded,
                        "finished": finished,
                        "total": total,
                    },
                    user_id=user_id,
                )
            )

        async with anyio.create_task_group() as tg:
            for index, check in enumerate(checks):
                tg.start_soon(run_check, index, check)

        report = aggregate(
            [outcome for outcome in outcomes if outcome is not None],
            self._weights_for(checks),
            default_weight=self._default_weight,
            max_recommendations=self._max_recommendations,
        )

        logger.info(
            "Compliance analysis completed (score=%.2f, status=%s, critical_issues=%d)",
            report.overall_score,
            report.overall_status.value,
            len(report.critical_issues),
        )
        bus.publish(
            AnalysisEvent(
                run_id=run_id,
                kind=AnalysisEventKind.COMPLETED,
                progress=100,
                payload={
                    "overall_score": report.overall_score,
                    "overall_status": report.overall_status.value,
                    "degraded_checks": [
                        outcome.check_name
                        for outcome in report.check_results
                        if outcome.degraded
                    ],
                },
                user_id=user_id,
            )
        )

        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _execute_check(
        self,
        check: ComplianceCheck,
        analysis_input: AnalysisInput,
        *,
        run_id: str,
        bus: ProgressEventBus,
    ) -> CheckOutcome:
        deadline = self._check_timeout_seconds

        try:
            with anyio.fail_after(deadline):
                return await check.execute(
                    analysis_input,
                    run_id=run_id,
                    timeout_seconds=deadline,
                    bus=bus,
                )

        except TimeoutError:
            reason = f"exceeded the {deadline:g}s deadline"

        except CheckExecutionError as exc:
            reason = f"{exc.kind.value}: {exc.error.message}"

        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"

        logger.error(
            "Compliance check %s failed: %s",
            check.name,
            reason,
            extra={"check_name": check.name, "degraded": True},
        )
        return synthetic_outcome(check.name, reason)

    def _weights_for(self, checks: Sequence[ComplianceCheck]) -> Mapping[str, float]:
        return {
            check.name: check.weight
            for check in checks
            if getattr(check, "weight", None) is not None
        }
