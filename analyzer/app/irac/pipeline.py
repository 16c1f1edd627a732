"""
Sequential IRAC analysis pipeline.

Runs Issue -> Rule -> Application -> Conclusion, feeding every validated
stage output into all later stages.

IMPORTANT:
- A run yields either a complete SequentialResult or exactly one
  PipelineError naming the failing stage. Partial results are never
  exposed.
- After a stage fails, no later stage is invoked.
- Plausibility warnings from cross-validation are advisory and never
  fail a run.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Type, Union
from uuid import uuid4

from pydantic import BaseModel

from analyzer.app.events import (
    AnalysisEvent,
    AnalysisEventKind,
    EventSubscriber,
    ProgressEventBus,
)
from analyzer.app.irac.prompts import STAGE_TEMPLATES, render_stage_prompt
from analyzer.app.logging_config import bind_run_id
from analyzer.app.prompts import PromptTemplate
from analyzer.app.schemas.analysis_input import AnalysisInput
from analyzer.app.schemas.irac import (
    ApplicationStageOutput,
    ConclusionStageOutput,
    IracStage,
    IssueStageOutput,
    PipelineError,
    RuleStageOutput,
    SequentialMetadata,
    SequentialResult,
)
from analyzer.app.schemas.stage import StageError, StageErrorKind, StageOutput
from analyzer.app.stage_executor import StageExecutor

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    ISSUE = "issue"
    RULE = "rule"
    APPLICATION = "application"
    CONCLUSION = "conclusion"
    DONE = "done"
    FAILED = "failed"


class StagePlan(NamedTuple):
    stage: IracStage
    output_schema: Type[BaseModel]
    template: PromptTemplate
    progress: int


STAGE_PLAN: List[StagePlan] = [
    StagePlan(IracStage.ISSUE, IssueStageOutput, STAGE_TEMPLATES[IracStage.ISSUE], 20),
    StagePlan(IracStage.RULE, RuleStageOutput, STAGE_TEMPLATES[IracStage.RULE], 40),
    StagePlan(IracStage.APPLICATION, ApplicationStageOutput, STAGE_TEMPLATES[IracStage.APPLICATION], 60),
    StagePlan(IracStage.CONCLUSION, ConclusionStageOutput, STAGE_TEMPLATES[IracStage.CONCLUSION], 80),
]

CROSS_VALIDATION_PROGRESS = 95


# ----------------------------------------------------------------------
# Cross-validation
# ----------------------------------------------------------------------

def find_inconsistency(
    run_id: str,
    outputs: Dict[str, StageOutput],
) -> Optional[str]:
    """
    Return a description of the first structural inconsistency, or None.
    """
    expected = [plan.stage.value for plan in STAGE_PLAN]

    missing = [name for name in expected if name not in outputs]
    if missing:
        return f"Missing stage outputs: {missing}"

    foreign = [
        name for name in expected if outputs[name].run_id != run_id
    ]
    if foreign:
        return f"Stage outputs belong to another run: {foreign}"

    conclusion = outputs[IracStage.CONCLUSION.value]
    if conclusion.consumed_stages != expected[:-1]:
        return (
            "Conclusion did not consume all prior stages: "
            f"{conclusion.consumed_stages}"
        )

    return None


def plausibility_warnings(outputs: Dict[str, StageOutput]) -> List[str]:
    issues = outputs[IracStage.ISSUE.value].output
    conclusion = outputs[IracStage.CONCLUSION.value].output

    warnings: List[str] = []

    if not issues.issues:
        warnings.append(
            "No legal issues identified; the analysis may be incomplete"
        )

    has_high_severity = any(issue.severity == "high" for issue in issues.issues)
    if conclusion.confidence_level > 0.9 and has_high_severity:
        warnings.append(
            "Very high confidence despite high-severity issues; "
            "the conclusion should be reviewed"
        )

    return warnings


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------

class SequentialAnalysisPipeline:
    """
    Deterministic orchestrator for the four IRAC stages.

    This pipeline owns:
    - stage ordering and the data flow between stages
    - run-level progress events
    - final cross-validation and assembly

    It does NOT own:
    - model access (delegated to the StageExecutor)
    - retries (a failed stage fails the run)
    """

    def __init__(
        self,
        executor: StageExecutor,
        *,
        bus: Optional[ProgressEventBus] = None,
        stage_timeout_seconds: float = 60.0,
        plan: Iterable[StagePlan] = STAGE_PLAN,
    ) -> None:
        if stage_timeout_seconds <= 0:
            raise ValueError("stage_timeout_seconds must be positive")

        self._executor = executor
        self._bus = bus if bus is not None else ProgressEventBus()
        self._stage_timeout_seconds = stage_timeout_seconds
        self._plan = list(plan)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        analysis_input: AnalysisInput,
        *,
        run_id: Optional[str] = None,
        subscribers: Optional[Iterable[EventSubscriber]] = None,
    ) -> Union[SequentialResult, PipelineError]:
        run_id = run_id or uuid4().hex
        bus = self._bus.with_subscribers(subscribers)

        with bind_run_id(run_id):
            return await self._run(analysis_input, run_id=run_id, bus=bus)

    async def _run(
        self,
        analysis_input: AnalysisInput,
        *,
        run_id: str,
        bus: ProgressEventBus,
    ) -> Union[SequentialResult, PipelineError]:
        user_id = analysis_input.user_id
        started_at = datetime.now(timezone.utc)
        started_clock = time.monotonic()

        def publish(
            kind: AnalysisEventKind,
            progress: Optional[int],
            **payload: Any,
        ) -> None:
            bus.publish(
                AnalysisEvent(
                    run_id=run_id,
                    kind=kind,
                    progress=progress,
                    payload=payload or None,
                    user_id=user_id,
                )
            )

        logger.info(
            "Sequential analysis started (document_type=%s, jurisdiction=%s)",
            analysis_input.document_type,
            analysis_input.jurisdiction,
        )
        publish(
            AnalysisEventKind.STARTED,
            0,
            analysis_type="irac",
            document_type=analysis_input.document_type,
            jurisdiction=analysis_input.jurisdiction,
        )

        outputs: Dict[str, StageOutput] = {}

        for sequence, plan in enumerate(self._plan, start=1):
            state = PipelineState(plan.stage.value)
            publish(
                AnalysisEventKind.PROGRESS,
                plan.progress,
                state=state.value,
            )

            try:
                prompt = render_stage_prompt(
                    plan.template,
                    analysis_input=analysis_input,
                    prior_outputs=outputs,
                    output_schema=plan.output_schema,
                )
            except (TypeError, ValueError) as exc:
                return self._fail(
                    PipelineError(
                        run_id=run_id,
                        stage_name=plan.stage.value,
                        kind=StageErrorKind.INVALID_INPUT,
                        message=f"Stage input could not be rendered: {exc}",
                    ),
                    publish,
                )

            result = await self._executor.run(
                prompt=prompt,
                output_schema=plan.output_schema,
                run_id=run_id,
                sequence=sequence,
                consumed_stages=list(outputs),
                bus=bus,
                user_id=user_id,
                timeout_seconds=self._stage_timeout_seconds,
            )

            if isinstance(result, StageError):
                return self._fail(
                    PipelineError(
                        run_id=run_id,
                        stage_name=result.stage_name,
                        kind=result.kind,
                        message=result.message,
                        timed_out=result.timed_out,
                    ),
                    publish,
                )

            outputs[plan.stage.value] = result

        # --------------------------------------------------------------
        # Cross-validation
        # --------------------------------------------------------------
        publish(
            AnalysisEventKind.PROGRESS,
            CROSS_VALIDATION_PROGRESS,
            state="cross_validation",
        )

        inconsistency = find_inconsistency(run_id, outputs)
        if inconsistency is not None:
            return self._fail(
                PipelineError(
                    run_id=run_id,
                    stage_name="cross_validation",
                    kind=StageErrorKind.AGGREGATION_INCONSISTENCY,
                    message=inconsistency,
                ),
                publish,
            )

        advisory_signals = plausibility_warnings(outputs)
        for warning in advisory_signals:
            logger.warning(
                "Plausibility check: %s",
                warning,
            )

        completed_at = datetime.now(timezone.utc)

        result = SequentialResult(
            run_id=run_id,
            issues=outputs[IracStage.ISSUE.value],
            rules=outputs[IracStage.RULE.value],
            application=outputs[IracStage.APPLICATION.value],
            conclusion=outputs[IracStage.CONCLUSION.value],
            metadata=SequentialMetadata(
                started_at=started_at,
                completed_at=completed_at,
                duration_ms=int((time.monotonic() - started_clock) * 1000),
                jurisdiction=analysis_input.jurisdiction,
                document_type=analysis_input.document_type,
            ),
            advisory_signals=advisory_signals,
        )

        conclusion = result.conclusion.output
        logger.info(
            "Sequential analysis completed (status=%s, confidence=%.2f)",
            conclusion.compliance_status,
            conclusion.confidence_level,
        )
        publish(
            AnalysisEventKind.COMPLETED,
            100,
            state=PipelineState.DONE.value,
            compliance_status=conclusion.compliance_status,
            confidence_level=conclusion.confidence_level,
            advisory_signals=advisory_signals,
        )

        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _fail(error: PipelineError, publish) -> PipelineError:
        logger.error(
            "Sequential analysis failed at stage %s (%s): %s",
            error.stage_name,
            error.kind.value,
            error.message,
            extra={
                "stage_name": error.stage_name,
                "error_kind": error.kind.value,
            },
        )
        publish(
            AnalysisEventKind.FAILED,
            None,
            state=PipelineState.FAILED.value,
            stage_name=error.stage_name,
            error_kind=error.kind.value,
            message=error.message,
            timed_out=error.timed_out,
        )
        return error
