"""
Sequential IRAC pipeline tests.

Verifies that:
- a successful run returns all four outputs under one run id
- the conclusion consumed the issue, rule and application outputs
- a failing stage yields exactly one PipelineError naming that stage
  and no later stage is invoked
- run-level progress follows 20/40/60/80/95/100
- plausibility warnings are advisory only
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from analyzer.app.events import AnalysisEventKind, AnalysisEventScope, ProgressEventBus
from analyzer.app.irac import SequentialAnalysisPipeline
from analyzer.app.irac.pipeline import find_inconsistency
from analyzer.app.schemas.irac import (
    ConclusionStageOutput,
    IssueStageOutput,
    PipelineError,
    RuleStageOutput,
    SequentialResult,
)
from analyzer.app.schemas.stage import StageErrorKind
from analyzer.app.stage_executor import StageExecutor
from analyzer.tests.support.helpers import (
    RecordingSubscriber,
    conclusion_output,
    irac_responses,
    issue_output,
    make_input,
    rule_output,
)
from analyzer.tests.support.mock_model_port import MockModelPort

pytestmark = pytest.mark.anyio


def build_pipeline(port: MockModelPort, bus: ProgressEventBus | None = None):
    return SequentialAnalysisPipeline(
        StageExecutor(port),
        bus=bus,
        stage_timeout_seconds=1.0,
    )


# ----------------------------------------------------------------------
# Happy path
# ----------------------------------------------------------------------

async def test_full_run_returns_complete_result_for_one_run():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input(), run_id="run-42")

    assert isinstance(result, SequentialResult)
    assert result.run_id == "run-42"
    assert {output.run_id for output in result.stage_outputs()} == {"run-42"}
    assert [output.sequence for output in result.stage_outputs()] == [1, 2, 3, 4]
    assert isinstance(result.issues.output, IssueStageOutput)
    assert isinstance(result.conclusion.output, ConclusionStageOutput)
    assert result.metadata.jurisdiction == "CH"
    assert result.metadata.document_type == "employment_contract"
    assert result.metadata.duration_ms >= 0
    assert result.advisory_signals == []


async def test_conclusion_consumes_all_prior_stages():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input())

    assert result.issues.consumed_stages == []
    assert result.rules.consumed_stages == ["issue"]
    assert result.application.consumed_stages == ["issue", "rule"]
    assert result.conclusion.consumed_stages == ["issue", "rule", "application"]


async def test_later_stage_prompts_embed_prior_outputs():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    await pipeline.run(make_input())

    assert port.called_stages == ["issue", "rule", "application", "conclusion"]

    conclusion_prompt = port.calls_for("conclusion")[0]
    assert "ISSUE STAGE OUTPUT" in conclusion_prompt.text
    assert "RULE STAGE OUTPUT" in conclusion_prompt.text
    assert "APPLICATION STAGE OUTPUT" in conclusion_prompt.text
    assert "OR Art. 321c" in conclusion_prompt.text

    issue_prompt = port.calls_for("issue")[0]
    assert "STAGE OUTPUT" not in issue_prompt.text
    assert issue_prompt.input_text == make_input().text


async def test_result_serializes_stage_payloads():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input())
    dumped = json.loads(result.model_dump_json())

    assert dumped["rules"]["output"]["rules"][0]["law_reference"] == "OR Art. 321c"
    assert dumped["conclusion"]["output"]["compliance_status"] == "requires_review"


# ----------------------------------------------------------------------
# Failure paths
# ----------------------------------------------------------------------

async def test_rule_schema_violation_stops_pipeline_at_rule():
    port = MockModelPort(
        responses=irac_responses(rule={"rules": [{"legal_text": "missing reference"}]})
    )
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input(), run_id="run-7")

    assert isinstance(result, PipelineError)
    assert result.run_id == "run-7"
    assert result.stage_name == "rule"
    assert result.kind == StageErrorKind.SCHEMA_VIOLATION

    assert port.calls_for("application") == []
    assert port.calls_for("conclusion") == []
    assert port.called_stages == ["issue", "rule"]


async def test_issue_invocation_failure_names_issue_stage():
    port = MockModelPort(responses=irac_responses(issue=RuntimeError("boom")))
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input())

    assert isinstance(result, PipelineError)
    assert result.stage_name == "issue"
    assert result.kind == StageErrorKind.MODEL_INVOCATION_FAILURE
    assert port.called_stages == ["issue"]


async def test_empty_document_is_invalid_input_without_model_calls():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input(text="   "))

    assert isinstance(result, PipelineError)
    assert result.stage_name == "issue"
    assert result.kind == StageErrorKind.INVALID_INPUT
    assert port.calls == []


async def test_stage_deadline_expiry_fails_run_as_timed_out():
    port = MockModelPort(
        responses=irac_responses(),
        delays={"application": 5.0},
    )
    pipeline = SequentialAnalysisPipeline(
        StageExecutor(port),
        stage_timeout_seconds=0.05,
    )

    result = await pipeline.run(make_input())

    assert isinstance(result, PipelineError)
    assert result.stage_name == "application"
    assert result.timed_out is True
    assert port.calls_for("conclusion") == []


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

async def test_run_progress_sequence():
    recorder = RecordingSubscriber()
    pipeline = build_pipeline(MockModelPort(responses=irac_responses()))

    await pipeline.run(make_input(), subscribers=[recorder])

    run_events = [e for e in recorder.events if e.scope == AnalysisEventScope.RUN]

    assert run_events[0].kind == AnalysisEventKind.STARTED
    assert run_events[-1].kind == AnalysisEventKind.COMPLETED
    assert [e.progress for e in run_events if e.kind == AnalysisEventKind.PROGRESS] == [
        20, 40, 60, 80, 95,
    ]
    assert run_events[-1].progress == 100
    assert run_events[-1].is_terminal


async def test_failure_publishes_single_terminal_failed_event():
    recorder = RecordingSubscriber()
    port = MockModelPort(responses=irac_responses(rule="not json"))
    pipeline = build_pipeline(port)

    await pipeline.run(make_input(), subscribers=[recorder])

    terminal = [e for e in recorder.events if e.is_terminal]
    assert len(terminal) == 1
    assert terminal[0].kind == AnalysisEventKind.FAILED
    assert terminal[0].payload["stage_name"] == "rule"
    assert terminal[0].payload["error_kind"] == "parse_failure"

    assert not any(
        e.kind == AnalysisEventKind.COMPLETED and e.scope == AnalysisEventScope.RUN
        for e in recorder.events
    )


async def test_per_call_subscribers_do_not_see_other_runs():
    shared_bus = ProgressEventBus()
    pipeline = build_pipeline(MockModelPort(responses=irac_responses()), bus=shared_bus)

    first = RecordingSubscriber("first")
    second = RecordingSubscriber("second")

    await pipeline.run(make_input(), run_id="run-a", subscribers=[first])
    await pipeline.run(make_input(), run_id="run-b", subscribers=[second])

    assert {e.run_id for e in first.events} == {"run-a"}
    assert {e.run_id for e in second.events} == {"run-b"}
    assert len(shared_bus) == 0


# ----------------------------------------------------------------------
# Cross-validation
# ----------------------------------------------------------------------

async def test_no_issues_yields_advisory_warning_not_failure():
    port = MockModelPort(
        responses=irac_responses(issue=issue_output(with_issues=False))
    )
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input())

    assert isinstance(result, SequentialResult)
    assert len(result.advisory_signals) == 1
    assert "No legal issues" in result.advisory_signals[0]


async def test_high_confidence_with_high_severity_is_flagged(caplog):
    port = MockModelPort(
        responses=irac_responses(
            issue=issue_output(severity="high"),
            conclusion=conclusion_output(confidence=0.95),
        )
    )
    pipeline = build_pipeline(port)

    with caplog.at_level("WARNING", logger="analyzer.app.irac.pipeline"):
        result = await pipeline.run(make_input())

    assert isinstance(result, SequentialResult)
    assert any("high confidence" in signal.lower() for signal in result.advisory_signals)
    assert any("Plausibility check" in record.getMessage() for record in caplog.records)


async def test_inconsistent_run_ids_are_detected():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input(), run_id="run-1")
    outputs = {output.stage_name: output for output in result.stage_outputs()}
    outputs["rule"] = outputs["rule"].model_copy(update={"run_id": "run-2"})

    assert find_inconsistency("run-1", outputs) is not None
    assert find_inconsistency("run-1", {"issue": outputs["issue"]}).startswith("Missing")


def test_rule_output_fixture_is_valid():
    assert RuleStageOutput.model_validate(rule_output()).rules


def test_non_positive_stage_timeout_is_rejected():
    with pytest.raises(ValueError):
        SequentialAnalysisPipeline(StageExecutor(MockModelPort()), stage_timeout_seconds=0)


# ----------------------------------------------------------------------
# Caller context
# ----------------------------------------------------------------------

async def test_mixed_key_types_in_context_are_rendered():
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(make_input(context={"meta": {1: "a", "b": 2}}))

    assert isinstance(result, SequentialResult)
    assert '"b": 2' in port.calls_for("issue")[0].text


async def test_unrenderable_context_fails_first_stage_as_invalid_input():
    recorder = RecordingSubscriber()
    port = MockModelPort(responses=irac_responses())
    pipeline = build_pipeline(port)

    result = await pipeline.run(
        make_input(context={"meta": {("a", "b"): 1}}),
        subscribers=[recorder],
    )

    assert isinstance(result, PipelineError)
    assert result.stage_name == "issue"
    assert result.kind == StageErrorKind.INVALID_INPUT
    assert port.calls == []

    terminal = [e for e in recorder.events if e.is_terminal]
    assert len(terminal) == 1
    assert terminal[0].kind == AnalysisEventKind.FAILED


async def test_stage_payloads_are_read_only():
    pipeline = build_pipeline(MockModelPort(responses=irac_responses()))

    result = await pipeline.run(make_input())

    with pytest.raises(ValidationError):
        result.issues.output.issues = []
    with pytest.raises(ValidationError):
        result.issues.output.issues[0].severity = "low"
