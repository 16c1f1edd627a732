from __future__ import annotations

import pytest

from analyzer.app.irac import ClauseAnalyzer
from analyzer.app.schemas.irac import ClauseAnalysis
from analyzer.app.schemas.stage import StageError, StageErrorKind
from analyzer.app.stage_executor import StageExecutor
from analyzer.tests.support.mock_model_port import MockModelPort

pytestmark = pytest.mark.anyio


async def test_clause_analysis_returns_risk_assessment():
    port = MockModelPort(
        responses={
            "clause": {
                "risk_level": "high",
                "issues": ["Unlimited liability"],
                "recommendations": ["Cap liability at the contract value"],
            }
        }
    )
    analyzer = ClauseAnalyzer(StageExecutor(port))

    result = await analyzer.analyze(
        "The supplier is liable for all damages of any kind.",
        "liability",
        "Software license agreement",
    )

    assert isinstance(result, ClauseAnalysis)
    assert result.risk_level == "high"

    prompt = port.calls[0]
    assert "CLAUSE TYPE: liability" in prompt.text
    assert "Software license agreement" in prompt.text
    assert prompt.input_text.startswith("The supplier is liable")


async def test_clause_schema_violation_is_returned_as_stage_error():
    port = MockModelPort(responses={"clause": {"risk_level": "extreme"}})
    analyzer = ClauseAnalyzer(StageExecutor(port))

    result = await analyzer.analyze("Any clause.", "termination")

    assert isinstance(result, StageError)
    assert result.kind == StageErrorKind.SCHEMA_VIOLATION


async def test_empty_clause_is_invalid_input():
    port = MockModelPort(responses={"clause": {"risk_level": "low"}})
    analyzer = ClauseAnalyzer(StageExecutor(port))

    result = await analyzer.analyze("", "termination")

    assert isinstance(result, StageError)
    assert result.kind == StageErrorKind.INVALID_INPUT
    assert port.calls == []


def test_non_positive_timeout_is_rejected():
    with pytest.raises(ValueError):
        ClauseAnalyzer(StageExecutor(MockModelPort()), timeout_seconds=0)
