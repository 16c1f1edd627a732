"""
Stage executor.

Runs one named step against the Model Invocation Port:

    render -> invoke (deadline-bounded) -> parse -> validate

and returns either a StageOutput or a StageError. The executor never
raises for invalid input, port failures, deadline expiry, or malformed
output; every outcome is normalized into a typed result.

Each run publishes exactly one `started` event and exactly one
`completed` or `failed` event at the requested scope.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Type, Union

import anyio
from pydantic import BaseModel

from analyzer.app.events import (
    AnalysisEvent,
    AnalysisEventKind,
    AnalysisEventScope,
    ProgressEventBus,
)
from analyzer.app.model_port import ModelInvocationPort, RenderedPrompt
from analyzer.app.schemas.stage import StageError, StageErrorKind, StageOutput
from analyzer.app.structured_output import (
    OutputParseError,
    OutputSchemaError,
    parse_structured_output,
)

logger = logging.getLogger(__name__)


StageResult = Union[StageOutput, StageError]


class StageExecutor:
    """
    Deadline-bounded, never-raising execution of a single stage.

    The executor holds no per-run state and is safe to share between
    concurrent runs.
    """

    def __init__(
        self,
        port: ModelInvocationPort,
        *,
        default_timeout_seconds: float = 60.0,
    ) -> None:
        if default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be positive")

        self._port = port
        self._default_timeout_seconds = default_timeout_seconds

    async def run(
        self,
        *,
        prompt: RenderedPrompt,
        output_schema: Type[BaseModel],
        run_id: str,
        sequence: int = 1,
        consumed_stages: Sequence[str] = (),
        bus: Optional[ProgressEventBus] = None,
        scope: AnalysisEventScope = AnalysisEventScope.STAGE,
        user_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> StageResult:
        stage_name = prompt.stage_name
        deadline = (
            timeout_seconds
            if timeout_seconds is not None
            else self._default_timeout_seconds
        )

        def publish(kind: AnalysisEventKind, **extra: Any) -> None:
            if bus is None:
                return
            payload: Dict[str, Any] = {
                "stage_name": stage_name,
                "sequence": sequence,
                **extra,
            }
            bus.publish(
                AnalysisEvent(
                    run_id=run_id,
                    kind=kind,
                    scope=scope,
                    payload=payload,
                    user_id=user_id,
                )
            )

        def fail(error: StageError) -> StageError:
            logger.warning(
                "Stage %s failed (%s): %s",
                stage_name,
                error.kind.value,
                error.raw_error or error.message,
                extra={
                    "stage_name": stage_name,
                    "error_kind": error.kind.value,
                    "timed_out": error.timed_out,
                },
            )
            publish(
                AnalysisEventKind.FAILED,
                error_kind=error.kind.value,
                message=error.message,
                timed_out=error.timed_out,
            )
            return error

        publish(AnalysisEventKind.STARTED)

        # --------------------------------------------------------------
        # Input guard (no port call)
        # --------------------------------------------------------------
        if not prompt.input_text or not prompt.input_text.strip():
            return fail(
                StageError(
                    stage_name=stage_name,
                    kind=StageErrorKind.INVALID_INPUT,
                    message="Input text is empty",
                )
            )

        # --------------------------------------------------------------
        # Model invocation
        # --------------------------------------------------------------
        try:
            with anyio.fail_after(deadline):
                raw_text = await self._port.invoke(
                    prompt=prompt,
                    timeout_seconds=deadline,
                )

        except TimeoutError as exc:
            return fail(
                StageError(
                    stage_name=stage_name,
                    kind=StageErrorKind.MODEL_INVOCATION_FAILURE,
                    message=f"Model call exceeded the {deadline:g}s deadline",
                    raw_error=str(exc) or type(exc).__name__,
                    timed_out=True,
                )
            )

        except Exception as exc:
            return fail(
                StageError(
                    stage_name=stage_name,
                    kind=StageErrorKind.MODEL_INVOCATION_FAILURE,
                    message="Model invocation failed",
                    raw_error=f"{type(exc).__name__}: {exc}",
                )
            )

        # --------------------------------------------------------------
        # Parse and validate
        # --------------------------------------------------------------
        try:
            output = parse_structured_output(raw_text, output_schema)

        except OutputSchemaError as exc:
            return fail(
                StageError(
                    stage_name=stage_name,
                    kind=StageErrorKind.SCHEMA_VIOLATION,
                    message=f"Model output does not match the {stage_name} shape",
                    raw_error=str(exc),
                    details=exc.locations,
                )
            )

        except OutputParseError as exc:
            return fail(
                StageError(
                    stage_name=stage_name,
                    kind=StageErrorKind.PARSE_FAILURE,
                    message="Model output could not be parsed",
                    raw_error=str(exc),
                )
            )

        result = StageOutput(
            run_id=run_id,
            stage_name=stage_name,
            sequence=sequence,
            consumed_stages=list(consumed_stages),
            output=output,
        )

        logger.debug(
            "Stage %s completed (sequence=%d)",
            stage_name,
            sequence,
        )
        publish(AnalysisEventKind.COMPLETED)

        return result
