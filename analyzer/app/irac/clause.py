from __future__ import annotations

import logging
from typing import Iterable, Optional, Union
from uuid import uuid4

from analyzer.app.events import EventSubscriber, ProgressEventBus
from analyzer.app.irac.prompts import render_clause_prompt
from analyzer.app.logging_config import bind_run_id
from analyzer.app.schemas.irac import ClauseAnalysis
from analyzer.app.schemas.stage import StageError
from analyzer.app.stage_executor import StageExecutor

logger = logging.getLogger(__name__)


class ClauseAnalyzer:
    """
    Single-shot risk assessment of one isolated contract clause.

    Uses the same StageExecutor as the IRAC pipeline, so deadline,
    parse and schema failures surface as a StageError.
    """

    def __init__(
        self,
        executor: StageExecutor,
        *,
        bus: Optional[ProgressEventBus] = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self._executor = executor
        self._bus = bus if bus is not None else ProgressEventBus()
        self._timeout_seconds = timeout_seconds

    async def analyze(
        self,
        clause_text: str,
        clause_type: str,
        contract_context: str = "",
        *,
        jurisdiction: str = "CH",
        run_id: Optional[str] = None,
        user_id: Optional[str] = None,
        subscribers: Optional[Iterable[EventSubscriber]] = None,
    ) -> Union[ClauseAnalysis, StageError]:
        run_id = run_id or uuid4().hex
        bus = self._bus.with_subscribers(subscribers)

        prompt = render_clause_prompt(
            clause_text=clause_text,
            clause_type=clause_type,
            contract_context=contract_context,
            jurisdiction=jurisdiction,
        )

        with bind_run_id(run_id):
            result = await self._executor.run(
                prompt=prompt,
                output_schema=ClauseAnalysis,
                run_id=run_id,
                bus=bus,
                user_id=user_id,
                timeout_seconds=self._timeout_seconds,
            )

            if isinstance(result, StageError):
                return result

            logger.info(
                "Clause analyzed (type=%s, risk_level=%s)",
                clause_type,
                result.output.risk_level,
            )

        return result.output
