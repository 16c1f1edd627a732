"""
FastAPI entrypoint for the legal analysis service.

This module defines the public HTTP interface. It accepts a document
text, invokes the sequential IRAC pipeline or the parallel compliance
engine, and returns a structured result.

Every error raised while serving a request is routed through the
ErrorClassificationChain, which owns the response shape and status code.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Set, Union
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from analyzer.app.compliance import ParallelCheckEngine, build_default_checks
from analyzer.app.config import AnalyzerConfig
from analyzer.app.errors import (
    AnalysisFailedError,
    AuthenticationError,
    BusinessRuleError,
    ErrorClassificationChain,
    ExternalServiceError,
    InputValidationError,
    RateLimitError,
)
from analyzer.app.events import (
    EventStoreSubscriber,
    InMemoryEventStore,
    MemoryQueueSubscriber,
    ProgressEventBus,
)
from analyzer.app.irac import ClauseAnalyzer, SequentialAnalysisPipeline
from analyzer.app.logging_config import configure_logging
from analyzer.app.model_port import (
    AzureOpenAIModelPort,
    DisabledModelPort,
    ModelInvocationPort,
)
from analyzer.app.schemas.analysis_input import AnalysisInput
from analyzer.app.schemas.compliance import AggregateReport
from analyzer.app.schemas.irac import ClauseAnalysis, PipelineError, SequentialResult
from analyzer.app.schemas.stage import StageError
from analyzer.app.stage_executor import StageExecutor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ClauseRequest(BaseModel):
    clause_text: str = Field(..., description="Clause to analyze")
    clause_type: str = Field(..., description="Clause type (e.g. liability, termination)")
    contract_context: str = Field("", description="Surrounding contract context")
    jurisdiction: str = Field("CH", description="Jurisdiction tag")
    user_id: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

class AnalysisServices:
    """
    Explicitly constructed service graph for one application instance.
    """

    def __init__(
        self,
        *,
        config: AnalyzerConfig,
        port: ModelInvocationPort,
    ) -> None:
        self.config = config
        self.event_store = InMemoryEventStore()
        self.bus = ProgressEventBus([EventStoreSubscriber(self.event_store)])

        executor = StageExecutor(
            port,
            default_timeout_seconds=config.STAGE_TIMEOUT_SECONDS,
        )

        self.sequential = SequentialAnalysisPipeline(
            executor,
            bus=self.bus,
            stage_timeout_seconds=config.STAGE_TIMEOUT_SECONDS,
        )
        self.clauses = ClauseAnalyzer(
            executor,
            bus=self.bus,
            timeout_seconds=config.STAGE_TIMEOUT_SECONDS,
        )
        self.compliance = ParallelCheckEngine(
            build_default_checks(
                executor,
                weights=config.CHECK_WEIGHTS,
                default_weight=config.DEFAULT_CHECK_WEIGHT,
            ),
            bus=self.bus,
            check_timeout_seconds=config.CHECK_TIMEOUT_SECONDS,
            default_weight=config.DEFAULT_CHECK_WEIGHT,
            max_recommendations=config.MAX_RECOMMENDATIONS,
        )
        self.classifier = ErrorClassificationChain()

        # Strong references to in-flight streaming analyses
        self.stream_tasks: Set[asyncio.Task] = set()


def build_model_port(config: AnalyzerConfig) -> ModelInvocationPort:
    if config.MODEL_PROVIDER == "azure_openai":
        return AzureOpenAIModelPort(
            endpoint=config.AZURE_OPENAI_ENDPOINT,
            deployment=config.AZURE_OPENAI_DEPLOYMENT,
            api_version=config.AZURE_OPENAI_API_VERSION,
            max_retries=config.MODEL_MAX_RETRIES,
        )

    logger.warning("MODEL_PROVIDER is disabled; analyses will fail fast")
    return DisabledModelPort()


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Legal Analyzer Service",
    description="Sequential IRAC and parallel compliance analysis of legal texts",
    version="0.1.0",
)


@app.on_event("startup")
def startup_event() -> None:
    """
    Application startup hook.

    Configuration is loaded once and treated as immutable for the lifetime
    of the process. The model port and every service are wired here.
    """
    config = AnalyzerConfig.from_env()
    configure_logging(config.LOG_LEVEL)

    app.state.services = AnalysisServices(
        config=config,
        port=build_model_port(config),
    )


def _services() -> AnalysisServices:
    return app.state.services


def _check_document_size(text: str) -> None:
    limit = _services().config.MAX_DOCUMENT_CHARS
    if len(text) > limit:
        raise InputValidationError(
            f"Document exceeds maximum allowed size of {limit} characters",
            details={"length": len(text), "limit": limit},
        )


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

async def classify_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Route any unhandled error through the classification chain.
    """
    services: Optional[AnalysisServices] = getattr(app.state, "services", None)
    classifier = services.classifier if services else ErrorClassificationChain()

    classified = classifier.classify(
        exc,
        {"path": request.url.path, "method": request.method},
    )

    headers = {}
    if classified.retry_after is not None:
        headers["Retry-After"] = str(classified.retry_after)

    return JSONResponse(
        status_code=classified.status_code,
        content=classified.to_response(),
        headers=headers,
    )


for _exc_type in (
    RequestValidationError,
    InputValidationError,
    AuthenticationError,
    RateLimitError,
    BusinessRuleError,
    ExternalServiceError,
    AnalysisFailedError,
    Exception,
):
    app.add_exception_handler(_exc_type, classify_exception)


# ---------------------------------------------------------------------------
# API Routes
# ---------------------------------------------------------------------------

@app.post(
    "/analysis/irac",
    response_model=None,
    summary="Sequential IRAC analysis of a legal document",
)
async def analyze_irac(analysis_input: AnalysisInput) -> JSONResponse:
    """Return the SequentialResult with each stage payload in its own shape."""
    _check_document_size(analysis_input.text)

    result = await _services().sequential.run(analysis_input)

    if isinstance(result, PipelineError):
        raise AnalysisFailedError(result)
    return JSONResponse(content=result.model_dump(mode="json"))


@app.post(
    "/analysis/compliance",
    response_model=AggregateReport,
    summary="Parallel compliance check of a legal document",
)
async def analyze_compliance(analysis_input: AnalysisInput) -> AggregateReport:
    _check_document_size(analysis_input.text)

    return await _services().compliance.run(analysis_input)


@app.post(
    "/analysis/clause",
    response_model=ClauseAnalysis,
    summary="Risk assessment of a single contract clause",
)
async def analyze_clause(request: ClauseRequest) -> ClauseAnalysis:
    _check_document_size(request.clause_text)

    run_id = uuid4().hex
    result = await _services().clauses.analyze(
        request.clause_text,
        request.clause_type,
        request.contract_context,
        jurisdiction=request.jurisdiction,
        run_id=run_id,
        user_id=request.user_id,
    )

    if isinstance(result, StageError):
        raise AnalysisFailedError(
            PipelineError(
                run_id=run_id,
                stage_name=result.stage_name,
                kind=result.kind,
                message=result.message,
                timed_out=result.timed_out,
            )
        )
    return result


# ---------------------------------------------------------------------------
# Streaming IRAC analysis (SSE)
# ---------------------------------------------------------------------------

def _result_frame(result: Union[SequentialResult, PipelineError, None]) -> str:
    if result is None:
        return ""

    event = "error" if isinstance(result, PipelineError) else "result"
    data = json.dumps(
        result.model_dump(mode="json"),
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return f"event: {event}\ndata: {data}\n\n"


@app.post(
    "/analysis/irac/stream",
    summary="Sequential IRAC analysis (streaming progress)",
)
async def analyze_irac_stream(analysis_input: AnalysisInput):
    """
    Run an IRAC analysis while streaming progress events.

    - Client disconnects do NOT cancel the analysis
    - Events do NOT influence execution
    - The final frame carries the SequentialResult or the PipelineError
    """
    _check_document_size(analysis_input.text)

    services = _services()
    subscriber = MemoryQueueSubscriber("sse")

    async def run_analysis() -> Union[SequentialResult, PipelineError, None]:
        try:
            return await services.sequential.run(
                analysis_input,
                subscribers=[subscriber],
            )
        except Exception:
            logger.exception("Streaming analysis crashed")
            return None
        finally:
            subscriber.close()

    task = asyncio.create_task(run_analysis())
    services.stream_tasks.add(task)
    task.add_done_callback(services.stream_tasks.discard)

    # The analysis runs in its own task; a client disconnect only
    # cancels this generator.
    async def event_stream():
        async for event in subscriber.stream():
            yield event.to_sse_payload()
        frame = _result_frame(await task)
        if frame:
            yield frame

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------

@app.get(
    "/health",
    summary="Service health check",
)
def health_check() -> JSONResponse:
    """Simple health check endpoint."""
    content: dict[str, Any] = {
        "status": "ok",
        "service": "analyzer",
    }
    return JSONResponse(content=content)
