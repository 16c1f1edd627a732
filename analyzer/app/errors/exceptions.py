"""
Domain exceptions raised at the service boundary.

Stage and check execution never raise these; they return typed
errors instead. These exceptions exist for the outer surfaces
(HTTP, callers) and are mapped to responses by the classification chain.
"""

from __future__ import annotations

from typing import Any, Optional

from analyzer.app.schemas.irac import PipelineError


class InputValidationError(Exception):
    """Caller-supplied data is invalid."""

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.details = details


class AuthenticationError(Exception):
    def __init__(self, message: str = "Unauthorized access") -> None:
        super().__init__(message)


class RateLimitError(Exception):
    def __init__(
        self,
        message: str = "Too many requests",
        retry_after: int = 900,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class BusinessRuleError(Exception):
    """A business rule (quota, plan limit, document policy) was violated."""


class ExternalServiceError(Exception):
    def __init__(self, message: str, service: str = "unknown") -> None:
        super().__init__(message)
        self.service = service


class AnalysisFailedError(Exception):
    """
    Raised by callers that need an exception for a terminal
    sequential PipelineError.
    """

    def __init__(self, error: PipelineError) -> None:
        super().__init__(
            f"Analysis failed at stage '{error.stage_name}': {error.message}"
        )
        self.error = error
