"""
Error classification chain.

Classifies any raised error into exactly one taxonomy bucket and
produces a caller-facing response shape.

Rules are evaluated top-to-bottom; the first predicate that matches
owns the error and no further predicates are evaluated. The final
rule is a catch-all, so classification is total.

Canonical order (most specific first):
    validation -> authentication -> rate_limit -> business_rule
    -> external_dependency -> system
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Sequence

import openai
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from analyzer.app.errors.exceptions import (
    AnalysisFailedError,
    AuthenticationError,
    BusinessRuleError,
    ExternalServiceError,
    InputValidationError,
    RateLimitError,
)
from analyzer.app.schemas.stage import StageErrorKind

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    BUSINESS_RULE = "business_rule"
    EXTERNAL_DEPENDENCY = "external_dependency"
    SYSTEM = "system"


class ClassifiedError(BaseModel):
    """
    Outcome of classifying one unhandled error.

    Created once per error at the boundary; never re-classified.
    """

    kind: ErrorKind
    title: str
    message: str = Field(..., description="Caller-facing message")
    status_code: int
    error: BaseException = Field(..., exclude=True)
    retry_after: Optional[int] = None
    details: Optional[Any] = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
    )

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.title,
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.retry_after is not None:
            body["retry_after"] = self.retry_after
        if self.details is not None:
            body["details"] = self.details
        return body


Predicate = Callable[[BaseException], bool]
Handler = Callable[[BaseException, Mapping[str, Any]], ClassifiedError]


class ErrorRule(NamedTuple):
    kind: ErrorKind
    predicate: Predicate
    handler: Handler


# ----------------------------------------------------------------------
# Predicates
# ----------------------------------------------------------------------

def _mentions(error: BaseException, *keywords: str) -> bool:
    # Terminal pipeline failures are classified by kind, never by wording.
    if isinstance(error, AnalysisFailedError):
        return False
    message = str(error).lower()
    return any(keyword in message for keyword in keywords)


def _failed_with(error: BaseException, *kinds: StageErrorKind) -> bool:
    return isinstance(error, AnalysisFailedError) and error.error.kind in kinds


def is_validation_error(error: BaseException) -> bool:
    if isinstance(error, (InputValidationError, PydanticValidationError)):
        return True
    if type(error).__name__ in {"ValidationError", "RequestValidationError"}:
        return True
    if _failed_with(error, StageErrorKind.INVALID_INPUT):
        return True
    return _mentions(error, "validation")


def is_authentication_error(error: BaseException) -> bool:
    if isinstance(error, AuthenticationError):
        return True
    return _mentions(error, "unauthorized", "authentication")


def is_rate_limit_error(error: BaseException) -> bool:
    if isinstance(error, (RateLimitError, openai.RateLimitError)):
        return True
    return _mentions(error, "rate limit", "too many requests")


def is_business_rule_error(error: BaseException) -> bool:
    if isinstance(error, BusinessRuleError):
        return True
    return _mentions(error, "business rule", "quota exceeded")


def is_external_dependency_error(error: BaseException) -> bool:
    if isinstance(error, (ExternalServiceError, openai.APIError, TimeoutError)):
        return True
    if _failed_with(
        error,
        StageErrorKind.MODEL_INVOCATION_FAILURE,
        StageErrorKind.PARSE_FAILURE,
        StageErrorKind.SCHEMA_VIOLATION,
    ):
        return True
    return _mentions(error, "openai", "external service")


def always(error: BaseException) -> bool:
    return True


# ----------------------------------------------------------------------
# Handlers (each emits exactly one log record and never re-raises)
# ----------------------------------------------------------------------

def handle_validation_error(
    error: BaseException,
    context: Mapping[str, Any],
) -> ClassifiedError:
    logger.warning(
        "Validation error: %s",
        error,
        extra={"error_kind": ErrorKind.VALIDATION.value, **context},
    )

    details: Optional[Any] = None
    if isinstance(error, PydanticValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in error.errors()
        ]
    elif isinstance(error, InputValidationError):
        details = error.details
    elif isinstance(error, AnalysisFailedError):
        details = {"stage": error.error.stage_name}

    return ClassifiedError(
        kind=ErrorKind.VALIDATION,
        title="Validation Error",
        message="The submitted data is invalid.",
        status_code=400,
        error=error,
        details=details,
    )


def handle_authentication_error(
    error: BaseException,
    context: Mapping[str, Any],
) -> ClassifiedError:
    logger.warning(
        "Authentication error: %s",
        error,
        extra={"error_kind": ErrorKind.AUTHENTICATION.value, **context},
    )
    return ClassifiedError(
        kind=ErrorKind.AUTHENTICATION,
        title="Authentication Required",
        message="You must sign in to access this resource.",
        status_code=401,
        error=error,
    )


def handle_rate_limit_error(
    error: BaseException,
    context: Mapping[str, Any],
) -> ClassifiedError:
    retry_after = getattr(error, "retry_after", None)
    if not isinstance(retry_after, int):
        retry_after = 900

    logger.warning(
        "Rate limit exceeded: %s",
        error,
        extra={"error_kind": ErrorKind.RATE_LIMIT.value, **context},
    )
    return ClassifiedError(
        kind=ErrorKind.RATE_LIMIT,
        title="Too Many Requests",
        message="Too many requests. Please try again later.",
        status_code=429,
        error=error,
        retry_after=retry_after,
    )


def handle_business_rule_error(
    error: BaseException,
    context: Mapping[str, Any],
) -> ClassifiedError:
    logger.info(
        "Business rule violation: %s",
        error,
        extra={"error_kind": ErrorKind.BUSINESS_RULE.value, **context},
    )
    # Business rule messages are authored for callers.
    return ClassifiedError(
        kind=ErrorKind.BUSINESS_RULE,
        title="Business Rule Violation",
        message=str(error),
        status_code=422,
        error=error,
    )


def _identify_service(error: BaseException) -> str:
    service = getattr(error, "service", None)
    if isinstance(service, str):
        return service
    if isinstance(error, (openai.APIError, AnalysisFailedError)):
        return "model"
    if "openai" in str(error).lower():
        return "OpenAI"
    return "unknown"


def handle_external_dependency_error(
    error: BaseException,
    context: Mapping[str, Any],
) -> ClassifiedError:
    logger.error(
        "External dependency error (%s): %s",
        _identify_service(error),
        error,
        extra={
            "error_kind": ErrorKind.EXTERNAL_DEPENDENCY.value,
            "service": _identify_service(error),
            **context,
        },
    )

    details: Optional[Any] = None
    if isinstance(error, AnalysisFailedError):
        details = {"stage": error.error.stage_name}

    return ClassifiedError(
        kind=ErrorKind.EXTERNAL_DEPENDENCY,
        title="Service Unavailable",
        message=(
            "An external service is currently unavailable. "
            "Please try again later."
        ),
        status_code=503,
        error=error,
        details=details,
    )


def handle_system_error(
    error: BaseException,
    context: Mapping[str, Any],
) -> ClassifiedError:
    logger.error(
        "System error: %s",
        error,
        exc_info=error,
        extra={"error_kind": ErrorKind.SYSTEM.value, **context},
    )
    return ClassifiedError(
        kind=ErrorKind.SYSTEM,
        title="Internal Server Error",
        message="An unexpected error occurred.",
        status_code=500,
        error=error,
    )


DEFAULT_RULES: Sequence[ErrorRule] = (
    ErrorRule(ErrorKind.VALIDATION, is_validation_error, handle_validation_error),
    ErrorRule(ErrorKind.AUTHENTICATION, is_authentication_error, handle_authentication_error),
    ErrorRule(ErrorKind.RATE_LIMIT, is_rate_limit_error, handle_rate_limit_error),
    ErrorRule(ErrorKind.BUSINESS_RULE, is_business_rule_error, handle_business_rule_error),
    ErrorRule(ErrorKind.EXTERNAL_DEPENDENCY, is_external_dependency_error, handle_external_dependency_error),
    ErrorRule(ErrorKind.SYSTEM, always, handle_system_error),
)


class ErrorClassificationChain:
    """
    Static, ordered first-match classifier.

    The chain is an explicitly constructed service; callers hold a
    reference to it rather than reaching for a process-wide instance.
    """

    def __init__(self, rules: Sequence[ErrorRule] = DEFAULT_RULES) -> None:
        rules = tuple(rules)

        if not rules or rules[-1].kind != ErrorKind.SYSTEM:
            raise ValueError(
                "Error classification chain must end with the catch-all "
                "system rule."
            )

        self._rules = rules

    @property
    def rules(self) -> Sequence[ErrorRule]:
        return self._rules

    def classify(
        self,
        error: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ClassifiedError:
        context = dict(context or {})

        for rule in self._rules:
            if rule.predicate(error):
                return rule.handler(error, context)

        # Unreachable while the final rule matches everything.
        return handle_system_error(error, context)
