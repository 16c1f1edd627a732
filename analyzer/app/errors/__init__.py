from .exceptions import (
    AnalysisFailedError,
    AuthenticationError,
    BusinessRuleError,
    ExternalServiceError,
    InputValidationError,
    RateLimitError,
)
from .classification import (
    ClassifiedError,
    DEFAULT_RULES,
    ErrorClassificationChain,
    ErrorKind,
    ErrorRule,
)

__all__ = [
    "AnalysisFailedError",
    "AuthenticationError",
    "BusinessRuleError",
    "ExternalServiceError",
    "InputValidationError",
    "RateLimitError",
    "ClassifiedError",
    "DEFAULT_RULES",
    "ErrorClassificationChain",
    "ErrorKind",
    "ErrorRule",
]
