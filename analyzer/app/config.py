"""
Runtime configuration for the legal analysis service.

This module centralizes environment-driven configuration: which model
provider backs the Model Invocation Port, the deadlines applied to each
stage and check, and the weights used when aggregating compliance checks.

Configuration is read-only at runtime. It is loaded once at startup and
handed explicitly to the services that need it.
"""

from __future__ import annotations

import json
import os
from typing import Dict

from pydantic import BaseModel, Field, ValidationInfo, field_validator


DEFAULT_CHECK_WEIGHTS: Dict[str, float] = {
    "data_minimization": 0.25,
    "lawful_basis": 0.35,
    "consent": 0.25,
    "data_subject_rights": 0.15,
}


class AnalyzerConfig(BaseModel):
    """
    Runtime configuration for the legal analysis service.
    """

    # ------------------------------------------------------------------
    # Model provider
    # ------------------------------------------------------------------

    MODEL_PROVIDER: str = Field(
        "disabled",
        description="Model Invocation Port provider identifier",
    )

    AZURE_OPENAI_ENDPOINT: str = Field(
        "",
        description="Azure OpenAI endpoint URL",
    )

    AZURE_OPENAI_DEPLOYMENT: str = Field(
        "",
        description="Azure OpenAI deployment name",
    )

    AZURE_OPENAI_API_VERSION: str = Field(
        "",
        validate_default=True,
        description="Azure OpenAI API version",
    )

    MODEL_MAX_RETRIES: int = Field(
        2,
        ge=0,
        description=(
            "Retries performed by the provider SDK client. "
            "The pipeline itself never retries."
        ),
    )

    # ------------------------------------------------------------------
    # Deadlines
    # ------------------------------------------------------------------

    STAGE_TIMEOUT_SECONDS: float = Field(
        60.0,
        description="Deadline applied to each sequential stage's model call",
    )

    CHECK_TIMEOUT_SECONDS: float = Field(
        60.0,
        description="Deadline applied to each parallel compliance check",
    )

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    CHECK_WEIGHTS: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CHECK_WEIGHTS),
        description="Per-check weight used by the overall score",
    )

    DEFAULT_CHECK_WEIGHT: float = Field(
        0.1,
        description="Weight applied to checks absent from CHECK_WEIGHTS",
    )

    MAX_RECOMMENDATIONS: int = Field(
        10,
        ge=1,
        description="Maximum number of prioritized recommendations in a report",
    )

    # ------------------------------------------------------------------
    # Safety and resource limits
    # ------------------------------------------------------------------

    MAX_DOCUMENT_CHARS: int = Field(
        500_000,
        ge=1,
        description="Upper bound on submitted document text size",
    )

    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("MODEL_PROVIDER")
    @classmethod
    def validate_model_provider(cls, v: str) -> str:
        allowed = {"disabled", "azure_openai"}
        if v not in allowed:
            raise ValueError(
                f"Unsupported MODEL_PROVIDER '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return v

    @field_validator("AZURE_OPENAI_API_VERSION")
    @classmethod
    def azure_settings_required(
        cls, v: str, info: ValidationInfo
    ) -> str:
        if info.data.get("MODEL_PROVIDER") != "azure_openai":
            return v

        missing = [
            name
            for name, value in (
                ("AZURE_OPENAI_ENDPOINT", info.data.get("AZURE_OPENAI_ENDPOINT")),
                ("AZURE_OPENAI_DEPLOYMENT", info.data.get("AZURE_OPENAI_DEPLOYMENT")),
                ("AZURE_OPENAI_API_VERSION", v),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                "MODEL_PROVIDER is 'azure_openai' but the following "
                f"settings are not configured: {missing}"
            )
        return v

    @field_validator("STAGE_TIMEOUT_SECONDS", "CHECK_TIMEOUT_SECONDS")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be greater than zero seconds.")
        return v

    @field_validator("CHECK_WEIGHTS")
    @classmethod
    def weights_within_unit_interval(
        cls, v: Dict[str, float]
    ) -> Dict[str, float]:
        for name, weight in v.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(
                    f"Weight for check '{name}' must be within [0, 1], "
                    f"got {weight}"
                )
        return v

    @field_validator("DEFAULT_CHECK_WEIGHT")
    @classmethod
    def default_weight_within_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(
                f"DEFAULT_CHECK_WEIGHT must be within [0, 1], got {v}"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if level not in allowed:
            raise ValueError(
                f"Unsupported LOG_LEVEL '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return level

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "AnalyzerConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        CHECK_WEIGHTS is read as a JSON object and merged over the
        default registry weights.
        """

        weights = dict(DEFAULT_CHECK_WEIGHTS)
        weights_env = os.getenv("ANALYZER_CHECK_WEIGHTS")
        if weights_env:
            overrides = json.loads(weights_env)
            if not isinstance(overrides, dict):
                raise ValueError(
                    "ANALYZER_CHECK_WEIGHTS must be a JSON object mapping "
                    "check names to weights."
                )
            weights.update(
                {str(name): float(weight) for name, weight in overrides.items()}
            )

        return cls(
            MODEL_PROVIDER=os.getenv(
                "ANALYZER_MODEL_PROVIDER", "disabled"
            ),
            AZURE_OPENAI_ENDPOINT=os.getenv(
                "AZURE_OPENAI_ENDPOINT", ""
            ),
            AZURE_OPENAI_DEPLOYMENT=os.getenv(
                "AZURE_OPENAI_DEPLOYMENT", ""
            ),
            AZURE_OPENAI_API_VERSION=os.getenv(
                "AZURE_OPENAI_API_VERSION", ""
            ),
            MODEL_MAX_RETRIES=int(
                os.getenv("ANALYZER_MODEL_MAX_RETRIES", "2")
            ),
            STAGE_TIMEOUT_SECONDS=float(
                os.getenv("ANALYZER_STAGE_TIMEOUT_SECONDS", "60")
            ),
            CHECK_TIMEOUT_SECONDS=float(
                os.getenv("ANALYZER_CHECK_TIMEOUT_SECONDS", "60")
            ),
            CHECK_WEIGHTS=weights,
            DEFAULT_CHECK_WEIGHT=float(
                os.getenv("ANALYZER_DEFAULT_CHECK_WEIGHT", "0.1")
            ),
            MAX_RECOMMENDATIONS=int(
                os.getenv("ANALYZER_MAX_RECOMMENDATIONS", "10")
            ),
            MAX_DOCUMENT_CHARS=int(
                os.getenv("ANALYZER_MAX_DOCUMENT_CHARS", "500000")
            ),
            LOG_LEVEL=os.getenv(
                "ANALYZER_LOG_LEVEL", "INFO"
            ),
        )

    model_config = {
        "frozen": True,
    }
