"""
Analysis input schema.

An AnalysisInput is created once per analysis request and is never
mutated. Concurrent checks each receive an independent deep copy.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnalysisInput(BaseModel):
    """
    Immutable input shared by every stage or check of one run.

    NOTE:
    Emptiness of `text` is NOT rejected here. The stage executor owns
    that check so that it surfaces as a typed invalid_input error
    rather than a construction failure.
    """

    text: str = Field(
        ...,
        description="Raw document text to analyze",
    )

    document_type: str = Field(
        "general_contract",
        description="Document-type tag (e.g. employment_contract, privacy_policy)",
    )

    jurisdiction: str = Field(
        "CH",
        description="Jurisdiction tag (e.g. CH, DE, EU)",
    )

    context: Dict[str, Any] = Field(
        default_factory=dict,
        description="Arbitrary caller-supplied key/value context",
    )

    user_id: Optional[str] = Field(
        None,
        description="Owner of the request (forwarded to event sinks only)",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
