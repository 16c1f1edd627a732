"""
Stage execution schemas.

Defines the typed outcome of running one named step against the
Model Invocation Port: either a validated StageOutput or a classified
StageError. Stage executors return one of the two and never raise.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny


class StageErrorKind(str, Enum):
    """
    Pipeline failure taxonomy.

    - invalid_input, parse_failure, schema_violation and
      model_invocation_failure abort the owning stage/check only
    - aggregation_inconsistency is raised by final assembly checks
    - subscriber_failure is absorbed by the event bus and never
      appears in a returned error
    """

    INVALID_INPUT = "invalid_input"
    MODEL_INVOCATION_FAILURE = "model_invocation_failure"
    PARSE_FAILURE = "parse_failure"
    SCHEMA_VIOLATION = "schema_violation"
    AGGREGATION_INCONSISTENCY = "aggregation_inconsistency"
    SUBSCRIBER_FAILURE = "subscriber_failure"
    UNCLASSIFIED = "unclassified"


class StageOutput(BaseModel):
    """
    Validated record produced by one stage.

    Owned by the run that created it; later stages consume it read-only.
    """

    run_id: str = Field(..., description="Run that produced this output")

    stage_name: str = Field(..., description="Name of the producing stage")

    sequence: int = Field(
        ...,
        ge=1,
        description="Monotonically increasing position within the run",
    )

    consumed_stages: List[str] = Field(
        default_factory=list,
        description="Names of prior stage outputs included in this stage's input",
    )

    output: SerializeAsAny[BaseModel] = Field(
        ...,
        description="Schema-validated stage payload",
    )

    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class StageError(BaseModel):
    """
    Typed failure of one stage.

    `message` is caller-safe; `raw_error` is diagnostic only.
    """

    stage_name: str
    kind: StageErrorKind
    message: str
    raw_error: Optional[str] = None
    timed_out: bool = False
    details: List[str] = Field(
        default_factory=list,
        description="Schema error locations (schema_violation only)",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
