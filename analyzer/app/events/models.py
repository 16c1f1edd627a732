from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event Kinds (Finite)
# ----------------------------------------------------------------------
class AnalysisEventKind(str, Enum):
    """
    Lifecycle transitions reported by stage and check executors.

    NOTE:
    The kind set is finite. Stage- and check-level detail travels in the
    payload, never as additional kinds.
    """

    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisEventScope(str, Enum):
    """
    Level of the transition: the whole run, one sequential stage,
    or one parallel check.
    """

    RUN = "run"
    STAGE = "stage"
    CHECK = "check"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class AnalysisEvent(BaseModel):
    """
    An immutable observation of a transition within one analysis run.

    Events are:
    - strictly observational
    - transport-agnostic
    - discarded after delivery (the bus retains nothing)
    """

    event_id: UUID = Field(default_factory=uuid4)
    run_id: str = Field(..., description="Correlation id of the analysis run")
    kind: AnalysisEventKind
    scope: AnalysisEventScope = AnalysisEventScope.RUN
    progress: Optional[int] = Field(
        None,
        ge=0,
        le=100,
        description="Caller-visible progress percentage",
    )
    payload: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = Field(
        None,
        description="Owner of the run, used by persisting subscribers",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def is_terminal(self) -> bool:
        """Whether the event ends its run (stage/check endings do not)."""
        return self.scope == AnalysisEventScope.RUN and self.kind in {
            AnalysisEventKind.COMPLETED,
            AnalysisEventKind.FAILED,
        }

    def to_sse_payload(self) -> str:
        """
        Render the event as one Server-Sent Events frame.
        """
        data = json.dumps(
            self.model_dump(mode="json"),
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return f"event: {self.kind.value}\ndata: {data}\n\n"
