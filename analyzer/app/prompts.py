"""
Prompt templates.

Templates are immutable and identified by `template_id`. Rendering
substitutes named fields and appends the JSON shape the model must
return, derived from the stage's output schema.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from analyzer.app.model_port import RenderedPrompt


class PromptTemplate(BaseModel):
    """
    Immutable, versioned instruction template for one stage or check.

    `text` uses str.format placeholders. Literal braces are not allowed.
    """

    template_id: str = Field(..., description="Stable template identifier")

    stage_name: str = Field(..., description="Stage or check this template serves")

    text: str = Field(..., description="Instruction template")

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def render(
        self,
        *,
        input_text: str,
        output_schema: Optional[Type[BaseModel]] = None,
        **values: Any,
    ) -> RenderedPrompt:
        text = self.text.format(**values)

        if output_schema is not None:
            text = f"{text}\n\n{describe_output_schema(output_schema)}"

        return RenderedPrompt(
            stage_name=self.stage_name,
            template_id=self.template_id,
            text=text,
            input_text=input_text,
        )


def describe_output_schema(output_schema: Type[BaseModel]) -> str:
    schema = json.dumps(
        output_schema.model_json_schema(),
        ensure_ascii=False,
        sort_keys=True,
    )
    return (
        "Return ONLY a JSON object conforming to this JSON Schema:\n"
        f"{schema}"
    )


def render_json_section(title: str, payload: Mapping[str, Any]) -> str:
    """Render a labelled, canonical JSON block for inclusion in a prompt."""
    body = json.dumps(
        payload,
        ensure_ascii=False,
        sort_keys=True,
        indent=2,
        default=str,
    )
    return f"--- {title} ---\n{body}"
