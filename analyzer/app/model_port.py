"""
Model Invocation Port.

The only boundary between the orchestration pipeline and a language
model. The pipeline treats the port as opaque: it may be slow, and it
may raise. Deadlines are enforced by the caller; retries, if any, are
the port's own concern.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from azure.identity import (
    DefaultAzureCredential,
    get_bearer_token_provider,
)

from openai import AsyncAzureOpenAI

from analyzer.app.errors.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_TEXT = (
    "You are a legal analysis assistant. "
    "Respond with a single JSON object that matches the requested shape. "
    "Do not add commentary outside the JSON object."
)


class RenderedPrompt(BaseModel):
    """
    Fully rendered request for one model call.

    `text` carries the task instructions (and any prior stage outputs);
    `input_text` carries the material under analysis.
    """

    stage_name: str = Field(..., description="Stage or check issuing the call")

    template_id: str = Field(..., description="Identifier of the source template")

    text: str = Field(..., description="Rendered instructions")

    input_text: str = Field(..., description="Material under analysis")

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


# ----------------------------------------------------------------------
# Port Interface
# ----------------------------------------------------------------------

class ModelInvocationPort(Protocol):
    async def invoke(
        self,
        *,
        prompt: RenderedPrompt,
        timeout_seconds: float,
    ) -> str:
        """
        Return the raw text produced by the model for `prompt`.

        May raise any exception; callers classify failures.
        """
        ...


# ----------------------------------------------------------------------
# Azure OpenAI Port (Entra ID)
# ----------------------------------------------------------------------

class AzureOpenAIModelPort:
    """
    Azure OpenAI implementation of ModelInvocationPort.

    Message layout:
      1. System layer (static across all stages)
      2. Task layer (rendered stage instructions)
      3. Material layer (document or clause under analysis)
    """

    def __init__(
        self,
        *,
        endpoint: str,
        deployment: str,
        api_version: str,
        max_retries: int = 2,
        system_text: str = DEFAULT_SYSTEM_TEXT,
    ) -> None:
        self._deployment = deployment
        self._system_text = system_text

        credential = DefaultAzureCredential()
        token_provider = get_bearer_token_provider(
            credential,
            "https://cognitiveservices.azure.com/.default",
        )

        self._client = AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            azure_ad_token_provider=token_provider,
            api_version=api_version,
            max_retries=max_retries,
        )

    @property
    def deployment(self) -> str:
        return self._deployment

    async def invoke(
        self,
        *,
        prompt: RenderedPrompt,
        timeout_seconds: float,
    ) -> str:
        messages = [
            {"role": "system", "content": self._system_text},
            {"role": "user", "content": prompt.text},
            {
                "role": "user",
                "content": (
                    "--- BEGIN MATERIAL UNDER ANALYSIS ---\n"
                    f"{prompt.input_text}\n"
                    "--- END MATERIAL UNDER ANALYSIS ---"
                ),
            },
        ]

        response = await self._client.chat.completions.create(
            model=self._deployment,
            messages=messages,
            response_format={"type": "json_object"},
            timeout=timeout_seconds,
        )

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                "Model call for %s used %s prompt / %s completion tokens",
                prompt.stage_name,
                getattr(usage, "prompt_tokens", None),
                getattr(usage, "completion_tokens", None),
            )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExternalServiceError(
                f"Model returned an empty completion for {prompt.stage_name}",
                service="azure_openai",
            )

        return content


# ----------------------------------------------------------------------
# Disabled Port
# ----------------------------------------------------------------------

class DisabledModelPort:
    """
    Port used when no model provider is configured.

    Every invocation fails, so each stage or check surfaces a typed
    model_invocation_failure instead of the service refusing to start.
    """

    async def invoke(
        self,
        *,
        prompt: RenderedPrompt,
        timeout_seconds: float,
    ) -> str:
        raise ExternalServiceError(
            "No model provider is configured",
            service="model",
        )
