from __future__ import annotations

import json
import logging
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from creative_studio.config import settings
from creative_studio.generation.errors import ProviderError
from creative_studio.generation.plugins.base import GenerationPlugin
from creative_studio.generation.types import Immediate, Outcome
from creative_studio.llm.client import LLMClient, LLMClientConfigError, LLMGenerationParams

logger = logging.getLogger(__name__)


_LENGTH_GUIDANCE = {
    "short": "a headline under 8 words and a body under 25 words",
    "medium": "a headline under 10 words and a body of 30 to 60 words",
    "long": "a headline under 12 words and a body of 80 to 150 words",
}


class CopyGenerationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    brief: str = Field(..., min_length=1)
    tone: Optional[str] = None
    length: Literal["short", "medium", "long"] = "medium"
    target_audience: Optional[str] = None
    num_variations: int = Field(3, ge=1, le=5)
    client_id: Optional[str] = None


class CopyVariation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    headline: str
    body: str
    call_to_action: str = ""


class CopyGenerationResult(BaseModel):
    variations: list[CopyVariation] = Field(default_factory=list)


def _response_format(num_variations: int) -> dict:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "AdCopyVariations",
            "strict": True,
            "schema": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "variations": {
                        "type": "array",
                        "minItems": num_variations,
                        "maxItems": num_variations,
                        "items": {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "headline": {"type": "string"},
                                "body": {"type": "string"},
                                "call_to_action": {"type": "string"},
                            },
                            "required": ["headline", "body", "call_to_action"],
                        },
                    }
                },
                "required": ["variations"],
            },
        },
    }


class CopyGenerationPlugin(GenerationPlugin[CopyGenerationRequest]):
    plugin_id = "copy-generation"
    name = "Ad Copy"
    description = "Draft headline, body and call-to-action variations from a campaign brief."
    RequestModel = CopyGenerationRequest

    def __init__(self, llm: Optional[LLMClient] = None, *, model: Optional[str] = None) -> None:
        self._llm = llm
        self.model = model or settings.COPY_GENERATION_MODEL

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    def build_prompt(self, request: CopyGenerationRequest) -> str:
        lines = [
            "Write marketing ad copy for the campaign brief below.",
            f"Produce exactly {request.num_variations} distinct variations, each with "
            f"{_LENGTH_GUIDANCE[request.length]}, plus a short call to action.",
        ]
        if request.tone:
            lines.append(f"Tone: {request.tone}")
        if request.target_audience:
            lines.append(f"Target audience: {request.target_audience}")
        lines.append(f"\nBrief:\n{request.brief}")
        return "\n".join(lines)

    async def submit(self, request: CopyGenerationRequest) -> Outcome:
        try:
            raw = await self.llm.generate_text(
                self.build_prompt(request),
                LLMGenerationParams(
                    model=self.model,
                    temperature=settings.COPY_GENERATION_TEMPERATURE,
                    response_format=_response_format(request.num_variations),
                ),
            )
        except LLMClientConfigError as exc:
            raise ProviderError(str(exc), plugin_id=self.plugin_id) from exc

        try:
            result = CopyGenerationResult.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Copy generation returned malformed output", extra={"error": str(exc)})
            raise ProviderError(f"Copy model returned malformed output: {exc}", plugin_id=self.plugin_id) from exc

        if not result.variations:
            raise ProviderError("Copy model returned no variations", plugin_id=self.plugin_id)
        return Immediate(result)
