from __future__ import annotations

from typing import Optional

from creative_studio.generation.plugins.base import GenerationPlugin
from creative_studio.generation.reasoning import (
    LLMReasoningModel,
    SequentialReasoningEngine,
    SequentialReasoningRequest,
)
from creative_studio.generation.types import Immediate, Outcome
from creative_studio.llm.client import LLMClient


class SequentialReasoningPlugin(GenerationPlugin[SequentialReasoningRequest]):
    plugin_id = "sequential-reasoning"
    name = "Sequential Thinking"
    description = "Work through a campaign question step by step, feeding each step into the next."
    RequestModel = SequentialReasoningRequest

    def __init__(
        self,
        engine: Optional[SequentialReasoningEngine] = None,
        *,
        llm: Optional[LLMClient] = None,
    ) -> None:
        self._engine = engine
        self._llm = llm

    @property
    def engine(self) -> SequentialReasoningEngine:
        if self._engine is None:
            self._engine = SequentialReasoningEngine(LLMReasoningModel(self._llm))
        return self._engine

    async def submit(self, request: SequentialReasoningRequest) -> Outcome:
        return Immediate(await self.engine.process(request))
