"""Bounded multi-step reasoning over an LLM.

Each step sees the original task, the accumulated steps, the caller's context
and the previous step's output as its current focus. A run completes when the
model marks a step final or the step budget is spent.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from creative_studio.config import settings
from creative_studio.generation.errors import InputRequiredError
from creative_studio.generation.types import (
    SequentialRunMetadata,
    SequentialRunResult,
    SequentialStepResult,
)
from creative_studio.llm.client import LLMClient, LLMGenerationParams
from creative_studio.observability import start_langfuse_span

logger = logging.getLogger(__name__)


PARSE_FAILURE_REASONING = "Error parsing structured output"

_THOUGHT_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "ReasoningStep",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "reasoning": {"type": "string"},
                "output": {"type": "string"},
                "final": {"type": "boolean"},
            },
            "required": ["reasoning", "output", "final"],
        },
    },
}


class ReasoningState(str, Enum):
    AWAITING_STEP = "awaiting-step"
    STEPPING = "stepping"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ThoughtStep:
    reasoning: str
    output: str
    is_final: bool = False


@dataclass
class StepPrompt:
    task: str
    current_input: str
    context: dict[str, Any]
    step: int
    max_steps: int
    previous: list[SequentialStepResult] = field(default_factory=list)


class ReasoningModel(ABC):
    @abstractmethod
    async def think(self, prompt: StepPrompt) -> ThoughtStep:
        raise NotImplementedError


def render_step_prompt(prompt: StepPrompt) -> str:
    previous_block = "\n".join(
        f"Step {item.step}:\nReasoning: {item.reasoning}\nOutput: {item.output}" for item in prompt.previous
    )
    return (
        "You are working through a task one step at a time.\n\n"
        f"Task:\n{prompt.task}\n\n"
        f"Context:\n{json.dumps(prompt.context, ensure_ascii=False, indent=2, default=str)}\n\n"
        f"Previous steps:\n{previous_block or '(none)'}\n\n"
        f"Current focus:\n{prompt.current_input}\n\n"
        f"This is step {prompt.step} of {prompt.max_steps}. "
        "Respond with a JSON object containing `reasoning` (your thinking for this step), "
        "`output` (the result of this step) and `final` (true when the task is fully answered)."
    )


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_thought(raw: str) -> ThoughtStep:
    """Parse a model reply; an unreadable reply becomes a final step carrying the raw text."""
    try:
        data = json.loads(_strip_code_fence(raw))
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        reasoning = data["reasoning"]
        output = data["output"]
        if not isinstance(reasoning, str) or not isinstance(output, str):
            raise ValueError("reasoning and output must be strings")
    except (ValueError, KeyError) as exc:
        logger.warning("Reasoning step output could not be parsed", extra={"error": str(exc)})
        return ThoughtStep(reasoning=PARSE_FAILURE_REASONING, output=raw, is_final=True)
    return ThoughtStep(reasoning=reasoning, output=output, is_final=bool(data.get("final", False)))


class LLMReasoningModel(ReasoningModel):
    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> None:
        self.llm = llm or LLMClient()
        self.model = model or settings.REASONING_MODEL
        self.temperature = settings.REASONING_TEMPERATURE if temperature is None else temperature

    async def think(self, prompt: StepPrompt) -> ThoughtStep:
        raw = await self.llm.generate_text(
            render_step_prompt(prompt),
            LLMGenerationParams(
                model=self.model,
                temperature=self.temperature,
                response_format=_THOUGHT_RESPONSE_FORMAT,
            ),
        )
        return parse_thought(raw)


class SequentialReasoningRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input: str = ""
    context: Any = None
    max_steps: Optional[int] = None


def coerce_context(raw: Any) -> tuple[dict[str, Any], list[str]]:
    """Accept a dict, a JSON object string, or nothing; anything else degrades to {}."""
    if raw is None:
        return {}, []
    if isinstance(raw, dict):
        return dict(raw), []
    if isinstance(raw, str):
        if not raw.strip():
            return {}, []
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}, ["Context is not valid JSON; using an empty context."]
        if isinstance(parsed, dict):
            return parsed, []
        return {}, ["Context JSON is not an object; using an empty context."]
    return {}, [f"Context of type {type(raw).__name__} is not supported; using an empty context."]


class SequentialReasoningEngine:
    def __init__(
        self,
        model: ReasoningModel,
        *,
        default_max_steps: Optional[int] = None,
        max_steps_limit: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.model = model
        self.default_max_steps = default_max_steps or settings.REASONING_DEFAULT_MAX_STEPS
        self.max_steps_limit = max_steps_limit or settings.REASONING_MAX_STEPS_LIMIT
        self._clock = clock

    def _resolve_max_steps(self, requested: Optional[int], warnings: list[str]) -> int:
        if requested is None:
            return min(self.default_max_steps, self.max_steps_limit)
        clamped = max(1, min(int(requested), self.max_steps_limit))
        if clamped != requested:
            warnings.append(f"max_steps={requested} is outside 1..{self.max_steps_limit}; using {clamped}.")
        return clamped

    async def process(self, request: SequentialReasoningRequest | dict[str, Any]) -> SequentialRunResult:
        if not isinstance(request, SequentialReasoningRequest):
            request = SequentialReasoningRequest.model_validate(request)

        task = request.input.strip()
        if not task:
            raise InputRequiredError("Input is required for sequential reasoning")

        started = self._clock()
        context, warnings = coerce_context(request.context)
        max_steps = self._resolve_max_steps(request.max_steps, warnings)
        for warning in warnings:
            logger.warning("Sequential reasoning input degraded", extra={"warning": warning})

        results: list[SequentialStepResult] = []
        current_input = task
        state = ReasoningState.AWAITING_STEP

        with start_langfuse_span(
            name="reasoning.process",
            input={"input": task, "max_steps": max_steps},
            metadata={"max_steps": max_steps},
        ) as run_span:
            while state is not ReasoningState.COMPLETE:
                step_number = len(results) + 1
                state = ReasoningState.STEPPING
                prompt = StepPrompt(
                    task=task,
                    current_input=current_input,
                    context=context,
                    step=step_number,
                    max_steps=max_steps,
                    previous=list(results),
                )
                with start_langfuse_span(name="reasoning.step", metadata={"step": step_number}) as step_span:
                    thought = await self.model.think(prompt)
                    if step_span is not None:
                        step_span.update(output={"reasoning": thought.reasoning, "output": thought.output})

                results.append(
                    SequentialStepResult(step=step_number, reasoning=thought.reasoning, output=thought.output)
                )
                current_input = thought.output
                logger.debug(
                    "Reasoning step completed",
                    extra={"step": step_number, "max_steps": max_steps, "final": thought.is_final},
                )

                if thought.is_final or step_number >= max_steps:
                    state = ReasoningState.COMPLETE
                else:
                    state = ReasoningState.AWAITING_STEP

            execution_time_ms = int((self._clock() - started) * 1000)
            result = SequentialRunResult(
                final_output=results[-1].output,
                results=results,
                metadata=SequentialRunMetadata(
                    total_steps=len(results),
                    execution_time_ms=execution_time_ms,
                    completed_at=datetime.now(timezone.utc),
                    warnings=warnings,
                ),
            )
            if run_span is not None:
                run_span.update(output={"final_output": result.final_output, "total_steps": len(results)})

        logger.info(
            "Sequential reasoning completed",
            extra={"total_steps": len(results), "execution_time_ms": execution_time_ms},
        )
        return result
