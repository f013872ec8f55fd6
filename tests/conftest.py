import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

import pytest
from pydantic import BaseModel, ConfigDict, Field

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

from creative_studio.generation.errors import ProviderError
from creative_studio.generation.plugins.base import GenerationPlugin
from creative_studio.generation.reasoning import ReasoningModel, StepPrompt, ThoughtStep
from creative_studio.generation.types import Immediate, JobHandle, JobStatus, Pending


class PromptRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1)
    width: int = 512


class EchoPlugin(GenerationPlugin[PromptRequest]):
    """Completes synchronously with the prompt it was given."""

    plugin_id = "echo"
    name = "Echo"
    description = "Returns the prompt."
    RequestModel = PromptRequest

    def __init__(self, plugin_id: Optional[str] = None) -> None:
        if plugin_id:
            self.plugin_id = plugin_id
        self.submitted: list[PromptRequest] = []

    async def submit(self, request: PromptRequest) -> Immediate:
        self.submitted.append(request)
        return Immediate({"echo": request.prompt})


class FailingPlugin(GenerationPlugin[PromptRequest]):
    plugin_id = "failing"
    name = "Failing"
    RequestModel = PromptRequest

    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    async def submit(self, request: PromptRequest) -> Immediate:
        raise self.exc


class ScriptedJobPlugin(GenerationPlugin[PromptRequest]):
    """Returns a job handle, then replays scripted statuses (or exceptions) on each poll."""

    plugin_id = "scripted-job"
    name = "Scripted job"
    RequestModel = PromptRequest
    supports_polling = True

    def __init__(self, statuses: list[Any]) -> None:
        self.statuses = list(statuses)
        self.poll_calls = 0
        self.cancelled: list[JobHandle] = []

    async def submit(self, request: PromptRequest) -> Pending:
        return Pending(JobHandle(job_id="job-1", plugin_id=self.plugin_id))

    async def poll_status(self, handle: JobHandle) -> JobStatus:
        self.poll_calls += 1
        index = min(self.poll_calls, len(self.statuses)) - 1
        item = self.statuses[index]
        if isinstance(item, Exception):
            raise item
        return item

    async def cancel(self, handle: JobHandle) -> None:
        self.cancelled.append(handle)


class ScriptedReasoningModel(ReasoningModel):
    def __init__(self, thoughts: Optional[list[ThoughtStep]] = None) -> None:
        self.thoughts = thoughts
        self.prompts: list[StepPrompt] = []

    async def think(self, prompt: StepPrompt) -> ThoughtStep:
        self.prompts.append(prompt)
        if self.thoughts is None:
            return ThoughtStep(reasoning=f"thinking {prompt.step}", output=f"output {prompt.step}")
        return self.thoughts[len(self.prompts) - 1]


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class BlockingSleep:
    """Parks the poll loop until the test cancels it."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.entered.set()
        await asyncio.Event().wait()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def provider_error() -> ProviderError:
    return ProviderError("upstream unavailable")
