from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


HISTORY_ORDER = Literal["newest", "oldest"]


class GenerationRunIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plugin_id: str = Field(..., min_length=1)
    request: dict[str, Any] = Field(default_factory=dict)


class PluginSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plugin_id: str
    name: str
    description: str = ""
    supports_polling: bool = False


class PluginDetail(PluginSummary):
    request_schema: dict[str, Any]
    defaults: dict[str, Any] = Field(default_factory=dict)


class CancelRunOut(BaseModel):
    entry_id: str
    cancelled: bool


class ReasoningProcessIn(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    input: str = ""
    context: Any = None
    max_steps: int | None = Field(default=None, alias="maxSteps")
