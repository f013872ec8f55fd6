from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


HISTORY_STATUS = Literal["pending", "success", "error", "cancelled"]
TERMINAL_HISTORY_STATUS = Literal["success", "error", "cancelled"]
JOB_STATE = Literal["processing", "succeeded", "failed"]

CANCELLED_DETAIL = "Run cancelled before completion"


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    plugin_id: str


@dataclass(frozen=True)
class Immediate:
    result: Any


@dataclass(frozen=True)
class Pending:
    handle: JobHandle


Outcome = Union[Immediate, Pending]


@dataclass(frozen=True)
class JobStatus:
    state: JOB_STATE
    result: Any = None
    error_detail: Optional[str] = None
    progress: Optional[float] = None

    @classmethod
    def processing(cls, progress: Optional[float] = None) -> "JobStatus":
        return cls(state="processing", progress=progress)

    @classmethod
    def succeeded(cls, result: Any) -> "JobStatus":
        return cls(state="succeeded", result=result, progress=1.0)

    @classmethod
    def failed(cls, error_detail: str) -> "JobStatus":
        return cls(state="failed", error_detail=error_detail)

    @property
    def is_terminal(self) -> bool:
        return self.state != "processing"


class HistoryEntry(BaseModel):
    """
    One orchestration attempt as seen by observers.

    Entries are immutable snapshots; the history store swaps in a new snapshot on
    the single legal transition out of `pending`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    plugin_id: str
    request: Any = None
    status: HISTORY_STATUS = "pending"
    result: Any = None
    error: Optional[str] = None
    timestamp: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != "pending"


@dataclass(frozen=True)
class HistoryTransition:
    status: TERMINAL_HISTORY_STATUS
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, result: Any) -> "HistoryTransition":
        return cls(status="success", result=result)

    @classmethod
    def failure(cls, error: str) -> "HistoryTransition":
        return cls(status="error", error=error)

    @classmethod
    def cancelled(cls, error: str = CANCELLED_DETAIL) -> "HistoryTransition":
        return cls(status="cancelled", error=error)


class SequentialStepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: int = Field(..., ge=1)
    reasoning: str
    output: str


class SequentialRunMetadata(BaseModel):
    total_steps: int
    execution_time_ms: int
    completed_at: datetime
    warnings: list[str] = Field(default_factory=list)


class SequentialRunResult(BaseModel):
    final_output: str
    results: list[SequentialStepResult] = Field(default_factory=list)
    metadata: SequentialRunMetadata
