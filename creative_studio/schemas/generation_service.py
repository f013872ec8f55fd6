from __future__ import annotations

import math
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


PROVIDER_TASK_STATUS = Literal["queued", "processing", "succeeded", "failed", "cancelled"]

_STATUS_ALIASES: dict[str, str] = {
    "pending": "queued",
    "queued": "queued",
    "throttled": "queued",
    "running": "processing",
    "processing": "processing",
    "in_progress": "processing",
    "succeeded": "succeeded",
    "success": "succeeded",
    "completed": "succeeded",
    "failed": "failed",
    "error": "failed",
    "cancelled": "cancelled",
    "canceled": "cancelled",
}


class TextToImageTaskCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str
    negative_prompt: Optional[str] = None
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    num_images: int = Field(1, ge=1)
    style_strength: float = Field(0.5, ge=0.0, le=1.0)
    seed: Optional[int] = None
    client_request_id: Optional[str] = None


class ImageToVideoTaskCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt_image: str
    prompt_text: str = ""
    model: str
    motion_strength: float = Field(0.5, ge=0.0, le=1.0)
    duration: int = Field(4, ge=1)
    client_request_id: Optional[str] = None


class MusicTaskCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str
    genre: Optional[str] = None
    mood: Optional[str] = None
    tempo: int = Field(..., ge=1)
    duration: int = Field(..., ge=1)
    structure: Optional[str] = None
    output_format: str
    include_layered_tracks: bool = False
    client_request_id: Optional[str] = None


class VoiceoverTaskCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    voice: str
    speed: float
    pitch: int
    emotion: Optional[str] = None
    enhance_audio: bool = True
    output_format: str
    preserve_punctuation: bool = True
    client_request_id: Optional[str] = None


class ProviderAudioTrack(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    url: str


class ProviderTaskOut(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    status: PROVIDER_TASK_STATUS
    output: list[str] = Field(default_factory=list)
    result_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("result_url", "resultUrl", "audio_url", "audioUrl"),
    )
    error_detail: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("error_detail", "errorDetail", "failure"),
    )
    # Fraction in [0, 1]; providers that report percent are scaled on the way in.
    progress: Optional[float] = None
    seeds: list[int] = Field(default_factory=list)
    waveform_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("waveform_url", "waveformUrl"))
    duration_seconds: Optional[float] = Field(default=None, validation_alias=AliasChoices("duration_seconds", "duration"))
    transcript: Optional[str] = None
    tracks: list[ProviderAudioTrack] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tracks", "individual_tracks", "individualTracks"),
    )

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _STATUS_ALIASES.get(value.strip().lower(), value)
        return value

    @field_validator("output", "tracks", mode="before")
    @classmethod
    def normalize_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            return [value]
        return value

    @field_validator("progress", mode="before")
    @classmethod
    def normalize_progress(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        try:
            progress = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(progress):
            return None
        if progress > 1.0:
            progress = progress / 100.0
        return min(max(progress, 0.0), 1.0)

    @property
    def primary_url(self) -> Optional[str]:
        if self.result_url:
            return self.result_url
        return self.output[0] if self.output else None


class GenerationServiceErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class GenerationServiceErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: Optional[GenerationServiceErrorBody] = None
