from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from creative_studio.generation.plugins.provider_task import ProviderTaskPlugin
from creative_studio.schemas.generation_service import ProviderTaskOut, VoiceoverTaskCreateIn
from creative_studio.services.generation_service_client import GenerationServiceClient


VOICEOVER_EMOTION = Literal["neutral", "happy", "sad", "angry", "excited"]
VOICEOVER_FORMAT = Literal["mp3", "wav", "ogg"]


class VoiceoverRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(..., min_length=1)
    voice: str = "en-US-female-1"
    speed: float = Field(1.0, ge=0.5, le=2.0)
    pitch: int = Field(0, ge=-10, le=10)
    emotion: Optional[VOICEOVER_EMOTION] = None
    enhance_audio: bool = True
    output_format: VOICEOVER_FORMAT = "mp3"
    preserve_punctuation: bool = True
    client_id: Optional[str] = None


class VoiceoverResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    audio_url: str
    waveform_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    transcript: Optional[str] = None


class VoiceoverGenerationPlugin(ProviderTaskPlugin[VoiceoverRequest]):
    plugin_id = "voiceover-generation"
    name = "Voiceover Generation"
    description = "Read ad scripts aloud with a selectable synthetic voice."
    RequestModel = VoiceoverRequest

    async def _create_task(self, client: GenerationServiceClient, request: VoiceoverRequest) -> ProviderTaskOut:
        return await client.create_voiceover(
            payload=VoiceoverTaskCreateIn(
                text=request.text,
                voice=request.voice,
                speed=request.speed,
                pitch=request.pitch,
                emotion=request.emotion,
                enhance_audio=request.enhance_audio,
                output_format=request.output_format,
                preserve_punctuation=request.preserve_punctuation,
                client_request_id=request.client_id,
            )
        )

    def _build_result(self, task: ProviderTaskOut) -> VoiceoverResult:
        return VoiceoverResult(
            task_id=task.id,
            audio_url=task.primary_url or "",
            waveform_url=task.waveform_url,
            duration_seconds=task.duration_seconds,
            transcript=task.transcript,
        )
