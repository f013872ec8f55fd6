from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from creative_studio.generation.plugins.provider_task import ProviderTaskPlugin
from creative_studio.schemas.generation_service import MusicTaskCreateIn, ProviderTaskOut
from creative_studio.services.generation_service_client import GenerationServiceClient


MUSIC_GENRE = Literal["pop", "rock", "electronic", "ambient", "classical", "jazz", "hip-hop", "folk"]
MUSIC_MOOD = Literal["happy", "sad", "energetic", "relaxed", "tense", "mysterious"]
MUSIC_FORMAT = Literal["mp3", "wav", "midi"]


class MusicGenerationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1)
    genre: Optional[MUSIC_GENRE] = None
    mood: Optional[MUSIC_MOOD] = None
    tempo_bpm: int = Field(120, ge=60, le=180)
    duration_seconds: int = Field(60, ge=10, le=300)
    # e.g. "AABA" or "verse-chorus-verse-chorus-bridge-chorus"
    structure: Optional[str] = None
    output_format: MUSIC_FORMAT = "mp3"
    include_layered_tracks: bool = False
    client_id: Optional[str] = None


class MusicTrack(BaseModel):
    name: str
    url: str


class MusicGenerationResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    audio_url: str
    waveform_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    tracks: list[MusicTrack] = Field(default_factory=list)


class MusicGenerationPlugin(ProviderTaskPlugin[MusicGenerationRequest]):
    plugin_id = "music-generation"
    name = "Music Generation"
    description = "Generate original music beds for ads from a text description."
    RequestModel = MusicGenerationRequest

    async def _create_task(self, client: GenerationServiceClient, request: MusicGenerationRequest) -> ProviderTaskOut:
        return await client.create_music(
            payload=MusicTaskCreateIn(
                prompt=request.prompt,
                genre=request.genre,
                mood=request.mood,
                tempo=request.tempo_bpm,
                duration=request.duration_seconds,
                structure=request.structure,
                output_format=request.output_format,
                include_layered_tracks=request.include_layered_tracks,
                client_request_id=request.client_id,
            )
        )

    def _build_result(self, task: ProviderTaskOut) -> MusicGenerationResult:
        return MusicGenerationResult(
            task_id=task.id,
            audio_url=task.primary_url or "",
            waveform_url=task.waveform_url,
            duration_seconds=task.duration_seconds,
            tracks=[MusicTrack(name=track.name, url=track.url) for track in task.tracks],
        )
