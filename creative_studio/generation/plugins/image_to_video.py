from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from creative_studio.config import settings
from creative_studio.generation.plugins.provider_task import ProviderTaskPlugin
from creative_studio.schemas.generation_service import ImageToVideoTaskCreateIn, ProviderTaskOut
from creative_studio.services.generation_service_client import GenerationServiceClient


class ImageToVideoRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source_image_url: str = Field(..., min_length=1)
    prompt: str = ""
    model: str = Field(default_factory=lambda: settings.VIDEO_DEFAULT_MODEL)
    motion_strength: float = Field(0.5, ge=0.0, le=1.0)
    duration_seconds: int = Field(4, ge=1, le=30)
    client_id: Optional[str] = None


class VideoGenerationResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    result_url: str


class ImageToVideoPlugin(ProviderTaskPlugin[ImageToVideoRequest]):
    plugin_id = "image-to-video"
    name = "Image to Video"
    description = "Animate a still image into a short video clip."
    RequestModel = ImageToVideoRequest

    async def _create_task(self, client: GenerationServiceClient, request: ImageToVideoRequest) -> ProviderTaskOut:
        return await client.create_image_to_video(
            payload=ImageToVideoTaskCreateIn(
                prompt_image=request.source_image_url,
                prompt_text=request.prompt,
                model=request.model,
                motion_strength=request.motion_strength,
                duration=request.duration_seconds,
                client_request_id=request.client_id,
            )
        )

    def _build_result(self, task: ProviderTaskOut) -> VideoGenerationResult:
        return VideoGenerationResult(task_id=task.id, result_url=task.primary_url or "")
