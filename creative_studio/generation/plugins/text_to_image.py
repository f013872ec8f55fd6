from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from creative_studio.generation.plugins.provider_task import ProviderTaskPlugin
from creative_studio.schemas.generation_service import ProviderTaskOut, TextToImageTaskCreateIn
from creative_studio.services.generation_service_client import GenerationServiceClient


class TextToImageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1)
    negative_prompt: Optional[str] = None
    width: int = Field(1024, ge=256, le=2048)
    height: int = Field(1024, ge=256, le=2048)
    num_variations: int = Field(1, ge=1, le=9)
    style_strength: float = Field(0.5, ge=0.0, le=1.0)
    seed: Optional[int] = None
    client_id: Optional[str] = None


class GeneratedImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    image_url: str
    seed: Optional[int] = None


class TextToImageResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    images: list[GeneratedImage] = Field(default_factory=list)


class TextToImagePlugin(ProviderTaskPlugin[TextToImageRequest]):
    plugin_id = "text-to-image"
    name = "Text to Image"
    description = "Generate still images for ad creatives from a text prompt."
    RequestModel = TextToImageRequest

    async def _create_task(self, client: GenerationServiceClient, request: TextToImageRequest) -> ProviderTaskOut:
        return await client.create_text_to_image(
            payload=TextToImageTaskCreateIn(
                prompt=request.prompt,
                negative_prompt=request.negative_prompt,
                width=request.width,
                height=request.height,
                num_images=request.num_variations,
                style_strength=request.style_strength,
                seed=request.seed,
                client_request_id=request.client_id,
            )
        )

    def _build_result(self, task: ProviderTaskOut) -> TextToImageResult:
        urls = list(task.output) or [task.primary_url]
        images = [
            GeneratedImage(image_url=url, seed=task.seeds[index] if index < len(task.seeds) else None)
            for index, url in enumerate(urls)
            if url
        ]
        return TextToImageResult(task_id=task.id, images=images)
