from __future__ import annotations

import logging
from typing import Iterable, Optional, TYPE_CHECKING

from creative_studio.generation.errors import DuplicatePluginError, PluginNotFoundError
from creative_studio.generation.plugins.base import GenerationPlugin

if TYPE_CHECKING:
    from creative_studio.llm.client import LLMClient
    from creative_studio.services.generation_service_client import GenerationServiceClient

logger = logging.getLogger(__name__)


class PluginRegistry:
    def __init__(self, plugins: Iterable[GenerationPlugin] = ()) -> None:
        self._plugins: dict[str, GenerationPlugin] = {}
        for plugin in plugins:
            self.register(plugin)

    def register(self, plugin: GenerationPlugin) -> None:
        if plugin.plugin_id in self._plugins:
            raise DuplicatePluginError(plugin.plugin_id)
        self._plugins[plugin.plugin_id] = plugin
        logger.debug("Generation plugin registered", extra={"plugin_id": plugin.plugin_id})

    def get(self, plugin_id: str) -> GenerationPlugin:
        try:
            return self._plugins[plugin_id]
        except KeyError as exc:
            raise PluginNotFoundError(plugin_id, available=self.list_keys()) from exc

    def list_all(self) -> list[GenerationPlugin]:
        return list(self._plugins.values())

    def list_keys(self) -> list[str]:
        return list(self._plugins.keys())

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)


def build_default_registry(
    *,
    service_client: Optional["GenerationServiceClient"] = None,
    llm: Optional["LLMClient"] = None,
) -> PluginRegistry:
    from creative_studio.generation.plugins.copy_generation import CopyGenerationPlugin
    from creative_studio.generation.plugins.image_to_video import ImageToVideoPlugin
    from creative_studio.generation.plugins.music_generation import MusicGenerationPlugin
    from creative_studio.generation.plugins.sequential_reasoning import SequentialReasoningPlugin
    from creative_studio.generation.plugins.text_to_image import TextToImagePlugin
    from creative_studio.generation.plugins.voiceover_generation import VoiceoverGenerationPlugin

    return PluginRegistry(
        [
            TextToImagePlugin(client=service_client),
            ImageToVideoPlugin(client=service_client),
            MusicGenerationPlugin(client=service_client),
            VoiceoverGenerationPlugin(client=service_client),
            SequentialReasoningPlugin(llm=llm),
            CopyGenerationPlugin(llm=llm),
        ]
    )
