from .base import GenerationPlugin
from .registry import PluginRegistry, build_default_registry

__all__ = [
    "GenerationPlugin",
    "PluginRegistry",
    "build_default_registry",
]
