from __future__ import annotations

from fastapi import Request

from creative_studio.generation.orchestrator import GenerationOrchestrator
from creative_studio.generation.plugins.registry import PluginRegistry
from creative_studio.generation.reasoning import SequentialReasoningEngine


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_registry(request: Request) -> PluginRegistry:
    return request.app.state.orchestrator.registry


def get_reasoning_engine(request: Request) -> SequentialReasoningEngine:
    return request.app.state.reasoning_engine
