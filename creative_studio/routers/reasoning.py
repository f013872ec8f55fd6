from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from creative_studio.deps import get_reasoning_engine
from creative_studio.generation.reasoning import SequentialReasoningEngine, SequentialReasoningRequest
from creative_studio.schemas.generation import ReasoningProcessIn


router = APIRouter(prefix="/mcp", tags=["reasoning"])


@router.post("/process")
async def process(payload: ReasoningProcessIn, engine: SequentialReasoningEngine = Depends(get_reasoning_engine)):
    result = await engine.process(
        SequentialReasoningRequest(input=payload.input, context=payload.context, max_steps=payload.max_steps)
    )
    return jsonable_encoder(result)


@router.get("/status")
def reasoning_status(engine: SequentialReasoningEngine = Depends(get_reasoning_engine)):
    return {
        "status": "ready",
        "default_max_steps": engine.default_max_steps,
        "max_steps_limit": engine.max_steps_limit,
    }
