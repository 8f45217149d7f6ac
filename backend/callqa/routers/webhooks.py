from fastapi import APIRouter, Depends, HTTPException
from functools import lru_cache
import logging
from ..exceptions import CallCreationError, StoreUnavailable
from ..factory import build_pipeline
from ..pipeline import CallPipeline
from ..schemas import CallInput, ProcessedCall, SimulateRequest

router = APIRouter()
logger = logging.getLogger(__name__)

# Lazy initialization to avoid startup-time side effects
@lru_cache(maxsize=None)
def get_pipeline() -> CallPipeline:
    return build_pipeline()

async def _run(coro):
    try:
        return await coro
    except StoreUnavailable as e:
        logger.error(f"Store unavailable while processing call: {e}")
        raise HTTPException(status_code=503, detail="Store unavailable, retry later")
    except CallCreationError as e:
        logger.error(f"Failed to create call: {e}")
        raise HTTPException(status_code=500, detail="Failed to create call record")

@router.post("/calls", response_model=ProcessedCall)
async def receive_call(
    data: CallInput,
    pipeline: CallPipeline = Depends(get_pipeline)
):
    """Evaluate a finished call pushed by the telephony provider"""
    return await _run(pipeline.process(data))

@router.post("/simulate", response_model=ProcessedCall)
async def simulate_call(
    request: SimulateRequest,
    pipeline: CallPipeline = Depends(get_pipeline)
):
    """Run the pipeline for a synthetic call (no audio)"""
    return await _run(pipeline.simulate_call(
        request.company_id,
        request.agent_id,
        request.phone_number,
        request.duration_seconds,
    ))
