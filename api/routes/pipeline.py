"""
Pipeline control endpoints: scheduler state, start/stop, stage limits, progress
"""

from fastapi import APIRouter, Depends, HTTPException
from api.dependencies import get_scheduler
from schemas.api import (
    PipelineStateResponse,
    ProgressItem,
    ProgressResponse,
    StageLimitRequest,
    StageState,
)
from pipeline.processors import Stage
from pipeline.progress import ProgressBoard
from pipeline.scheduler import PipelineScheduler
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/pipeline", tags=["Pipeline"])


def _state(scheduler: PipelineScheduler) -> PipelineStateResponse:
    return PipelineStateResponse(
        running=scheduler.is_running(),
        tick_interval_ms=scheduler.tick_interval_ms,
        max_downloaded_archives=scheduler.max_downloaded_archives,
        units_in_flight=scheduler.in_flight(),
        stages=[
            StageState(stage=stage.value, limit=budget.limit, in_flight=budget.in_flight)
            for stage, budget in scheduler.budgets.items()
        ]
    )


@router.get("", response_model=PipelineStateResponse)
async def get_pipeline_state(scheduler: PipelineScheduler = Depends(get_scheduler)):
    return _state(scheduler)


@router.post("/start", response_model=PipelineStateResponse)
async def start_pipeline(scheduler: PipelineScheduler = Depends(get_scheduler)):
    """Start ticking; a no-op when already running."""
    logger.info("POST /pipeline/start")
    await scheduler.start()
    return _state(scheduler)


@router.post("/stop", response_model=PipelineStateResponse)
async def stop_pipeline(scheduler: PipelineScheduler = Depends(get_scheduler)):
    """Stop ticking; units already in flight keep running."""
    logger.info("POST /pipeline/stop")
    scheduler.stop()
    return _state(scheduler)


@router.put("/limits/{stage}", response_model=PipelineStateResponse)
async def set_stage_limit(
    stage: Stage,
    body: StageLimitRequest,
    scheduler: PipelineScheduler = Depends(get_scheduler)
):
    scheduler.set_stage_limit(stage, body.limit)
    return _state(scheduler)


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(
    active_only: bool = False,
    scheduler: PipelineScheduler = Depends(get_scheduler)
):
    """Latest progress report per archive or file."""
    board = scheduler.progress
    if not isinstance(board, ProgressBoard):
        raise HTTPException(status_code=404, detail="Progress is not tracked by this pipeline")
    
    return ProgressResponse(
        items=[ProgressItem(**entry) for entry in board.snapshot(include_finished=not active_only)]
    )
