from fastapi import APIRouter, Depends, Query
from functools import lru_cache
from typing import Optional
from ..factory import build_sweeper
from ..retention import RetentionSweeper
from ..schemas import RetentionPolicy, SweepResult

router = APIRouter()

@lru_cache(maxsize=None)
def get_sweeper() -> RetentionSweeper:
    return build_sweeper()

@router.get("/policy", response_model=RetentionPolicy)
def get_policy(sweeper: RetentionSweeper = Depends(get_sweeper)):
    return sweeper.retention_policy()

@router.post("/sweep", response_model=SweepResult)
def run_sweep(
    retention_days: Optional[int] = Query(None, ge=1),
    sweeper: RetentionSweeper = Depends(get_sweeper)
):
    """Delete calls older than the retention horizon now, instead of waiting for the scheduled run"""
    return sweeper.sweep(retention_days)
