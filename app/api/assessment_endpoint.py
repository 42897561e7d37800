"""
Read + control surface over the aggregation engine.

GET  /v1/assessments           → current table snapshot + summary counts
GET  /v1/assessments/progress  → latest progress snapshot + last pass result
GET  /v1/assessments/health    → scoring backend connectivity
POST /v1/assessments/reload    → reload sessions and re-score (start)
POST /v1/assessments/refresh   → re-test backend and re-score (refresh)
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from app.aggregation.controller import AggregationController
from app.core.errors import BackendUnavailable, InitializationError
from app.schemas.pass_result import PassResult, PassStatus, ProgressSnapshot
from app.schemas.risk_assessment import RiskAssessment, RiskLevel

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/assessments", tags=["assessments"])


# ── Response schemas ──

class AssessmentEntry(BaseModel):
    session_key: int
    assessment: RiskAssessment
    risk_percentage: str


class SnapshotResponse(BaseModel):
    state: str
    backend_available: bool
    total_sessions: int
    analyzed: int
    high_risk: int
    counts_by_level: dict[RiskLevel, int]
    entries: list[AssessmentEntry]


class PassResultResponse(BaseModel):
    generation: int
    status: PassStatus
    message: str
    total: int
    scored: int
    failed: int
    failed_sessions: list[int] = []
    elapsed_ms: int


class ProgressResponse(BaseModel):
    is_scoring: bool
    generation: Optional[int] = None
    processed: int = 0
    scored: int = 0
    failed: int = 0
    total: int = 0
    last_result: Optional[PassResultResponse] = None


class ConnectivityResponse(BaseModel):
    available: bool
    last_checked: Optional[datetime] = None
    last_error: Optional[str] = None


class LaunchResponse(BaseModel):
    generation: int
    sessions: int
    message: str = Field(description="Human-readable status for a transient notification")


# ── Dependency ──

def get_controller(request: Request) -> AggregationController:
    return request.app.state.controller


def _pass_result_response(result: PassResult) -> PassResultResponse:
    return PassResultResponse(
        generation=result.generation,
        status=result.status,
        message=result.message,
        total=result.total,
        scored=result.scored,
        failed=result.failed,
        failed_sessions=[f.session_key for f in result.failures],
        elapsed_ms=result.elapsed_ms,
    )


def _progress_response(controller: AggregationController) -> ProgressResponse:
    progress: Optional[ProgressSnapshot] = controller.progress
    last = controller.last_result
    resp = ProgressResponse(
        is_scoring=controller.is_scoring,
        last_result=_pass_result_response(last) if last else None,
    )
    if progress is not None:
        resp.generation = progress.generation
        resp.processed = progress.processed
        resp.scored = progress.scored
        resp.failed = progress.failed
        resp.total = progress.total
    return resp


# ── Endpoints ──

@router.get("", response_model=SnapshotResponse)
async def get_assessments(
    min_level: Optional[RiskLevel] = None,
    controller: AggregationController = Depends(get_controller),
) -> SnapshotResponse:
    # No await below: counts and entries are read from the same table state.
    table = controller.table
    selected = table.filter_by_level(min_level) if min_level else dict(table.snapshot())
    counts = table.count_by_level()

    entries = [
        AssessmentEntry(
            session_key=key,
            assessment=assessment,
            risk_percentage=assessment.risk_percentage,
        )
        for key, assessment in selected.items()
    ]
    return SnapshotResponse(
        state=controller.state.value,
        backend_available=controller.is_backend_available,
        total_sessions=len(controller.sessions),
        analyzed=len(table),
        high_risk=table.high_risk_count,
        counts_by_level=counts,
        entries=entries,
    )


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(controller: AggregationController = Depends(get_controller)) -> ProgressResponse:
    return _progress_response(controller)


@router.get("/health", response_model=ConnectivityResponse, tags=["health"])
async def get_connectivity(controller: AggregationController = Depends(get_controller)) -> ConnectivityResponse:
    state = controller.gate.state
    return ConnectivityResponse(
        available=state.available,
        last_checked=state.last_checked,
        last_error=state.last_error,
    )


@router.post("/reload", response_model=LaunchResponse, status_code=202)
async def reload_sessions(controller: AggregationController = Depends(get_controller)) -> LaunchResponse:
    try:
        generation = await controller.start()
    except InitializationError as e:
        logger.error("reload_failed", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return LaunchResponse(
        generation=generation,
        sessions=len(controller.sessions),
        message=f"Analyzing {len(controller.sessions)} sessions",
    )


@router.post("/refresh", response_model=LaunchResponse, status_code=202)
async def refresh_scoring(controller: AggregationController = Depends(get_controller)) -> LaunchResponse:
    try:
        generation = await controller.refresh()
    except BackendUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except InitializationError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("refresh_accepted", generation=generation)
    return LaunchResponse(
        generation=generation,
        sessions=len(controller.sessions),
        message="Cloud ML service refreshed successfully",
    )
