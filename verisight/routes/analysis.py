"""
analysis.py — Run the authenticity pipeline and browse past results.

Routes:
  POST   /api/v1/analysis                run Detection → Decision → Explanation
  GET    /api/v1/analysis/history        all results, most recent first
  GET    /api/v1/analysis/history/{id}   one result
  DELETE /api/v1/analysis/history        clear history

HOW THE DATA FLOWS
──────────────────
1. The client either uploads the file as base64 (media_b64) or names a path
   the server can read (media_reference).
2. An AnalysisContext is built and handed to the orchestrator.
3. The finished AnalysisResult is prepended to history and returned.

Status codes the client must tell apart:
  422  media could not be decoded (or the request was malformed)
  502  a pipeline stage failed; retry the whole request
  503  history could not be written; the analysis was not kept
"""

import base64
import binascii
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from verisight.ai.analysis_orchestrator import AnalysisOrchestrator, analysis_orchestrator
from verisight.core.config import settings
from verisight.core.errors import MediaUnreadable, PipelineFailure, StorageUnavailable
from verisight.core.rate_limit import limiter
from verisight.models.analysis import (
    AnalysisContext,
    AnalysisRequest,
    AnalysisResult,
    HistoryClearedResponse,
)
from verisight.routes.auth import require_session
from verisight.services.history_store import HistoryStore
from verisight.services.stores import get_history_store

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/analysis",
    tags=["analysis"],
    dependencies=[Depends(require_session)],
)


def get_orchestrator() -> AnalysisOrchestrator:
    return analysis_orchestrator


HistoryDep = Annotated[HistoryStore, Depends(get_history_store)]
OrchestratorDep = Annotated[AnalysisOrchestrator, Depends(get_orchestrator)]


def _build_context(payload: AnalysisRequest) -> AnalysisContext:
    if payload.media_b64 is not None:
        try:
            data = base64.b64decode(payload.media_b64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="media_b64 is not valid base64",
            )
        return AnalysisContext(
            media_type=payload.media_type,
            media_reference=payload.media_reference or payload.file_name,
            media_data=data,
        )

    if not payload.media_reference:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide either media_b64 or media_reference",
        )
    return AnalysisContext(media_type=payload.media_type, media_reference=payload.media_reference)


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("", response_model=AnalysisResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.analysis_rate_limit)
async def run_analysis(
    request: Request,
    payload: AnalysisRequest,
    history: HistoryDep,
    orchestrator: OrchestratorDep,
):
    """Analyse one video or audio file and store the result in history."""
    context = _build_context(payload)
    size = payload.file_size_bytes or len(context.media_data or b"")

    try:
        result = await orchestrator.run_analysis(context, payload.file_name, size)
    except PipelineFailure as exc:
        if isinstance(exc.cause, MediaUnreadable):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(exc.cause),
            )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Analysis failed during {exc.stage}; retry the request",
        )

    try:
        await history.add(result)
    except StorageUnavailable as exc:
        logger.error("Analysis %s completed but was not saved: %s", result.id[:12], exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="History storage unavailable — analysis was not saved",
        )

    return result


@router.get("/history", response_model=list[AnalysisResult])
async def list_history(history: HistoryDep):
    return await history.results()


@router.get("/history/{analysis_id}", response_model=AnalysisResult)
async def get_analysis(analysis_id: str, history: HistoryDep):
    result = await history.get(analysis_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")
    return result


@router.delete("/history", response_model=HistoryClearedResponse)
async def clear_history(history: HistoryDep):
    try:
        await history.clear()
    except StorageUnavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="History storage unavailable",
        )
    return HistoryClearedResponse()
