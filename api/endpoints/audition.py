from typing import Dict
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from app.settings import settings
from domain.schemas import ApproveResponse, AuditionScaffold, ScaffoldRequest, ScaffoldStatus
from domain.services.scaffold_tracker import ScaffoldTracker
from api.deps import get_tracker, require_user

router = APIRouter()


def _scaffold_response(scaffold: AuditionScaffold) -> JSONResponse:
    if scaffold.status == ScaffoldStatus.GENERATING:
        return JSONResponse(status_code=202, content={
            "status": scaffold.status.value,
            "bank_id": scaffold.bank_id,
            "message": "Your audition is being generated. This typically takes 2-3 minutes.",
            "elapsed_minutes": scaffold.elapsed_minutes,
            "estimated_remaining_minutes": scaffold.estimated_remaining_minutes,
            "retry_after_seconds": settings.POLL_INTERVAL_SECONDS,
        })
    if scaffold.status == ScaffoldStatus.READY:
        return JSONResponse(status_code=200, content={
            "status": scaffold.status.value,
            "bank_id": scaffold.bank_id,
            "questions": [q.model_dump() for q in scaffold.questions],
            "cache_hit": scaffold.cache_hit,
            "chosen_dimensions": scaffold.chosen_dimensions,
            "dimension_justification": scaffold.dimension_justification,
            "scaffold_data": scaffold.scaffold_data,
            "scaffold_preview_html": scaffold.scaffold_preview_html or "",
            "approved": scaffold.approved,
        })
    return JSONResponse(status_code=200, content={
        "status": scaffold.status.value,
        "bank_id": scaffold.bank_id,
        "error": scaffold.error,
        "attempt": scaffold.attempt,
    })


@router.post("/audition/scaffold")
async def build_audition_scaffold(
    body: ScaffoldRequest,
    user: Dict = Depends(require_user),
    tracker: ScaffoldTracker = Depends(get_tracker),
) -> JSONResponse:
    scaffold = await tracker.get_or_start(
        body.project_id,
        definition_data=body.definition_data,
        context_flags=body.context_flags,
        clarifier_answers=body.clarifier_answers,
        restart=body.restart,
    )
    return _scaffold_response(scaffold)


@router.get("/audition/scaffold/{project_id}")
async def get_audition_scaffold(
    project_id: str,
    user: Dict = Depends(require_user),
    tracker: ScaffoldTracker = Depends(get_tracker),
) -> JSONResponse:
    return _scaffold_response(await tracker.status(project_id))


@router.post("/audition/scaffold/{project_id}/approve", response_model=ApproveResponse)
async def approve_audition_scaffold(
    project_id: str,
    user: Dict = Depends(require_user),
    tracker: ScaffoldTracker = Depends(get_tracker),
) -> ApproveResponse:
    return ApproveResponse(**await tracker.approve(project_id))
