"""
Production Pipeline API — CRUD + stage advancement with the prefill cascade.

POST  /api/production                          — Create project for a scoping form (Closed Won)
GET   /api/production                          — List projects (optional ?stage= filter)
GET   /api/production/summary/stages           — Project count per stage
GET   /api/production/mappings/{from}/{to}     — Prefill mappings for a transition
GET   /api/production/{id}                     — Single project
PATCH /api/production/{id}                     — Manual edits to the current stage
GET   /api/production/{id}/preview-advance     — Dry-run cascade, nothing saved
POST  /api/production/{id}/advance             — Run cascade, merge, move to next stage
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..production.cascade import get_default_resolver
from ..production.errors import (
    ConcurrentAdvanceConflict,
    InvalidStage,
    InvalidStageUpdate,
    InvalidTransition,
    ProjectAlreadyExists,
    ProjectNotFound,
    ScopingFormNotFound,
    TerminalStage,
)
from ..production.service import ProductionPipeline, ProductionRepository
from ..production.stages import as_stage

router = APIRouter(prefix="/production", tags=["production"])


# --- Request schemas ---

class CreateProjectRequest(BaseModel):
    scopingFormId: int


class StageUpdateRequest(BaseModel):
    stageUpdates: dict  # {fieldKey: value, ...} for the current stage


def get_pipeline(db: Session = Depends(get_db)) -> ProductionPipeline:
    return ProductionPipeline(ProductionRepository(db), get_default_resolver())


# --- Endpoints ---

@router.post("", status_code=201)
def create_project(
    request: CreateProjectRequest,
    pipeline: ProductionPipeline = Depends(get_pipeline),
):
    try:
        project = pipeline.create_project(request.scopingFormId)
    except ScopingFormNotFound:
        raise HTTPException(status_code=404, detail="Scoping form not found")
    except ProjectAlreadyExists as e:
        raise HTTPException(status_code=409, detail={
            "error": "Production project already exists for this scoping form",
            "projectId": e.project_id,
        })
    return project.to_response()


@router.get("")
def list_projects(
    stage: Optional[str] = None,
    pipeline: ProductionPipeline = Depends(get_pipeline),
):
    stage_filter = None
    if stage:
        try:
            stage_filter = as_stage(stage)
        except InvalidStage as e:
            raise HTTPException(status_code=400, detail=str(e))
    projects = pipeline.repository.list_projects(stage_filter)
    return [p.to_response() for p in projects]


@router.get("/summary/stages")
def stage_summary(pipeline: ProductionPipeline = Depends(get_pipeline)):
    return pipeline.stage_summary()


@router.get("/mappings/{from_stage}/{to_stage}")
def transition_mappings(
    from_stage: str,
    to_stage: str,
    pipeline: ProductionPipeline = Depends(get_pipeline),
):
    """Mappings for a transition, for the UI to label prefilled vs. manual fields."""
    table = pipeline.resolver.table
    try:
        mappings = table.mappings_for(from_stage, to_stage)
        summary = table.summary(from_stage, to_stage)
    except (InvalidStage, InvalidTransition) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "fromStage": from_stage,
        "toStage": to_stage,
        "mappings": [m.model_dump(mode="json", by_alias=True) for m in mappings],
        "summary": summary,
    }


@router.get("/{project_id}")
def get_project(project_id: int, pipeline: ProductionPipeline = Depends(get_pipeline)):
    try:
        return pipeline.repository.load_project(project_id).to_response()
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Production project not found")


@router.patch("/{project_id}")
def update_stage_data(
    project_id: int,
    request: StageUpdateRequest,
    pipeline: ProductionPipeline = Depends(get_pipeline),
):
    try:
        project = pipeline.update_stage_data(project_id, request.stageUpdates)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Production project not found")
    except InvalidStageUpdate as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrentAdvanceConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    return project.to_response()


@router.get("/{project_id}/preview-advance")
def preview_advance(project_id: int, pipeline: ProductionPipeline = Depends(get_pipeline)):
    try:
        return pipeline.preview(project_id)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Production project not found")
    except ScopingFormNotFound:
        raise HTTPException(status_code=404, detail="Scoping form not found")
    except TerminalStage:
        raise HTTPException(status_code=400, detail="Project is already at final stage")


@router.post("/{project_id}/advance")
def advance(project_id: int, pipeline: ProductionPipeline = Depends(get_pipeline)):
    try:
        return pipeline.advance(project_id)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Production project not found")
    except ScopingFormNotFound:
        raise HTTPException(status_code=404, detail="Scoping form not found")
    except TerminalStage:
        raise HTTPException(status_code=400, detail="Project is already at final stage")
    except ConcurrentAdvanceConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
