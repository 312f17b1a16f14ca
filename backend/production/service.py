"""
Stage transition service — preview and advance for production projects.

The resolver is pure; this module owns the read → resolve → merge → commit
sequence. Commits are optimistic: the UPDATE only applies if the project is
still at the stage/version that was loaded, otherwise ConcurrentAdvanceConflict
is raised and nothing is written.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from .. import models
from .cascade import CascadeResolver, get_default_resolver
from .errors import (
    ConcurrentAdvanceConflict,
    ProjectAlreadyExists,
    ProjectNotFound,
    ScopingFormNotFound,
    TerminalStage,
)
from .snapshot import ScopingSnapshot
from .stages import STAGE_CONFIGS, ProductionStage, as_stage, next_stage, validate_stage_updates

logger = logging.getLogger(__name__)


class ProjectState(BaseModel):
    """What a cascade call needs from a persisted project."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    scoping_form_id: int
    upid: str
    current_stage: ProductionStage
    stage_data: dict[str, dict[str, Any]] = {}
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("stage_data", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or {}

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "scopingFormId": self.scoping_form_id,
            "upid": self.upid,
            "currentStage": self.current_stage.value,
            "stageData": self.stage_data,
            "version": self.version,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


def merge_prefill(stage_data: dict, stage, prefill: dict) -> dict:
    """
    Merge prefilled values into one stage's bucket, returning a NEW stage_data.
    Only absent or None keys are filled. Any other value already in the bucket
    (typically an operator entry, even "" or []) is never overwritten.
    """
    stage = as_stage(stage)
    merged = copy.deepcopy(stage_data or {})
    bucket = dict(merged.get(stage.value) or {})
    for field, value in prefill.items():
        if bucket.get(field) is None:
            bucket[field] = copy.deepcopy(value)
    merged[stage.value] = bucket
    return merged


class ProductionRepository:
    """Storage contract for the pipeline, backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def load_project(self, project_id: int) -> ProjectState:
        project = self.db.query(models.ProductionProject).filter(
            models.ProductionProject.id == project_id,
        ).first()
        if not project:
            raise ProjectNotFound(f"Production project {project_id} not found")
        return ProjectState.model_validate(project)

    def load_scoping_snapshot(self, scoping_form_id: int) -> ScopingSnapshot:
        form = self.db.query(models.ScopingForm).options(
            selectinload(models.ScopingForm.areas),
        ).filter(models.ScopingForm.id == scoping_form_id).first()
        if not form:
            raise ScopingFormNotFound(f"Scoping form {scoping_form_id} not found")
        return ScopingSnapshot.model_validate(form)

    def persist(self, project_id: int, current_stage, stage_data: dict,
                expected_stage, expected_version: int) -> ProjectState:
        """
        Write stage pointer + stage data iff the row is still at
        (expected_stage, expected_version). Bumps version.
        """
        current_stage, expected_stage = as_stage(current_stage), as_stage(expected_stage)
        result = self.db.execute(
            update(models.ProductionProject)
            .where(
                models.ProductionProject.id == project_id,
                models.ProductionProject.current_stage == expected_stage.value,
                models.ProductionProject.version == expected_version,
            )
            .values(
                current_stage=current_stage.value,
                stage_data=stage_data,
                version=expected_version + 1,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise ConcurrentAdvanceConflict(project_id, expected_stage.value, expected_version)
        self.db.commit()
        self.db.expire_all()
        return self.load_project(project_id)

    def create_project(self, scoping_form_id: int) -> ProjectState:
        form = self.db.query(models.ScopingForm).filter(
            models.ScopingForm.id == scoping_form_id,
        ).first()
        if not form:
            raise ScopingFormNotFound(f"Scoping form {scoping_form_id} not found")

        existing = self.db.query(models.ProductionProject).filter(
            models.ProductionProject.scoping_form_id == scoping_form_id,
        ).first()
        if existing:
            raise ProjectAlreadyExists(scoping_form_id, existing.id)

        # Created at scheduling: no prefill needed, scheduling IS the scoping form
        project = models.ProductionProject(
            scoping_form_id=scoping_form_id,
            upid=form.upid,
            current_stage=ProductionStage.SCHEDULING.value,
            stage_data={ProductionStage.SCHEDULING.value: {}},
            version=1,
        )
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)
        return ProjectState.model_validate(project)

    def list_projects(self, stage: Optional[ProductionStage] = None) -> list[ProjectState]:
        query = self.db.query(models.ProductionProject)
        if stage is not None:
            query = query.filter(models.ProductionProject.current_stage == stage.value)
        projects = query.order_by(models.ProductionProject.updated_at.desc()).all()
        return [ProjectState.model_validate(p) for p in projects]

    def count_by_stage(self) -> dict[str, int]:
        rows = self.db.query(
            models.ProductionProject.current_stage,
            func.count(models.ProductionProject.id),
        ).group_by(models.ProductionProject.current_stage).all()
        return {stage: count for stage, count in rows}


class ProductionPipeline:
    """Preview / advance / edit operations over the production stage machine."""

    def __init__(self, repository: ProductionRepository,
                 resolver: Optional[CascadeResolver] = None):
        self.repository = repository
        self.resolver = resolver or get_default_resolver()

    def _cascade(self, project: ProjectState):
        to_stage = next_stage(project.current_stage)
        if to_stage is None:
            raise TerminalStage(
                f"Project {project.id} is already at final stage ({project.current_stage.value})"
            )
        snapshot = self.repository.load_scoping_snapshot(project.scoping_form_id)
        outcome = self.resolver.resolve(
            project.current_stage, to_stage, snapshot, project.stage_data,
        )
        return to_stage, outcome

    def preview(self, project_id: int) -> dict:
        """Dry run of the next advance. Nothing is merged, persisted or advanced."""
        project = self.repository.load_project(project_id)
        to_stage, outcome = self._cascade(project)
        return {
            "fromStage": project.current_stage.value,
            "toStage": to_stage.value,
            "prefillData": outcome.data,
            "results": [r.model_dump(mode="json", by_alias=True) for r in outcome.results],
        }

    def advance(self, project_id: int) -> dict:
        """Resolve, merge (fill-only), move the stage pointer and persist."""
        project = self.repository.load_project(project_id)
        from_stage = project.current_stage
        to_stage, outcome = self._cascade(project)

        stage_data = merge_prefill(project.stage_data, to_stage, outcome.data)
        try:
            updated = self.repository.persist(
                project.id, to_stage, stage_data,
                expected_stage=from_stage, expected_version=project.version,
            )
        except ConcurrentAdvanceConflict:
            logger.warning(
                "Advance conflict on project %s at %s (v%s)",
                project.id, from_stage.value, project.version,
            )
            raise

        logger.info(
            "Project %s advanced %s -> %s (%d prefilled, %d skipped)",
            project.id, from_stage.value, to_stage.value, len(outcome.data),
            sum(1 for r in outcome.results if r.skipped),
        )
        return {
            "project": updated.to_response(),
            "prefillResults": [r.model_dump(mode="json", by_alias=True) for r in outcome.results],
            "advancedFrom": from_stage.value,
            "advancedTo": to_stage.value,
        }

    def update_stage_data(self, project_id: int, updates: dict) -> ProjectState:
        """Operator edits within the current stage. Operator values always win."""
        project = self.repository.load_project(project_id)
        clean = validate_stage_updates(project.current_stage, updates)
        stage_data = copy.deepcopy(project.stage_data or {})
        bucket = dict(stage_data.get(project.current_stage.value) or {})
        bucket.update(clean)
        stage_data[project.current_stage.value] = bucket
        return self.repository.persist(
            project.id, project.current_stage, stage_data,
            expected_stage=project.current_stage, expected_version=project.version,
        )

    def create_project(self, scoping_form_id: int) -> ProjectState:
        project = self.repository.create_project(scoping_form_id)
        logger.info("Production project %s created for scoping form %s", project.id, scoping_form_id)
        return project

    def stage_summary(self) -> list[dict]:
        """Project count per stage, in stage order (stages with no projects included)."""
        counts = self.repository.count_by_stage()
        return [
            {"stage": config.id.value, "label": config.label, "count": counts.get(config.id.value, 0)}
            for config in STAGE_CONFIGS
        ]
