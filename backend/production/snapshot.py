"""
Scoping snapshot + source field catalogue.

Source IDs name where a prefill value comes from:
- SF-xx: a scoping form field (read from the immutable ScopingSnapshot)
- FC-/RG-/BQ-/PD-xx: a field written into an earlier stage's bucket
- "A+B": composite — a list of each part's value
- "A|B": preference — A if it has a value, else B
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from .errors import MappingDefinitionError
from .stages import ProductionStage, as_stage, stage_order, stages_through


class AreaToggle(BaseModel):
    """Y/N + sqft scoping toggle (structural, MEPF, ACT, below floor)."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    sqft: Optional[float] = None


class ScopeAreaSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    area_type: Optional[str] = None
    square_footage: float = 0
    project_scope: Optional[str] = None
    lod: Optional[str] = None
    cad_deliverable: Optional[str] = None
    structural: Optional[AreaToggle] = None
    mepf: Optional[AreaToggle] = None
    act: Optional[AreaToggle] = None
    below_floor: Optional[AreaToggle] = None


class ScopingSnapshot(BaseModel):
    """Read-only view of a committed scoping form and its areas (in sort order)."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[int] = None
    upid: str
    project_name: str
    project_address: Optional[str] = None
    client_company: Optional[str] = None
    number_of_floors: Optional[int] = None
    dispatch_location: Optional[str] = None
    era: Optional[str] = None
    room_density: Optional[int] = None
    est_scan_days: Optional[float] = None
    techs_planned: Optional[int] = None
    pricing_tier: Optional[str] = None
    lod: Optional[str] = None
    bim_deliverable: Optional[str] = None
    bim_version: Optional[str] = None
    georeferencing: bool = False
    cad_deliverable: Optional[str] = None
    areas: tuple[ScopeAreaSnapshot, ...] = ()

    @property
    def first_area(self) -> Optional[ScopeAreaSnapshot]:
        return self.areas[0] if self.areas else None

    @property
    def total_sf(self) -> float:
        return sum(a.square_footage or 0 for a in self.areas)


def _first_area_attr(attr: str, fallback: Callable[[ScopingSnapshot], Any] = None):
    def read(s: ScopingSnapshot):
        area = s.first_area
        value = getattr(area, attr) if area is not None else None
        if value is None and fallback is not None:
            return fallback(s)
        return value
    return read


# SF-xx → reader over the snapshot. Area-level fields come from the first area;
# square footage is summed across all areas.
SNAPSHOT_SOURCES: dict[str, Callable[[ScopingSnapshot], Any]] = {
    "SF-01": lambda s: s.project_address,
    "SF-02": _first_area_attr("area_type"),
    "SF-03": lambda s: s.total_sf,
    "SF-04": _first_area_attr("project_scope"),
    "SF-05": _first_area_attr("lod", lambda s: s.lod),
    "SF-07": _first_area_attr("structural"),
    "SF-08": _first_area_attr("mepf"),
    "SF-09": lambda s: s.georeferencing,
    "SF-10": _first_area_attr("cad_deliverable", lambda s: s.cad_deliverable or "No"),
    "SF-11": lambda s: s.bim_deliverable,
    "SF-24": _first_area_attr("act"),
    "SF-28": lambda s: s.bim_version,
    "SF-31": lambda s: s.number_of_floors,
    "SF-32": lambda s: s.dispatch_location,
    "SF-37": lambda s: s.client_company,
    "SF-41": lambda s: s.era,
    "SF-42": lambda s: s.room_density,
    "SF-44": _first_area_attr("below_floor"),
    "SF-45": lambda s: s.pricing_tier,
    "SF-48": lambda s: s.est_scan_days,
    "SF-49": lambda s: s.techs_planned,
    "SF-53": lambda s: s.project_name,
    "SF-54": lambda s: s.upid,
    "SF-56": lambda s: s.georeferencing,
    "SF-60": lambda s: None,  # security tier: not on the scoping form yet
}


@dataclass(frozen=True)
class StageSource:
    """A field captured in a stage bucket, optionally backed by a scoping field."""
    stage: ProductionStage
    field: str
    fallback: Optional[str] = None  # SF-xx used when no stage holds a value


STAGE_SOURCES: dict[str, StageSource] = {
    "FC-03": StageSource(ProductionStage.FIELD_CAPTURE, "fieldDate"),
    "FC-04": StageSource(ProductionStage.FIELD_CAPTURE, "fieldTech"),
    "FC-13": StageSource(ProductionStage.FIELD_CAPTURE, "fieldRMS"),
    "RG-10": StageSource(ProductionStage.REGISTRATION, "platform", "SF-11"),
    "RG-13": StageSource(ProductionStage.REGISTRATION, "geoRefTier"),
    "BQ-04": StageSource(ProductionStage.BIM_QC, "actualSF"),
    "BQ-14": StageSource(ProductionStage.BIM_QC, "scopeDiscipline"),
    "PD-01": StageSource(ProductionStage.PC_DELIVERY, "projectCode", "SF-54"),
    "PD-02": StageSource(ProductionStage.PC_DELIVERY, "client", "SF-37"),
    "PD-03": StageSource(ProductionStage.PC_DELIVERY, "projectName", "SF-53"),
}


def is_empty(value) -> bool:
    """None, blank strings and empty collections count as 'not filled'."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple, dict)) and len(value) == 0:
        return True
    return False


def split_source(source_id: str) -> tuple[str, list[str]]:
    """Returns (operator, parts) where operator is '+', '|' or ''."""
    for op in ("+", "|"):
        if op in source_id:
            return op, [p.strip() for p in source_id.split(op)]
    return "", [source_id.strip()]


def is_snapshot_source(source_id: str) -> bool:
    op, parts = split_source(source_id)
    return all(p in SNAPSHOT_SOURCES for p in parts)


def check_source(source_id: str, through_stage) -> None:
    """
    Raise MappingDefinitionError if a source ID can't be resolved for a
    cascade leaving `through_stage`.
    """
    if not source_id:
        raise MappingDefinitionError("Empty source ID")
    _, parts = split_source(source_id)
    for part in parts:
        if part in SNAPSHOT_SOURCES:
            continue
        stage_source = STAGE_SOURCES.get(part)
        if stage_source is None:
            raise MappingDefinitionError(f"Unknown source field: {part}")
        if stage_order(stage_source.stage) > stage_order(through_stage):
            raise MappingDefinitionError(
                f"Source {part} is captured in {stage_source.stage.value}, "
                f"after {as_stage(through_stage).value}"
            )


def lookup_history(all_stage_data: dict, field: str, through_stage) -> Any:
    """
    Newest value of a storage key: scans stage buckets from `through_stage`
    back to scheduling and returns a copy of the first filled value, else None.
    """
    all_stage_data = all_stage_data or {}
    for stage in reversed(stages_through(through_stage)):
        bucket = all_stage_data.get(stage.value) or {}
        value = bucket.get(field)
        if not is_empty(value):
            return copy.deepcopy(value)
    return None


def read_snapshot(source_id: str, snapshot: ScopingSnapshot) -> Any:
    reader = SNAPSHOT_SOURCES.get(source_id)
    if reader is None:
        raise MappingDefinitionError(f"Unknown scoping field: {source_id}")
    return reader(snapshot)


def _resolve_one(source_id: str, snapshot: ScopingSnapshot, all_stage_data: dict, through_stage) -> Any:
    if source_id in SNAPSHOT_SOURCES:
        return read_snapshot(source_id, snapshot)
    stage_source = STAGE_SOURCES.get(source_id)
    if stage_source is None:
        raise MappingDefinitionError(f"Unknown source field: {source_id}")
    value = lookup_history(all_stage_data, stage_source.field, through_stage)
    if is_empty(value) and stage_source.fallback:
        value = read_snapshot(stage_source.fallback, snapshot)
    return value


def resolve_source(source_id: str, snapshot: ScopingSnapshot,
                   all_stage_data: dict, through_stage) -> Any:
    """Resolve a (possibly composite) source ID to its current value."""
    op, parts = split_source(source_id)
    if op == "+":
        return [_resolve_one(p, snapshot, all_stage_data, through_stage) for p in parts]
    if op == "|":
        for part in parts:
            value = _resolve_one(part, snapshot, all_stage_data, through_stage)
            if not is_empty(value):
                return value
        return None
    return _resolve_one(parts[0], snapshot, all_stage_data, through_stage)
