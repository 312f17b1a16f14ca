"""
Stage Registry — the six production stages in strict order, plus the concrete
field set each stage stores.

Stage data is persisted as {stage: {fieldKey: value}} JSON. Keys are camelCase
(the shape the client reads); the per-stage pydantic models below name every
key a stage may hold so mapping targets and manual edits are checked against
the right stage.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import InvalidStage, InvalidStageUpdate


class ProductionStage(str, enum.Enum):
    SCHEDULING = "scheduling"
    FIELD_CAPTURE = "field_capture"
    REGISTRATION = "registration"
    BIM_QC = "bim_qc"
    PC_DELIVERY = "pc_delivery"
    FINAL_DELIVERY = "final_delivery"


@dataclass(frozen=True)
class StageConfig:
    id: ProductionStage
    label: str
    short_label: str  # prefix used by field IDs (FC-01, RG-13, ...)
    order: int


STAGE_CONFIGS: tuple[StageConfig, ...] = (
    StageConfig(ProductionStage.SCHEDULING, "Scheduling", "SCH", 0),
    StageConfig(ProductionStage.FIELD_CAPTURE, "Field Capture", "FC", 1),
    StageConfig(ProductionStage.REGISTRATION, "Registration", "RG", 2),
    StageConfig(ProductionStage.BIM_QC, "BIM QC", "BQ", 3),
    StageConfig(ProductionStage.PC_DELIVERY, "PC Delivery", "PD", 4),
    StageConfig(ProductionStage.FINAL_DELIVERY, "Final Delivery", "DR", 5),
)

_BY_ID = {c.id: c for c in STAGE_CONFIGS}


def as_stage(stage) -> ProductionStage:
    """Coerce a stage id string (or enum) to ProductionStage, or raise InvalidStage."""
    if isinstance(stage, ProductionStage):
        return stage
    try:
        return ProductionStage(stage)
    except ValueError:
        raise InvalidStage(
            f"Unknown production stage: {stage}. "
            f"Available: {[c.id.value for c in STAGE_CONFIGS]}"
        ) from None


def get_stage_config(stage) -> StageConfig:
    return _BY_ID[as_stage(stage)]


def stage_order(stage) -> int:
    return get_stage_config(stage).order


def next_stage(stage) -> Optional[ProductionStage]:
    """Successor of a stage, or None at final_delivery."""
    order = stage_order(stage)
    if order + 1 >= len(STAGE_CONFIGS):
        return None
    return STAGE_CONFIGS[order + 1].id


def is_adjacent(from_stage, to_stage) -> bool:
    """True only for (N, N+1). No skips, no regressions."""
    return next_stage(from_stage) == as_stage(to_stage)


def stages_through(stage) -> list[ProductionStage]:
    """All stages from scheduling up to and including `stage`, in order."""
    order = stage_order(stage)
    return [c.id for c in STAGE_CONFIGS[: order + 1]]


# --- Per-stage data shapes ---

class StageRecord(BaseModel):
    """Base for per-stage records. Every field is optional until someone fills it."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class SchedulingData(StageRecord):
    # Scheduling has no data of its own; it IS the scoping form
    pass


class FieldCaptureData(StageRecord):
    # Prefilled from scoping
    project_code: Optional[str] = None                          # FC-01
    address: Optional[str] = None                               # FC-02
    est_sf: Optional[float] = Field(None, alias="estSF")        # FC-06
    scope: Optional[list[str]] = None                           # FC-07
    floors: Optional[int] = None                                # FC-08
    est_scans: Optional[int] = None                             # FC-09
    base_location: Optional[str] = None                         # FC-18
    era: Optional[str] = None                                   # FC-22
    density: Optional[int] = None                               # FC-23
    building_type: Optional[str] = None                         # FC-24
    scan_days: Optional[float] = None                           # FC-31
    num_techs: Optional[int] = None                             # FC-32
    pricing_tier: Optional[str] = None                          # FC-33
    act_present: Optional[bool] = None                          # FC-35
    below_floor: Optional[bool] = None                          # FC-36

    # Tech fills on-site
    field_date: Optional[str] = None                            # FC-03
    field_tech: Optional[str] = None                            # FC-04
    scanner_sn: Optional[str] = Field(None, alias="scannerSN")  # FC-05
    rooms: Optional[int] = None                                 # FC-10
    hours_scanned: Optional[float] = None                       # FC-11
    hours_delayed: Optional[float] = None                       # FC-12
    field_rms: Optional[float] = Field(None, alias="fieldRMS")  # FC-13 (<=5mm hard gate)
    avg_overlap: Optional[float] = None                         # FC-14 (>=50% hard gate)
    field_sign_off: Optional[str] = None                        # FC-15
    hours_traveled: Optional[float] = None                      # FC-16
    miles_driven: Optional[float] = None                        # FC-17
    hotel_per_diem: Optional[float] = None                      # FC-19
    tolls_parking: Optional[float] = None                       # FC-20
    other_field_costs: Optional[float] = None                   # FC-21
    hrs_scanned_int: Optional[float] = None                     # FC-25
    hrs_scanned_ext: Optional[float] = None                     # FC-26
    hrs_scanned_landscape: Optional[float] = None               # FC-27
    scan_pts_int: Optional[int] = None                          # FC-28
    scan_pts_ext: Optional[int] = None                          # FC-29
    scan_pts_landscape: Optional[int] = None                    # FC-30
    actual_observed_sf: Optional[float] = Field(None, alias="actualObservedSF")  # FC-34
    site_conditions_confirmed: Optional[list[str]] = None       # FC-37
    scan_metrics_handoff: Optional[list[str]] = None            # FC-38


class RegistrationData(StageRecord):
    project_code: Optional[str] = None                          # RG-01
    project_name: Optional[str] = None                          # RG-02
    est_sf: Optional[float] = Field(None, alias="estSF")        # RG-03
    scan_count: Optional[int] = None                            # RG-04 (manual)
    field_tech: Optional[str] = None                            # RG-05
    field_date: Optional[str] = None                            # RG-06
    software: Optional[str] = None                              # RG-07 (manual)
    cloud_loa: Optional[str] = Field(None, alias="cloudLoA")    # RG-08
    model_lod: Optional[str] = Field(None, alias="modelLoD")    # RG-09
    platform: Optional[str] = None                              # RG-10
    geo_ref_tier: Optional[str] = None                          # RG-13
    field_rms: Optional[float] = Field(None, alias="fieldRMS")  # RG-14 (carried from FC-13)

    reg_tech: Optional[str] = None
    reg_date: Optional[str] = None
    reg_rms: Optional[float] = Field(None, alias="regRMS")
    reg_sign_off: Optional[str] = None


class BimQcData(StageRecord):
    project_name: Optional[str] = None                          # BQ-01
    est_sf: Optional[float] = Field(None, alias="estSF")        # BQ-03
    actual_sf: Optional[float] = Field(None, alias="actualSF")  # BQ-04
    georeferenced: Optional[bool] = None                        # BQ-11
    model_lod: Optional[str] = Field(None, alias="modelLoD")    # BQ-12
    revit_version: Optional[str] = None                         # BQ-13
    scope_discipline: Optional[list[str]] = None                # BQ-14
    project_code: Optional[str] = None                          # BQ-15

    qc_tech: Optional[str] = None
    qc_date: Optional[str] = None
    qc_status: Optional[str] = None  # Pass / Fail / Conditional
    qc_notes: Optional[str] = None


class PcDeliveryData(StageRecord):
    project_code: Optional[str] = None                          # PD-01
    client: Optional[str] = None                                # PD-02
    project_name: Optional[str] = None                          # PD-03
    delivery_sf: Optional[float] = Field(None, alias="deliverySF")  # PD-04
    project_tier: Optional[str] = None                          # PD-09
    geo_ref_tier: Optional[str] = None                          # PD-10
    security_tier: Optional[str] = None                         # PD-11 (blocked)
    platform: Optional[str] = None                              # PD-12

    delivery_date: Optional[str] = None
    delivered_by: Optional[str] = None
    delivery_notes: Optional[str] = None


class FinalDeliveryData(StageRecord):
    project_code: Optional[str] = None                          # DR-01
    client: Optional[str] = None                                # DR-02
    project_name: Optional[str] = None                          # DR-03
    delivery_sf: Optional[float] = Field(None, alias="deliverySF")  # DR-04
    scope_tier: Optional[str] = None                            # DR-09
    disciplines: Optional[list[str]] = None                     # DR-10
    formats: Optional[list[str]] = None                         # DR-11

    final_delivery_date: Optional[str] = None
    client_sign_off: Optional[str] = None
    final_notes: Optional[str] = None


STAGE_DATA_MODELS: dict[ProductionStage, type[StageRecord]] = {
    ProductionStage.SCHEDULING: SchedulingData,
    ProductionStage.FIELD_CAPTURE: FieldCaptureData,
    ProductionStage.REGISTRATION: RegistrationData,
    ProductionStage.BIM_QC: BimQcData,
    ProductionStage.PC_DELIVERY: PcDeliveryData,
    ProductionStage.FINAL_DELIVERY: FinalDeliveryData,
}


def stage_field_keys(stage) -> list[str]:
    """Storage keys (camelCase) a stage's bucket may hold."""
    model = STAGE_DATA_MODELS[as_stage(stage)]
    return [info.alias or name for name, info in model.model_fields.items()]


def validate_stage_updates(stage, updates: dict) -> dict:
    """
    Validate a manual edit against the stage's field set.
    Returns the updates keyed by storage key with values coerced to the field types.
    Raises InvalidStageUpdate on unknown keys or bad values.
    """
    stage = as_stage(stage)
    model = STAGE_DATA_MODELS[stage]
    try:
        record = model.model_validate(updates)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidStageUpdate(f"Invalid {stage.value} update: {problems}") from e
    return record.model_dump(by_alias=True, exclude_unset=True)
