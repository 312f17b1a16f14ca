"""
Prefill mapping table — 49 declarative mappings across the 5 stage transitions.

Each mapping says how ONE destination field of the next stage is derived.
The table is validated once when a MappingTable is built: duplicate targets,
non-adjacent transitions, unknown target fields, unresolvable sources and
unregistered derivation keys are all rejected up front.
"""

import enum
from collections import Counter
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import DuplicateMapping, InvalidTransition, MappingDefinitionError, UnknownTransformKey
from .registry import DerivationKind, TransformRegistry
from .snapshot import STAGE_SOURCES, check_source, is_snapshot_source, split_source
from .stages import ProductionStage, as_stage, is_adjacent, stage_field_keys
from .transforms import ACTUAL_OR_SCOPED_SF


class PrefillStrategy(str, enum.Enum):
    DIRECT = "direct"            # copy a scoping field as-is
    CHAIN = "chain"              # carry the latest value from an earlier stage (SSOT)
    TRANSFORM = "transform"      # reshape one source value via the registry
    CALCULATION = "calculation"  # derive from snapshot + history via the registry
    STATIC = "static"            # constant default
    MANUAL = "manual"            # operator fills it; never prefilled
    BLOCKED = "blocked"          # upstream field doesn't exist yet; never prefilled


Transition = tuple[ProductionStage, ProductionStage]


class PrefillMapping(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    target_id: str                  # e.g. "FC-01"
    target_field: str               # storage key in the destination bucket
    source_id: str                  # e.g. "SF-54", "FC-04", "SF-07+SF-08", "BQ-04|SF-03"
    transition: Transition
    strategy: PrefillStrategy
    description: str
    transform_key: Optional[str] = None
    static_value: Any = None

    @property
    def from_stage(self) -> ProductionStage:
        return self.transition[0]

    @property
    def to_stage(self) -> ProductionStage:
        return self.transition[1]

    @property
    def transition_key(self) -> str:
        return transition_key(*self.transition)


def transition_key(from_stage, to_stage) -> str:
    return f"{as_stage(from_stage).value}_to_{as_stage(to_stage).value}"


SCH_TO_FC = (ProductionStage.SCHEDULING, ProductionStage.FIELD_CAPTURE)
FC_TO_RG = (ProductionStage.FIELD_CAPTURE, ProductionStage.REGISTRATION)
RG_TO_BQ = (ProductionStage.REGISTRATION, ProductionStage.BIM_QC)
BQ_TO_PD = (ProductionStage.BIM_QC, ProductionStage.PC_DELIVERY)
PD_TO_DR = (ProductionStage.PC_DELIVERY, ProductionStage.FINAL_DELIVERY)


def _m(target_id, target_field, source_id, transition, strategy, description,
       transform_key=None, static_value=None) -> PrefillMapping:
    return PrefillMapping(
        target_id=target_id,
        target_field=target_field,
        source_id=source_id,
        transition=transition,
        strategy=strategy,
        description=description,
        transform_key=transform_key,
        static_value=static_value,
    )


S = PrefillStrategy

PREFILL_MAPPINGS: tuple[PrefillMapping, ...] = (
    # --- Scheduling → Field Capture (15) ---
    _m("FC-01", "projectCode",  "SF-54", SCH_TO_FC, S.DIRECT,      "Project Code (UPID)"),
    _m("FC-02", "address",      "SF-01", SCH_TO_FC, S.DIRECT,      "Project Address"),
    _m("FC-06", "estSF",        "SF-03", SCH_TO_FC, S.DIRECT,      "Estimated Square Footage"),
    _m("FC-07", "scope",        "SF-04", SCH_TO_FC, S.TRANSFORM,   "Scope (dropdown → checkbox array)", "scopeToCheckboxArray"),
    _m("FC-08", "floors",       "SF-31", SCH_TO_FC, S.DIRECT,      "Number of Floors"),
    _m("FC-09", "estScans",     "SF-03", SCH_TO_FC, S.CALCULATION, "Est. Scans (ScansPerKSF × SF/1000)", "calcEstScans"),
    _m("FC-18", "baseLocation", "SF-32", SCH_TO_FC, S.DIRECT,      "Base / Dispatch Location"),
    _m("FC-22", "era",          "SF-41", SCH_TO_FC, S.DIRECT,      "Era (Modern/Historic)"),
    _m("FC-23", "density",      "SF-42", SCH_TO_FC, S.DIRECT,      "Room Density (0-4)"),
    _m("FC-24", "buildingType", "SF-02", SCH_TO_FC, S.DIRECT,      "Building Type"),
    _m("FC-31", "scanDays",     "SF-48", SCH_TO_FC, S.DIRECT,      "Est. Scan Days (CEO)"),
    _m("FC-32", "numTechs",     "SF-49", SCH_TO_FC, S.DIRECT,      "# Techs Planned (CEO)"),
    _m("FC-33", "pricingTier",  "SF-45", SCH_TO_FC, S.DIRECT,      "Pricing Tier (CEO)"),
    _m("FC-35", "actPresent",   "SF-24", SCH_TO_FC, S.TRANSFORM,   "ACT Present (Y/N+sqft → Y/N)", "toggleSqftToBoolean"),
    _m("FC-36", "belowFloor",   "SF-44", SCH_TO_FC, S.TRANSFORM,   "Below Floor (Y/N+sqft → Y/N)", "toggleSqftToBoolean"),

    # --- Field Capture → Registration (12) ---
    _m("RG-01", "projectCode",  "SF-54", FC_TO_RG, S.CHAIN,     "Project Code (chain from SSOT)"),
    _m("RG-02", "projectName",  "SF-53", FC_TO_RG, S.CHAIN,     "Project Name (chain from SSOT)"),
    _m("RG-03", "estSF",        "SF-03", FC_TO_RG, S.CHAIN,     "Square Footage (chain)"),
    _m("RG-05", "fieldTech",    "FC-04", FC_TO_RG, S.CHAIN,     "Field Tech (from FC)"),
    _m("RG-06", "fieldDate",    "FC-03", FC_TO_RG, S.CHAIN,     "Field Date (from FC)"),
    _m("RG-08", "cloudLoA",     "",      FC_TO_RG, S.STATIC,    "Cloud LoA (default LoA-40)", static_value="LoA-40"),
    _m("RG-09", "modelLoD",     "SF-05", FC_TO_RG, S.DIRECT,    "Model LoD"),
    _m("RG-10", "platform",     "SF-11", FC_TO_RG, S.DIRECT,    "BIM Platform (Revit/ArchiCAD/etc)"),
    _m("RG-13", "geoRefTier",   "SF-09", FC_TO_RG, S.TRANSFORM, "GeoRef Tier (georef toggle → tier)", "georefToTier"),
    _m("RG-04", "scanCount",    "",      FC_TO_RG, S.MANUAL,    "Scan Count (manual, counted in studio)"),
    _m("RG-07", "software",     "",      FC_TO_RG, S.MANUAL,    "Registration Software (manual, operator choice)"),
    _m("RG-14", "fieldRMS",     "FC-13", FC_TO_RG, S.CHAIN,     "Field RMS (carried for verification)"),

    # --- Registration → BIM QC (7) ---
    _m("BQ-01", "projectName",     "SF-53",       RG_TO_BQ, S.CHAIN,     "Project Name (chain)"),
    _m("BQ-15", "projectCode",     "SF-54",       RG_TO_BQ, S.CHAIN,     "Project Code (chain)"),
    _m("BQ-03", "estSF",           "SF-03",       RG_TO_BQ, S.CHAIN,     "Estimated SF (chain)"),
    _m("BQ-11", "georeferenced",   "RG-13",       RG_TO_BQ, S.TRANSFORM, "Georeferenced (Tier 20/60 → Y, Tier 0 → N)", "geoRefTierToBoolean"),
    _m("BQ-12", "modelLoD",        "SF-05",       RG_TO_BQ, S.CHAIN,     "Model LoD (chain)"),
    _m("BQ-13", "revitVersion",    "SF-28",       RG_TO_BQ, S.DIRECT,    "Revit Version (if populated)"),
    _m("BQ-14", "scopeDiscipline", "SF-07+SF-08", RG_TO_BQ, S.TRANSFORM, "Scope Disciplines (Y/N → checkbox array)", "disciplinesToArray"),

    # --- BIM QC → PC Delivery (8) ---
    _m("PD-01", "projectCode",  "SF-54",       BQ_TO_PD, S.CHAIN,       "Project Code (chain)"),
    _m("PD-02", "client",       "SF-37",       BQ_TO_PD, S.CHAIN,       "Client Company (chain)"),
    _m("PD-03", "projectName",  "SF-53",       BQ_TO_PD, S.CHAIN,       "Project Name (chain)"),
    _m("PD-04", "deliverySF",   ACTUAL_OR_SCOPED_SF, BQ_TO_PD, S.CALCULATION, "SF (prefer actual BQ-04, fallback SF-03)", "preferActualSF"),
    _m("PD-09", "projectTier",  "SF-03",       BQ_TO_PD, S.CALCULATION, "Project Tier (<10K=Minnow, 10-50K=Dolphin, ≥50K=Whale)", "calcProjectTier"),
    _m("PD-10", "geoRefTier",   "RG-13",       BQ_TO_PD, S.CHAIN,       "GeoRef Tier (from Registration)"),
    _m("PD-12", "platform",     "RG-10",       BQ_TO_PD, S.CHAIN,       "BIM Platform (from Registration)"),
    _m("PD-11", "securityTier", "SF-60",       BQ_TO_PD, S.BLOCKED,     "Security Tier (SF-60 not built yet)"),

    # --- PC Delivery → Final Delivery (7) ---
    _m("DR-01", "projectCode",  "PD-01",       PD_TO_DR, S.CHAIN,       "Project Code (chain)"),
    _m("DR-02", "client",       "PD-02",       PD_TO_DR, S.CHAIN,       "Client (chain)"),
    _m("DR-03", "projectName",  "PD-03",       PD_TO_DR, S.CHAIN,       "Project Name (chain)"),
    _m("DR-04", "deliverySF",   ACTUAL_OR_SCOPED_SF, PD_TO_DR, S.CALCULATION, "SF (prefer actual BQ-04)", "preferActualSF"),
    _m("DR-09", "scopeTier",    "SF-03",       PD_TO_DR, S.CALCULATION, "Scope Tier (same calc as PD-09)", "calcProjectTier"),
    _m("DR-10", "disciplines",  "BQ-14",       PD_TO_DR, S.CHAIN,       "Disciplines (chain from BQ)"),
    _m("DR-11", "formats",      "SF-10+SF-11", PD_TO_DR, S.TRANSFORM,   "Formats (CAD+BIM → format list)", "cadBimToFormats"),
)

_DERIVED = {
    PrefillStrategy.TRANSFORM: DerivationKind.TRANSFORM,
    PrefillStrategy.CALCULATION: DerivationKind.CALCULATION,
}


class MappingTable:
    """Immutable, validated set of prefill mappings, queried per transition."""

    def __init__(self, mappings: Iterable[PrefillMapping], registry: TransformRegistry):
        self._mappings: tuple[PrefillMapping, ...] = tuple(mappings)
        self._validate(registry)
        self._by_transition: dict[Transition, tuple[PrefillMapping, ...]] = {}
        for mapping in self._mappings:
            bucket = self._by_transition.setdefault(mapping.transition, ())
            self._by_transition[mapping.transition] = bucket + (mapping,)

    def _validate(self, registry: TransformRegistry) -> None:
        seen: dict[tuple[Transition, str], PrefillMapping] = {}
        for mapping in self._mappings:
            from_stage, to_stage = mapping.transition
            if not is_adjacent(from_stage, to_stage):
                raise InvalidTransition(from_stage.value, to_stage.value)

            claim = (mapping.transition, mapping.target_field)
            if claim in seen:
                raise DuplicateMapping(
                    f"{mapping.target_id} and {seen[claim].target_id} both target "
                    f"{mapping.transition_key}.{mapping.target_field}"
                )
            seen[claim] = mapping

            if mapping.target_field not in stage_field_keys(to_stage):
                raise MappingDefinitionError(
                    f"{mapping.target_id}: {to_stage.value} has no field {mapping.target_field}"
                )
            self._validate_derivation(mapping, registry)

    def _validate_derivation(self, mapping: PrefillMapping, registry: TransformRegistry) -> None:
        strategy = mapping.strategy
        if strategy in _DERIVED:
            if not mapping.transform_key:
                raise UnknownTransformKey(None, f"{mapping.target_id} has no transform key")
            # raises UnknownTransformKey for missing keys or the wrong kind
            registry.get(mapping.transform_key, _DERIVED[strategy])
            if strategy == PrefillStrategy.TRANSFORM or mapping.source_id:
                check_source(mapping.source_id, mapping.from_stage)
        elif strategy == PrefillStrategy.DIRECT:
            if not is_snapshot_source(mapping.source_id) or split_source(mapping.source_id)[0]:
                raise MappingDefinitionError(
                    f"{mapping.target_id}: direct mappings copy a single scoping field, "
                    f"got {mapping.source_id!r}"
                )
        elif strategy == PrefillStrategy.CHAIN:
            if split_source(mapping.source_id)[0]:
                raise MappingDefinitionError(
                    f"{mapping.target_id}: chain source must be a single field, got {mapping.source_id!r}"
                )
            check_source(mapping.source_id, mapping.from_stage)
        elif strategy == PrefillStrategy.STATIC:
            if mapping.static_value is None:
                raise MappingDefinitionError(f"{mapping.target_id}: static mapping has no value")

    def mappings_for(self, from_stage, to_stage) -> tuple[PrefillMapping, ...]:
        """Mappings for one transition, in declaration order."""
        from_stage, to_stage = as_stage(from_stage), as_stage(to_stage)
        if not is_adjacent(from_stage, to_stage):
            raise InvalidTransition(from_stage.value, to_stage.value)
        return self._by_transition.get((from_stage, to_stage), ())

    def summary(self, from_stage, to_stage) -> dict:
        """Count mappings by strategy for a transition (for the UI preview header)."""
        mappings = self.mappings_for(from_stage, to_stage)
        counts = Counter(m.strategy.value for m in mappings)
        return {"total": len(mappings), "byType": dict(counts)}

    def all(self) -> tuple[PrefillMapping, ...]:
        return self._mappings

    def __len__(self) -> int:
        return len(self._mappings)

    def __iter__(self):
        return iter(self._mappings)


def chain_origin(mapping: PrefillMapping) -> tuple[str, Optional[str]]:
    """
    For a chain mapping: (storage key to look up in history, scoping fallback).
    A stage source names its own key; a scoping source chains the target key
    itself and falls back to the scoping field.
    """
    stage_source = STAGE_SOURCES.get(mapping.source_id)
    if stage_source is not None:
        return stage_source.field, stage_source.fallback
    return mapping.target_field, mapping.source_id
