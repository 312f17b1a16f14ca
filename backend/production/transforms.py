"""
Business-logic derivations for the production prefill cascade.

Pure functions — no DB, no I/O. Registered into a TransformRegistry by
build_default_registry(); the mapping table refers to them by key.
"""

import math

from ..config import settings
from .registry import DerivationKind, TransformRegistry
from .snapshot import ScopingSnapshot, is_empty, resolve_source
from .stages import ProductionStage

# Scan positions per 1,000 SF by room density (SF-42)
SCANS_PER_KSF = {
    0: 3,   # Wide Open
    1: 5,   # Spacious
    2: 8,   # Standard
    3: 12,  # Dense
    4: 18,  # Extreme
}

# Project tier thresholds (total SF)
WHALE_MIN_SF = 50000
DOLPHIN_MIN_SF = 10000

GEOREF_TIERS_ON = ("Tier-20", "Tier-60")

# Actual SF measured in BIM QC, else total scoped SF
ACTUAL_OR_SCOPED_SF = "BQ-04|SF-03"


def _toggle_enabled(toggle) -> bool:
    """Y/N+sqft toggle → enabled flag. Accepts AreaToggle, a stored dict, or None."""
    if toggle is None:
        return False
    if isinstance(toggle, dict):
        return bool(toggle.get("enabled", False))
    if hasattr(toggle, "enabled"):
        return bool(toggle.enabled)
    return bool(toggle)


# --- Transforms: fn(value, snapshot, history) ---

def scope_to_checkbox_array(value, snapshot: ScopingSnapshot, history: dict):
    """FC-07: scope dropdown → checkbox array."""
    if is_empty(value):
        return None
    if value == "Full":
        return ["Interior", "Exterior"]
    if value == "Int Only":
        return ["Interior"]
    if value == "Ext Only":
        return ["Exterior"]
    if value == "Mixed":
        return ["Interior", "Exterior", "Mixed"]
    return [value]


def toggle_sqft_to_boolean(value, snapshot: ScopingSnapshot, history: dict) -> bool:
    """FC-35, FC-36: {enabled, sqft} → Y/N. A missing toggle means not present."""
    return _toggle_enabled(value)


def georef_to_tier(value, snapshot: ScopingSnapshot, history: dict) -> str:
    """RG-13: georeferencing toggle → tier string."""
    if value is True:
        return "Tier-20"
    if value is False or value is None:
        return "Tier-0"
    return str(value)


def geo_ref_tier_to_boolean(value, snapshot: ScopingSnapshot, history: dict):
    """BQ-11: Tier-20 / Tier-60 → True, anything else → False."""
    if is_empty(value):
        return None
    return str(value) in GEOREF_TIERS_ON


def disciplines_to_array(value, snapshot: ScopingSnapshot, history: dict) -> list[str]:
    """BQ-14: [structural toggle, MEPF toggle] → discipline checklist."""
    structural, mepf = value
    disciplines = ["Architecture"]  # always modeled
    if _toggle_enabled(structural):
        disciplines.append("Structural")
    if _toggle_enabled(mepf):
        disciplines.append("MEPF")
    return disciplines


def cad_bim_to_formats(value, snapshot: ScopingSnapshot, history: dict) -> list[str]:
    """DR-11: [CAD deliverable, BIM platform] → delivery format list."""
    cad, bim = value
    formats = []
    if bim and bim != "Other":
        formats.append(bim)
    if cad and cad != "No":
        formats.append(f"CAD ({cad})")
    return formats


# --- Calculations: fn(snapshot, history) ---

def estimate_scans(total_sf: float, density) -> int:
    """Scan positions = ceil(ScansPerKSF × SF / 1000)."""
    if density is None:
        density = settings.DEFAULT_ROOM_DENSITY
    scans_per_ksf = SCANS_PER_KSF.get(density, SCANS_PER_KSF[2])
    return math.ceil((scans_per_ksf * total_sf) / 1000)


def project_tier(sf) -> str:
    """<10K = Minnow, 10K-50K = Dolphin, ≥50K = Whale."""
    try:
        sf = float(sf or 0)
    except (TypeError, ValueError):
        sf = 0.0
    if sf >= WHALE_MIN_SF:
        return "Whale"
    if sf >= DOLPHIN_MIN_SF:
        return "Dolphin"
    return "Minnow"


def calc_est_scans(snapshot: ScopingSnapshot, history: dict) -> int:
    """FC-09: estimated scan count from total SF and room density."""
    return estimate_scans(snapshot.total_sf, snapshot.room_density)


def calc_project_tier(snapshot: ScopingSnapshot, history: dict) -> str:
    """PD-09, DR-09: size tier from total scoped SF."""
    return project_tier(snapshot.total_sf)


def prefer_actual_sf(snapshot: ScopingSnapshot, history: dict) -> float:
    """PD-04, DR-04: actual SF measured in BIM QC (BQ-04) when present, else scoped SF."""
    # BQ-04 lives in the bim_qc bucket, so read history through bim_qc for both PD-04 and DR-04
    return resolve_source(ACTUAL_OR_SCOPED_SF, snapshot, history, ProductionStage.BIM_QC)


def build_default_registry() -> TransformRegistry:
    """Registry with every derivation the production mapping table uses."""
    registry = TransformRegistry()
    registry.register("scopeToCheckboxArray", scope_to_checkbox_array)
    registry.register("toggleSqftToBoolean", toggle_sqft_to_boolean)
    registry.register("georefToTier", georef_to_tier)
    registry.register("geoRefTierToBoolean", geo_ref_tier_to_boolean)
    registry.register("disciplinesToArray", disciplines_to_array)
    registry.register("cadBimToFormats", cad_bim_to_formats)
    registry.register("calcEstScans", calc_est_scans, DerivationKind.CALCULATION)
    registry.register("calcProjectTier", calc_project_tier, DerivationKind.CALCULATION)
    registry.register("preferActualSF", prefer_actual_sf, DerivationKind.CALCULATION)
    return registry
