"""
Tests for the prefill business derivations (backend/production/transforms.py).
"""

from backend.production.mappings import PREFILL_MAPPINGS
from backend.production.snapshot import AreaToggle, resolve_source
from backend.production.transforms import (
    ACTUAL_OR_SCOPED_SF,
    cad_bim_to_formats,
    calc_est_scans,
    calc_project_tier,
    disciplines_to_array,
    estimate_scans,
    geo_ref_tier_to_boolean,
    georef_to_tier,
    prefer_actual_sf,
    project_tier,
    scope_to_checkbox_array,
    toggle_sqft_to_boolean,
)


class TestScopeToCheckboxArray:
    def test_full(self, snapshot):
        assert scope_to_checkbox_array("Full", snapshot(), {}) == ["Interior", "Exterior"]

    def test_interior_only(self, snapshot):
        assert scope_to_checkbox_array("Int Only", snapshot(), {}) == ["Interior"]

    def test_exterior_only(self, snapshot):
        assert scope_to_checkbox_array("Ext Only", snapshot(), {}) == ["Exterior"]

    def test_mixed(self, snapshot):
        assert scope_to_checkbox_array("Mixed", snapshot(), {}) == ["Interior", "Exterior", "Mixed"]

    def test_unknown_value_passes_through(self, snapshot):
        assert scope_to_checkbox_array("Roof", snapshot(), {}) == ["Roof"]

    def test_blank_scope_gives_nothing(self, snapshot):
        assert scope_to_checkbox_array("", snapshot(), {}) is None


class TestToggleSqftToBoolean:
    def test_enabled_toggle(self, snapshot):
        assert toggle_sqft_to_boolean(AreaToggle(enabled=True, sqft=1000), snapshot(), {}) is True

    def test_disabled_toggle(self, snapshot):
        assert toggle_sqft_to_boolean(AreaToggle(enabled=False), snapshot(), {}) is False

    def test_stored_dict(self, snapshot):
        assert toggle_sqft_to_boolean({"enabled": True}, snapshot(), {}) is True

    def test_missing_toggle_is_false(self, snapshot):
        assert toggle_sqft_to_boolean(None, snapshot(), {}) is False


class TestGeoref:
    def test_on_is_tier_20(self, snapshot):
        assert georef_to_tier(True, snapshot(), {}) == "Tier-20"

    def test_off_is_tier_0(self, snapshot):
        assert georef_to_tier(False, snapshot(), {}) == "Tier-0"
        assert georef_to_tier(None, snapshot(), {}) == "Tier-0"

    def test_tier_to_boolean(self, snapshot):
        assert geo_ref_tier_to_boolean("Tier-20", snapshot(), {}) is True
        assert geo_ref_tier_to_boolean("Tier-60", snapshot(), {}) is True
        assert geo_ref_tier_to_boolean("Tier-0", snapshot(), {}) is False

    def test_tier_to_boolean_without_tier(self, snapshot):
        assert geo_ref_tier_to_boolean(None, snapshot(), {}) is None


class TestDisciplinesToArray:
    def test_both_enabled(self, snapshot):
        value = [AreaToggle(enabled=True), AreaToggle(enabled=True)]
        assert disciplines_to_array(value, snapshot(), {}) == ["Architecture", "Structural", "MEPF"]

    def test_structural_only(self, snapshot):
        value = [{"enabled": True}, {"enabled": False}]
        assert disciplines_to_array(value, snapshot(), {}) == ["Architecture", "Structural"]

    def test_neither(self, snapshot):
        assert disciplines_to_array([None, None], snapshot(), {}) == ["Architecture"]


class TestCadBimToFormats:
    def test_bim_and_cad(self, snapshot):
        assert cad_bim_to_formats(["AutoCAD", "Revit"], snapshot(), {}) == ["Revit", "CAD (AutoCAD)"]

    def test_bim_only(self, snapshot):
        assert cad_bim_to_formats(["No", "Revit"], snapshot(), {}) == ["Revit"]

    def test_other_bim_ignored(self, snapshot):
        assert cad_bim_to_formats(["AutoCAD", "Other"], snapshot(), {}) == ["CAD (AutoCAD)"]


class TestScanEstimate:
    def test_standard_density_25k(self, snapshot):
        # ceil(8 * 25000 / 1000)
        assert calc_est_scans(snapshot(room_density=2), {}) == 200

    def test_wide_open_10k(self, snapshot, area):
        snap = snapshot(room_density=0, areas=[area(square_footage=10000)])
        assert calc_est_scans(snap, {}) == 30

    def test_extreme_5k(self, snapshot, area):
        snap = snapshot(room_density=4, areas=[area(square_footage=5000)])
        assert calc_est_scans(snap, {}) == 90

    def test_fixed_inputs_fixed_output(self):
        # 22,000 SF at Standard density → ceil(8 * 22) = 176, every time
        assert [estimate_scans(22000, 2) for _ in range(3)] == [176, 176, 176]

    def test_missing_density_uses_default(self):
        assert estimate_scans(22000, None) == 176

    def test_rounds_up(self):
        assert estimate_scans(1001, 1) == 6  # 5.005 → 6


class TestProjectTier:
    def test_whale(self):
        assert project_tier(50000) == "Whale"
        assert project_tier(100000) == "Whale"

    def test_dolphin(self):
        assert project_tier(10000) == "Dolphin"
        assert project_tier(25000) == "Dolphin"

    def test_minnow(self):
        assert project_tier(5000) == "Minnow"
        assert project_tier(0) == "Minnow"
        assert project_tier(None) == "Minnow"

    def test_calc_uses_total_scoped_sf(self, snapshot, area):
        snap = snapshot(areas=[area(square_footage=30000), area(square_footage=25000)])
        assert calc_project_tier(snap, {}) == "Whale"


class TestPreferActualSF:
    def test_actual_from_bim_qc(self, snapshot):
        assert prefer_actual_sf(snapshot(), {"bim_qc": {"actualSF": 24500}}) == 24500

    def test_falls_back_to_scoped_sf(self, snapshot):
        assert prefer_actual_sf(snapshot(), {"bim_qc": {"actualSF": None}}) == 25000
        assert prefer_actual_sf(snapshot(), {}) == 25000

    def test_blank_actual_falls_back(self, snapshot):
        assert prefer_actual_sf(snapshot(), {"bim_qc": {"actualSF": ""}}) == 25000

    def test_reads_declared_source(self, snapshot, area):
        """PD-04 / DR-04 declare BQ-04|SF-03; the calculation resolves exactly that."""
        history = {"bim_qc": {"actualSF": 18000}}
        snap = snapshot(areas=[area(square_footage=40000)])
        assert ACTUAL_OR_SCOPED_SF == "BQ-04|SF-03"
        assert prefer_actual_sf(snap, history) == resolve_source(
            ACTUAL_OR_SCOPED_SF, snap, history, "bim_qc",
        ) == 18000
        assert prefer_actual_sf(snap, {}) == 40000

    def test_mappings_use_the_same_source(self):
        sources = {m.target_id: m.source_id for m in PREFILL_MAPPINGS if m.transform_key == "preferActualSF"}
        assert sources == {"PD-04": ACTUAL_OR_SCOPED_SF, "DR-04": ACTUAL_OR_SCOPED_SF}
