"""
Exclusion Registry Tests
========================
"""

from pathlib import Path

import pytest

from hidezone.errors import SchemaError
from hidezone.exclusions import ExclusionRegistry, PointOfInterest, empty_view


REGISTRY_PATH = Path(__file__).parent.parent / "data" / "exclusions" / "dc_metro.json"


@pytest.fixture
def dc_registry():
    return ExclusionRegistry.load_from_file(str(REGISTRY_PATH))


class TestLoading:
    def test_load_bundled_table(self, dc_registry):
        assert dc_registry.region_id == "washington_dc"
        assert len(dc_registry) == 19
        assert dc_registry.view().categories() == frozenset({"metro_station", "airport"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ExclusionRegistry.load_from_file(str(tmp_path / "missing.json"))

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"region_id": "x", "points": [{"id": "a", "category": "airport", "lat": 95, "lng": 0}]}')

        with pytest.raises(SchemaError) as exc_info:
            ExclusionRegistry.load_from_file(str(path))
        assert "points.0.lat" in exc_info.value.fields

    def test_duplicate_ids(self):
        point = PointOfInterest(id="a", category="airport", lat=0, lng=0)
        with pytest.raises(SchemaError):
            ExclusionRegistry([point, point])


class TestDisabledOverlay:
    def test_disable_and_enable(self, dc_registry):
        dc_registry.disable("metro_a01")
        assert dc_registry.disabled == frozenset({"metro_a01"})
        assert dc_registry.version == 1

        dc_registry.enable("metro_a01")
        assert dc_registry.disabled == frozenset()
        assert dc_registry.version == 2

    def test_repeated_disable_keeps_version(self, dc_registry):
        dc_registry.disable("metro_a01")
        dc_registry.disable("metro_a01")
        assert dc_registry.version == 1

    def test_unknown_id(self, dc_registry):
        with pytest.raises(SchemaError):
            dc_registry.disable("metro_z99")

    def test_table_is_untouched(self, dc_registry):
        dc_registry.disable("airport_dca")
        assert dc_registry.get("airport_dca") is not None

    def test_set_disabled(self, dc_registry):
        dc_registry.set_disabled(["airport_iad", "airport_bwi"])
        assert dc_registry.disabled == frozenset({"airport_iad", "airport_bwi"})
        assert dc_registry.version == 1


class TestViews:
    def test_view_is_frozen_copy(self, registry):
        view = registry.view()
        registry.disable("st_nw")

        assert "st_nw" not in view.disabled
        assert "st_nw" in registry.view().disabled

    def test_explicit_overlay(self, registry):
        registry.disable("st_nw")
        view = registry.view(["st_se"])
        assert view.disabled == frozenset({"st_se"})

    def test_explicit_overlay_unknown_id(self, registry):
        with pytest.raises(SchemaError):
            registry.view(["nope"])

    def test_enabled_filters_and_sorts(self, registry):
        view = registry.view({"st_ne"})

        assert [p.id for p in view.enabled("metro_station")] == ["st_nw", "st_se", "st_sw"]
        assert [p.id for p in view.enabled("airport")] == ["ap_far"]
        assert len(view.enabled()) == 4

    def test_fingerprint_tracks_overlay(self, registry):
        before = registry.view().fingerprint()
        registry.disable("st_nw")

        assert registry.view().fingerprint() != before
        assert registry.view([]).fingerprint() == before

    def test_empty_view(self):
        assert empty_view().enabled() == []
        assert not empty_view().has_category("metro_station")
