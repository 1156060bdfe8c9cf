"""
Region Engine Tests
===================

Fold semantics, invariants, memoization and pass scheduling.
"""

import asyncio
import threading
import time

import pytest
from shapely.geometry import MultiPolygon, box

from conftest import make_question
from hidezone.boundary.cache import BoundaryQueryKey, ResultCache
from hidezone.engine import (
    GameSnapshot,
    RegionEngine,
    build_snapshot,
    export_game,
    import_game,
    parse_game,
)
from hidezone.errors import GeometryError, SchemaError
from hidezone.geometry.primitives import area, contains_point, difference, intersect, union
from hidezone.models.geometry import LatLng, Units
from hidezone.models.questions import answer_question
from hidezone.models.reason_codes import DerivationStatus


SLIVER = 1e-8


def two_far_discs():
    """Two 1 mile discs about 3.7 miles apart, both answered 'within'."""
    west = make_question(0, "radius", lat=38.9, lng=-77.0647, radius=1, within=True)
    east = make_question(1, "radius", lat=38.9, lng=-76.9953, radius=1, within=True)
    return west, east


def slow_passes(engine, seconds):
    """Make every pass take `seconds`; returns the in-flight count seen at each start."""
    derive = engine.derive
    lock = threading.Lock()
    active = [0]
    peak = []

    def slow_derive(snapshot):
        with lock:
            active[0] += 1
            peak.append(active[0])
        try:
            time.sleep(seconds)
            return derive(snapshot)
        finally:
            with lock:
                active[0] -= 1

    engine.derive = slow_derive
    return peak


class TestFold:
    """Core derivation semantics."""

    def test_no_questions_yields_base(self, engine, snapshot_for, square):
        snapshot = snapshot_for()
        result = engine.derive(snapshot)

        assert result.status is DerivationStatus.OK
        assert result.feasible.equals(snapshot.base)
        assert result.empty_at is None

    def test_unanswered_question_is_noop(self, engine, snapshot_for, square, radius_question):
        unanswered = answer_question(radius_question, None)
        snapshot = snapshot_for([unanswered])
        result = engine.derive(snapshot)

        assert result.feasible.equals(snapshot.base)

    def test_disc_scenario(self, engine, snapshot_for, radius_question):
        result = engine.derive(snapshot_for([radius_question]))

        assert result.status is DerivationStatus.OK
        assert area(result.feasible, Units.MILES) == pytest.approx(28.27, rel=0.01)

    def test_feasible_is_subset_of_base(self, engine, snapshot_for, square):
        questions = [
            make_question(0, "radius", lat=38.95, lng=-77.1, radius=6, within=True),
            make_question(1, "thermometer", lat_a=38.9, lng_a=-77.06, lat_b=38.9, lng_b=-77.0, warmer=False),
        ]
        result = engine.derive(snapshot_for(questions))

        assert difference(result.feasible, square).area == pytest.approx(0.0, abs=SLIVER)

    def test_monotonic_narrowing(self, engine, snapshot_for, radius_question):
        thermometer = make_question(
            1, "thermometer", lat_a=38.9, lng_a=-77.06, lat_b=38.9, lng_b=-77.0, warmer=True,
        )
        one = engine.derive(snapshot_for([radius_question]))
        two = engine.derive(snapshot_for([radius_question, thermometer]))

        assert area(two.feasible) <= area(one.feasible)
        assert area(two.feasible) == pytest.approx(area(one.feasible) / 2, rel=0.02)

    def test_idempotence(self, engine, snapshot_for, radius_question):
        repeat = radius_question.model_copy(update={"key": 1})
        once = engine.derive(snapshot_for([radius_question]))
        twice = engine.derive(snapshot_for([radius_question, repeat]))

        assert area(twice.feasible) == pytest.approx(area(once.feasible), rel=1e-6)

    def test_mask_complement(self, engine, snapshot_for, radius_question):
        result = engine.derive(snapshot_for([radius_question]))
        frame = box(-78.0, 38.0, -76.0, 40.0)

        assert intersect(result.mask, result.feasible).area == pytest.approx(0.0, abs=SLIVER)
        assert union(result.mask, result.feasible).area == pytest.approx(frame.area, rel=1e-9)

    def test_empty_region_records_first_key(self, engine, snapshot_for):
        west, east = two_far_discs()
        result = engine.derive(snapshot_for([west, east]))

        assert result.status is DerivationStatus.EMPTY
        assert result.feasible.is_empty
        assert result.empty_at == 1
        assert result.mask.equals(engine.outer_frame)

    def test_empty_at_follows_question_order(self, engine, snapshot_for):
        west, east = two_far_discs()
        result = engine.derive(snapshot_for([east, west]))
        assert result.empty_at == 0

    def test_validation_continues_after_empty(self, engine, snapshot_for):
        west, east = two_far_discs()
        bad = make_question(2, "matching", lat=38.9, lng=-77.03, category="library", same=True)
        result = engine.derive(snapshot_for([west, east, bad]))

        assert result.status is DerivationStatus.FAILED
        assert result.error.question_key == 2


class TestFailures:
    """Errors come back as values carrying the offending key."""

    def test_all_stations_disabled(self, engine, snapshot_for):
        matching = make_question(5, "matching", lat=38.9, lng=-77.03, category="metro_station", same=True)
        result = engine.derive(snapshot_for([matching], disabled={"st_nw", "st_ne", "st_sw", "st_se"}))

        assert result.status is DerivationStatus.FAILED
        assert isinstance(result.error, GeometryError)
        assert result.error.question_key == 5
        assert result.feasible is None

    def test_unknown_category(self, engine, snapshot_for):
        q = make_question(7, "measuring", lat=38.9, lng=-77.03, category="library", hider_closer=True)
        result = engine.derive(snapshot_for([q]))
        output = result.to_output()

        assert output.status is DerivationStatus.FAILED
        assert output.error.code == "SCHEMA_ERROR"
        assert output.error.question_key == 7
        assert output.error.fields == ["data.category"]


class TestPlanningAndZones:
    """Planning-mode previews and hiding zones."""

    def test_draft_is_previewed_not_folded(self, engine, snapshot_for, square):
        draft = make_question(
            0, "radius", finalized=False, lat=38.9, lng=-77.03, radius=3, within=True,
        )
        snapshot = snapshot_for([draft], planning_mode=True)
        result = engine.derive(snapshot)

        assert result.feasible.equals(snapshot.base)
        assert area(result.previews[0], Units.MILES) == pytest.approx(28.27, rel=0.01)

    def test_draft_folded_outside_planning_mode(self, engine, snapshot_for):
        draft = make_question(
            0, "radius", finalized=False, lat=38.9, lng=-77.03, radius=3, within=True,
        )
        result = engine.derive(snapshot_for([draft]))

        assert result.previews == {}
        assert area(result.feasible, Units.MILES) == pytest.approx(28.27, rel=0.01)

    def test_hiding_zones_inside_feasible(self, engine, snapshot_for, radius_question):
        result = engine.derive(snapshot_for(
            [radius_question],
            hiding_radius=0.5,
            hiding_radius_units=Units.MILES,
            hiding_categories=("metro_station",),
        ))

        assert not result.hiding_zones.is_empty
        assert difference(result.hiding_zones, result.feasible).area == pytest.approx(0.0, abs=SLIVER)
        assert contains_point(result.hiding_zones, LatLng(lat=38.93, lng=-77.06))

    def test_no_hiding_radius(self, engine, snapshot_for):
        assert engine.derive(snapshot_for()).hiding_zones is None


class TestMemoization:
    """Fingerprint cache and wholesale invalidation."""

    def test_same_snapshot_hits_cache(self, engine, snapshot_for, radius_question):
        first = engine.derive(snapshot_for([radius_question]))
        second = engine.derive(snapshot_for([radius_question]))

        assert second is first
        assert engine.get_metrics()["cache_hits"] == 1

    def test_exclusion_change_drops_region_entries(self, engine, snapshot_for, radius_question):
        engine.derive(snapshot_for([radius_question]))
        engine.derive(snapshot_for([]))
        assert len(engine.cache) == 2

        engine.derive(snapshot_for([radius_question], disabled={"st_nw"}))
        assert len(engine.cache) == 1

    def test_fingerprint_covers_order(self, snapshot_for):
        west, east = two_far_discs()
        assert snapshot_for([west, east]).fingerprint() != snapshot_for([east, west]).fingerprint()

    def test_boundary_entries_survive(self, snapshot_for, radius_question):
        cache = ResultCache(max_entries=8, name="shared")
        cache.put(BoundaryQueryKey.normalized("Washington DC"), "polygon")
        engine = RegionEngine(cache)

        engine.derive(snapshot_for([radius_question]))
        engine.derive(snapshot_for([radius_question], disabled={"st_nw"}))

        assert cache.lookup(BoundaryQueryKey.normalized("washington dc")) == "polygon"


class TestScheduling:
    """One pass at a time; coalesce or reject."""

    def test_coalesce_shares_newest_result(self, snapshot_for, radius_question):
        engine = RegionEngine(ResultCache(max_entries=8), busy_policy="coalesce")
        west, east = two_far_discs()

        async def run():
            return await asyncio.gather(
                engine.submit(snapshot_for([radius_question])),
                engine.submit(snapshot_for([west])),
                engine.submit(snapshot_for([west, east])),
            )

        first, second, third = asyncio.run(run())

        assert first.status is DerivationStatus.OK
        assert second is third
        assert third.status is DerivationStatus.EMPTY
        assert engine.get_metrics()["coalesced"] == 1
        assert not engine.busy

    def test_reject_while_busy(self, snapshot_for, radius_question):
        engine = RegionEngine(ResultCache(max_entries=8), busy_policy="reject")

        async def run():
            return await asyncio.gather(
                engine.submit(snapshot_for([radius_question])),
                engine.submit(snapshot_for([])),
            )

        first, second = asyncio.run(run())

        assert first.status is DerivationStatus.OK
        assert second.status is DerivationStatus.BUSY
        assert second.to_output().feasible_region is None

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            RegionEngine(ResultCache(), busy_policy="queue")

    def test_cancelled_caller_keeps_engine_busy(self, snapshot_for, radius_question):
        engine = RegionEngine(ResultCache(max_entries=8), busy_policy="coalesce")
        peak = slow_passes(engine, seconds=0.2)

        async def run():
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(engine.submit(snapshot_for([radius_question])), 0.05)
            busy_after_cancel = engine.busy
            second = await engine.submit(snapshot_for([]))
            return busy_after_cancel, second

        busy_after_cancel, second = asyncio.run(run())

        assert busy_after_cancel
        assert second.status is DerivationStatus.OK
        assert max(peak) == 1

    def test_cancelled_waiter_leaves_others_waiting(self, snapshot_for, radius_question):
        engine = RegionEngine(ResultCache(max_entries=8), busy_policy="coalesce")
        slow_passes(engine, seconds=0.2)
        west, east = two_far_discs()

        async def run():
            first = asyncio.ensure_future(engine.submit(snapshot_for([radius_question])))
            await asyncio.sleep(0)
            w1 = asyncio.ensure_future(engine.submit(snapshot_for([west])))
            w2 = asyncio.ensure_future(engine.submit(snapshot_for([west, east])))
            await asyncio.sleep(0.05)
            w1.cancel()
            results = await asyncio.gather(first, w2)
            return results, w1.cancelled()

        (first, second), w1_cancelled = asyncio.run(run())

        assert w1_cancelled
        assert first.status is DerivationStatus.OK
        assert second.status is DerivationStatus.EMPTY


class TestHiderMode:
    def test_hiderify_answers_everything(self, engine, registry, radius_question):
        unanswered = [
            answer_question(radius_question, None),
            make_question(1, "matching", lat=38.929, lng=-77.059, category="metro_station"),
        ]
        answered = engine.hiderify(unanswered, LatLng(lat=38.88, lng=-77.01), registry.view())

        assert [q.answer for q in answered] == [True, False]

    def test_hiderify_reports_key(self, engine, registry):
        q = make_question(4, "measuring", lat=38.9, lng=-77.03, category="metro_station")
        view = registry.view({"st_nw", "st_ne", "st_sw", "st_se"})

        with pytest.raises(GeometryError) as exc_info:
            engine.hiderify([q], LatLng(lat=38.9, lng=-77.03), view)
        assert exc_info.value.question_key == 4


class TestGamePayload:
    """Snapshot building and the clipboard game export."""

    def test_build_snapshot_uses_fallback_base(self, square, registry, radius_question):
        game = parse_game({"questions": [radius_question.model_dump(mode="json")]})
        snapshot = build_snapshot(game, registry, fallback_base=square)

        assert snapshot.questions == (radius_question,)
        assert snapshot.base.symmetric_difference(square).area == pytest.approx(0.0, abs=SLIVER)

    def test_build_snapshot_without_base(self, registry):
        with pytest.raises(GeometryError):
            build_snapshot(parse_game({}), registry)

    def test_unknown_disabled_station(self, square, registry):
        with pytest.raises(SchemaError) as exc_info:
            build_snapshot(parse_game({"disabled_stations": ["nope"]}), registry, fallback_base=square)
        assert exc_info.value.fields == ["disabled_stations"]

    def test_export_then_import(self, square, registry, radius_question):
        snapshot = GameSnapshot.create(
            square, [radius_question], registry.view({"st_se"}), hiding_radius=0.5,
        )
        game = import_game(export_game(snapshot))

        assert game.disabled_stations == ["st_se"]
        assert game.hiding_radius == 0.5
        restored = build_snapshot(game, registry)
        assert restored.questions == snapshot.questions
        assert restored.exclusions_fingerprint() == snapshot.exclusions_fingerprint()
        assert restored.base.symmetric_difference(snapshot.base).area == pytest.approx(0.0, abs=SLIVER)

    def test_empty_base_rejected(self):
        with pytest.raises(GeometryError):
            GameSnapshot.create(MultiPolygon())
