"""
Region Engine
=============

Derives the feasible region of a game snapshot.

LangGraph is used for CONTROL FLOW only: the pass is a fixed pipeline of
deterministic nodes with one early exit.

Graph Structure:
    START → fold ─┬─ (error) ──────────────────────→ END
                  └─ mask → hiding_zones → END

    fold:
        1. Validates every question, answered or not
        2. Skips unanswered questions
        3. In planning mode, turns drafts into previews without folding them
        4. Applies the rest in order, recording the first key that empties
           the region; once empty, keeps validating but stops geometric work
    mask:
        outer frame − feasible region
    hiding_zones:
        discs around enabled POIs, clipped to the feasible region

Design Rules:
    - SchemaError / GeometryError abort the pass and come back as a FAILED
      derivation carrying the offending question key, never as exceptions
    - Results are memoized by snapshot fingerprint; the memo is dropped
      wholesale when the base polygon or the exclusion view changes
    - At most one pass runs at a time; `submit` coalesces or rejects
      snapshots that arrive mid-pass
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypedDict

from langgraph.graph import END, StateGraph
from shapely.geometry import MultiPolygon, box

from hidezone.boundary.cache import RegionFingerprintKey, ResultCache
from hidezone.config import settings
from hidezone.engine.snapshot import GameSnapshot
from hidezone.errors import GeometryError, HideZoneError, SchemaError
from hidezone.evaluators import evaluator_for
from hidezone.exclusions.registry import ExclusionView, empty_view
from hidezone.geometry.geojson import to_feature_collection
from hidezone.geometry.primitives import area, difference, intersect, within_any
from hidezone.models.geometry import LatLng, Units
from hidezone.models.output import DerivationError, DerivationOutput
from hidezone.models.questions import Question
from hidezone.models.reason_codes import BusyPolicy, DerivationStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionDerivation:
    """
    Result of one derivation pass.

    Attributes:
        status: OK, EMPTY, FAILED or BUSY
        feasible: Feasible region (None unless OK or EMPTY)
        mask: Outer frame minus the feasible region
        empty_at: Key of the first question that emptied the region
        error: Abort reason when FAILED
        previews: Draft question key -> region it would yield
        hiding_zones: Hiding zones inside the feasible region
        duration_ms: Wall time of the pass
    """

    status: DerivationStatus
    feasible: Optional[MultiPolygon] = None
    mask: Optional[MultiPolygon] = None
    empty_at: Optional[int] = None
    error: Optional[HideZoneError] = None
    previews: Dict[int, MultiPolygon] = field(default_factory=dict)
    hiding_zones: Optional[MultiPolygon] = None
    duration_ms: float = 0.0

    @classmethod
    def failed(cls, error: HideZoneError) -> "RegionDerivation":
        return cls(status=DerivationStatus.FAILED, error=error)

    @classmethod
    def busy(cls) -> "RegionDerivation":
        return cls(status=DerivationStatus.BUSY)

    def to_output(self, units: Units = Units.MILES) -> DerivationOutput:
        """Serialize for the API, with areas in square `units`."""
        error = None
        if self.error is not None:
            error = DerivationError(
                code=self.error.code,
                message=self.error.message,
                question_key=self.error.question_key,
                fields=getattr(self.error, "fields", []),
            )

        def collection(region: Optional[MultiPolygon]) -> Optional[Dict[str, Any]]:
            if region is None:
                return None
            return to_feature_collection(region).model_dump(mode="json")

        return DerivationOutput(
            status=self.status,
            feasible_region=collection(self.feasible),
            mask=collection(self.mask),
            empty_at=self.empty_at,
            error=error,
            previews={str(key): collection(region) for key, region in self.previews.items()},
            hiding_zones=collection(self.hiding_zones),
            area=area(self.feasible, units) if self.feasible is not None else None,
            area_units=units,
            duration_ms=round(self.duration_ms, 3),
        )


class DerivationState(TypedDict):
    """
    State passed through the derivation graph.

    Attributes:
        snapshot: Input of the pass
        exclusions: Exclusion view in effect (empty view if none given)
        region: Feasible region so far
        empty_at: First key that emptied the region
        previews: Planning-mode draft previews
        mask: Rendering mask
        hiding_zones: Hiding zones, when a radius is set
        error: Abort reason
    """

    snapshot: GameSnapshot
    exclusions: ExclusionView
    region: MultiPolygon
    empty_at: Optional[int]
    previews: Dict[int, MultiPolygon]
    mask: Optional[MultiPolygon]
    hiding_zones: Optional[MultiPolygon]
    error: Optional[HideZoneError]


class RegionEngine:
    """
    Feasible-region derivation with memoization and pass scheduling.

    Example:
        engine = RegionEngine(ResultCache(name="region"))
        result = engine.derive(GameSnapshot.create(base, questions, view))
        if result.status is DerivationStatus.EMPTY:
            print(f"question {result.empty_at} contradicts the others")
    """

    def __init__(
        self,
        cache: Optional[ResultCache] = None,
        outer_frame: Optional[Sequence[float]] = None,
        busy_policy: str = "coalesce",
    ) -> None:
        """
        Initialize the engine.

        Args:
            cache: Memo table (may be shared with the boundary resolver)
            outer_frame: Mask frame as [min_lng, min_lat, max_lng, max_lat]
            busy_policy: 'coalesce' or 'reject'
        """
        self.cache = cache or ResultCache(
            max_entries=settings.engine.region_cache_max_entries,
            name="region",
        )
        self.outer_frame = MultiPolygon([box(*(outer_frame or settings.geometry.outer_frame))])
        self.busy_policy = BusyPolicy(busy_policy)

        self._graph = self._build_graph()

        self._base_fingerprint: Optional[str] = None
        self._exclusions_fingerprint: Optional[str] = None

        self._busy = False
        self._pending: Optional[Tuple[GameSnapshot, asyncio.Future]] = None
        self._pass_task: Optional[asyncio.Task] = None

        self._passes = 0
        self._cache_hits = 0
        self._failures = 0
        self._rejected = 0
        self._coalesced = 0

        logger.info(f"RegionEngine initialized: busy_policy={self.busy_policy.value}")

    # -------------------------------------------------------------------------
    # Graph
    # -------------------------------------------------------------------------

    def _build_graph(self):
        workflow = StateGraph(DerivationState)

        workflow.add_node("fold", self._fold_node)
        workflow.add_node("mask", self._mask_node)
        workflow.add_node("hiding_zones", self._hiding_zones_node)

        workflow.set_entry_point("fold")
        workflow.add_conditional_edges(
            "fold",
            lambda state: "abort" if state.get("error") is not None else "continue",
            {"abort": END, "continue": "mask"},
        )
        workflow.add_edge("mask", "hiding_zones")
        workflow.add_edge("hiding_zones", END)

        return workflow.compile()

    def _fold_node(self, state: DerivationState) -> Dict[str, Any]:
        snapshot = state["snapshot"]
        exclusions = state["exclusions"]
        region = state["region"]
        empty_at: Optional[int] = None
        previews: Dict[int, MultiPolygon] = {}

        for question in snapshot.questions:
            evaluator = evaluator_for(question)
            try:
                evaluator.validate(question, exclusions)
                if not question.is_answered:
                    continue

                if snapshot.planning_mode and not question.finalized:
                    if not region.is_empty:
                        previews[question.key] = evaluator.apply(question, region, exclusions)
                    continue

                if region.is_empty:
                    continue

                region = evaluator.apply(question, region, exclusions)
            except (SchemaError, GeometryError) as e:
                e.for_question(question.key)
                logger.error(f"Derivation aborted at question {question.key} ({question.kind}): {e.message}")
                return {"error": e}

            if region.is_empty and empty_at is None:
                empty_at = question.key
                logger.info(f"Feasible region became empty at question {question.key}")

        return {"region": region, "empty_at": empty_at, "previews": previews}

    def _mask_node(self, state: DerivationState) -> Dict[str, Any]:
        return {"mask": difference(self.outer_frame, state["region"])}

    def _hiding_zones_node(self, state: DerivationState) -> Dict[str, Any]:
        snapshot = state["snapshot"]
        if snapshot.hiding_radius is None:
            return {"hiding_zones": None}

        categories = snapshot.hiding_categories
        pois = [
            p for p in state["exclusions"].enabled()
            if categories is None or p.category in categories
        ]
        discs = within_any((p.point for p in pois), snapshot.hiding_radius, snapshot.hiding_radius_units)
        return {"hiding_zones": intersect(state["region"], discs)}

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def _track_inputs(self, snapshot: GameSnapshot) -> None:
        """Drop every memoized derivation when the base or the exclusions change."""
        base_fp = snapshot.base_fingerprint()
        exclusions_fp = snapshot.exclusions_fingerprint()

        changed = (
            self._base_fingerprint is not None
            and (base_fp != self._base_fingerprint or exclusions_fp != self._exclusions_fingerprint)
        )
        if changed:
            self.cache.invalidate_kind(RegionFingerprintKey)

        self._base_fingerprint = base_fp
        self._exclusions_fingerprint = exclusions_fp

    def derive(self, snapshot: GameSnapshot) -> RegionDerivation:
        """
        Run one derivation pass.

        Args:
            snapshot: Immutable game state

        Returns:
            RegionDerivation; failures are values, not exceptions
        """
        start = time.perf_counter()
        self._track_inputs(snapshot)

        key = RegionFingerprintKey(snapshot.fingerprint())
        cached = self.cache.lookup(key)
        if cached is not None:
            self._cache_hits += 1
            return cached

        self._passes += 1
        final = self._graph.invoke({
            "snapshot": snapshot,
            "exclusions": snapshot.exclusions if snapshot.exclusions is not None else empty_view(),
            "region": snapshot.base,
            "empty_at": None,
            "previews": {},
            "mask": None,
            "hiding_zones": None,
            "error": None,
        })
        duration_ms = (time.perf_counter() - start) * 1000.0

        if final.get("error") is not None:
            self._failures += 1
            result = RegionDerivation.failed(final["error"])
        else:
            feasible = final["region"]
            result = RegionDerivation(
                status=DerivationStatus.EMPTY if feasible.is_empty else DerivationStatus.OK,
                feasible=feasible,
                mask=final["mask"],
                empty_at=final["empty_at"],
                previews=final["previews"],
                hiding_zones=final["hiding_zones"],
            )
            logger.info(
                f"Derivation complete: status={result.status.value}, "
                f"questions={len(snapshot.questions)}, parts={len(feasible.geoms)}, "
                f"duration={duration_ms:.1f}ms"
            )

        result = replace(result, duration_ms=duration_ms)
        self.cache.put(key, result)
        return result

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    async def submit(self, snapshot: GameSnapshot) -> RegionDerivation:
        """
        Derive off the event loop, one pass at a time.

        While a pass is running:
            coalesce: the newest waiting snapshot replaces older waiting
                ones, and every waiter receives the result of that pass
            reject: the snapshot is answered with status BUSY

        Passes run in an engine-owned task. Cancelling a caller abandons
        its wait only; the pass in flight keeps the engine busy until it ends.
        """
        loop = asyncio.get_running_loop()

        if self._busy:
            if self.busy_policy is BusyPolicy.REJECT:
                self._rejected += 1
                logger.warning("Derivation rejected: a pass is already running")
                return RegionDerivation.busy()

            if self._pending is not None:
                _, future = self._pending
                self._coalesced += 1
            else:
                future = loop.create_future()
            self._pending = (snapshot, future)
            return await asyncio.shield(future)

        self._busy = True
        future = loop.create_future()
        self._pass_task = asyncio.ensure_future(self._run_passes(snapshot, future))
        return await asyncio.shield(future)

    async def _run_passes(self, snapshot: GameSnapshot, future: asyncio.Future) -> None:
        try:
            while True:
                try:
                    result = await asyncio.to_thread(self.derive, snapshot)
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)

                if self._pending is None:
                    break
                snapshot, future = self._pending
                self._pending = None
        finally:
            # Only reached with work outstanding when the task itself is cancelled
            if not future.done():
                future.cancel()
            if self._pending is not None:
                self._pending[1].cancel()
                self._pending = None
            self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    # -------------------------------------------------------------------------
    # Hider mode
    # -------------------------------------------------------------------------

    def hiderify(
        self,
        questions: Sequence[Question],
        hider: LatLng,
        exclusions: Optional[ExclusionView] = None,
    ) -> List[Question]:
        """
        Answer every question from the hider's true location.

        Raises:
            GeometryError: If a question cannot be answered (e.g. every POI
                of its category is disabled), tagged with the question key
        """
        exclusions = exclusions if exclusions is not None else empty_view()
        answered = []
        for question in questions:
            try:
                answered.append(evaluator_for(question).answer_for(question, hider, exclusions))
            except HideZoneError as e:
                raise e.for_question(question.key)
        return answered

    def get_metrics(self) -> Dict[str, Any]:
        """Get engine metrics for observability."""
        return {
            "busy": self._busy,
            "busy_policy": self.busy_policy.value,
            "passes": self._passes,
            "cache_hits": self._cache_hits,
            "failures": self._failures,
            "rejected": self._rejected,
            "coalesced": self._coalesced,
            "cache": self.cache.metrics(),
        }
