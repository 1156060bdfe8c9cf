"""
Boundary Resolver
=================

Turns a place name or a drawn shape into the base polygon of a game.

This resolver:
    - Looks up the cache by normalized query before going to the network
    - Rate-limits outgoing lookups (minimum interval between requests)
    - Shares one in-flight lookup between concurrent callers of a query
    - Retries failed lookups a fixed number of times
    - Discards results of lookups superseded by a newer query
    - Keeps the last valid base polygon in effect when a lookup fails

Example:
    resolver = BoundaryResolver(PhotonClient(), ResultCache(name="boundary"))

    try:
        base = await resolver.select_place("Washington DC")
    except BoundaryUnresolved:
        base = resolver.select_drawing(drawn_feature_collection)

Design Rules:
    - Never crash on lookup errors; report BoundaryUnresolved
    - Drawn shapes are validated, never repaired
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

from shapely.geometry import MultiPolygon, box

from hidezone.boundary.cache import BoundaryQueryKey, ResultCache
from hidezone.boundary.photon import GeocoderError, PlaceCandidate
from hidezone.errors import BoundaryUnresolved
from hidezone.geometry.geojson import to_region
from hidezone.geometry.primitives import as_multipolygon, difference, union


logger = logging.getLogger(__name__)


class PlaceLookup(Protocol):
    """Anything that can search places synchronously (e.g. PhotonClient)."""

    def search(self, query: str) -> list:
        ...


def candidate_polygon(candidate: PlaceCandidate) -> MultiPolygon:
    """Rectangle spanned by a candidate's extent."""
    min_lng, min_lat, max_lng, max_lat = candidate.extent
    return MultiPolygon([box(min_lng, min_lat, max_lng, max_lat)])


def compose(base: MultiPolygon, additions: Iterable[Tuple[MultiPolygon, bool]]) -> MultiPolygon:
    """
    Combine the base area with extra places.

    Args:
        base: Primary area
        additions: (region, added) pairs; added regions are unioned in,
            the others are cut out, in order

    Returns:
        The combined playable area
    """
    result = as_multipolygon(base)
    for region, added in additions:
        result = union(result, region) if added else difference(result, region)
    return result


class BoundaryResolver:
    """
    Place-name and drawn-shape resolution with caching.

    Attributes:
        client: Synchronous place lookup
        cache: Shared result cache (BoundaryQueryKey entries)
        min_interval: Minimum seconds between two outgoing lookups
        max_retries: Retries after a failed lookup
        retry_backoff: Seconds to wait between retries
        current: Base polygon currently in effect
    """

    def __init__(
        self,
        client: PlaceLookup,
        cache: ResultCache,
        min_interval: float = 1.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
    ) -> None:
        self.client = client
        self.cache = cache
        self.min_interval = min_interval
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.current: Optional[MultiPolygon] = None

        self._in_flight: Dict[BoundaryQueryKey, asyncio.Task] = {}
        self._rate_lock = asyncio.Lock()
        self._last_request_time: float = 0.0
        self._generation = 0
        self._lookup_count = 0
        self._failure_count = 0

        logger.info(
            f"BoundaryResolver initialized: min_interval={min_interval}s, "
            f"max_retries={max_retries}"
        )

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve_by_name(self, query: str) -> MultiPolygon:
        """
        Resolve a free-text place into a base polygon.

        Args:
            query: Place name as typed by the organizer

        Returns:
            Rectangle spanned by the top candidate with an extent

        Raises:
            BoundaryUnresolved: If the lookup errors or finds nothing usable
        """
        key = BoundaryQueryKey.normalized(query)
        if not key.query:
            raise BoundaryUnresolved(query, "empty query")

        cached = self.cache.lookup(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(query, key))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        else:
            logger.debug(f"Joining in-flight lookup for {key.query!r}")

        # Shielded so one impatient caller cannot cancel the shared lookup
        return await asyncio.shield(task)

    async def resolve_latest(
        self,
        query: str,
        additional: Iterable[Tuple[str, bool]] = (),
    ) -> Optional[MultiPolygon]:
        """
        Resolve `query` plus extra places, discarding the result if a newer
        call superseded it.

        Args:
            query: Primary place name
            additional: (place name, added) pairs composed onto the base

        Returns:
            The composed polygon, or None when a later resolve_latest call
            started before every lookup of this one finished
        """
        self._generation += 1
        generation = self._generation
        try:
            base = await self.resolve_by_name(query)
            additions = [
                (await self.resolve_by_name(extra), added)
                for extra, added in additional
            ]
        except BoundaryUnresolved:
            if generation != self._generation:
                return None
            raise

        if generation != self._generation:
            logger.info(f"Discarding superseded boundary lookup: {query!r}")
            return None
        return compose(base, additions)

    def resolve_from_drawing(self, raw_shape: Any) -> MultiPolygon:
        """
        Validate a drawn FeatureCollection and return it as a region.

        Raises:
            SchemaError: If the payload is not polygonal GeoJSON
            GeometryError: If a ring is open or self-intersecting
        """
        return to_region(raw_shape)

    async def _fetch(self, query: str, key: BoundaryQueryKey) -> MultiPolygon:
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            if attempt:
                await asyncio.sleep(self.retry_backoff)
            await self._wait_for_slot()

            self._lookup_count += 1
            try:
                candidates = await asyncio.to_thread(self.client.search, key.query)
                break
            except GeocoderError as e:
                last_error = e
                logger.warning(
                    f"Boundary lookup failed (query={key.query!r}, "
                    f"attempt={attempt + 1}/{self.max_retries + 1}): {e}"
                )
        else:
            self._failure_count += 1
            raise BoundaryUnresolved(query, str(last_error))

        for candidate in candidates:
            if candidate.extent is not None:
                polygon = candidate_polygon(candidate)
                self.cache.put(key, polygon)
                logger.info(f"Resolved boundary {key.query!r} -> {candidate.display_name}")
                return polygon

        self._failure_count += 1
        raise BoundaryUnresolved(query, "no candidate with an area extent")

    async def _wait_for_slot(self) -> None:
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_request_time = time.monotonic()

    # -------------------------------------------------------------------------
    # Current base polygon
    # -------------------------------------------------------------------------

    async def select_place(self, query: str) -> MultiPolygon:
        """
        Resolve `query` and make it the current base polygon.

        On BoundaryUnresolved the previous base stays in effect.
        """
        polygon = await self.resolve_by_name(query)
        self.current = polygon
        return polygon

    def select_drawing(self, raw_shape: Any) -> MultiPolygon:
        polygon = self.resolve_from_drawing(raw_shape)
        self.current = polygon
        return polygon

    def invalidate(self, query: str = "all") -> int:
        """Drop one cached query, or every boundary entry for "all"."""
        if query == "all":
            return self.cache.invalidate_kind(BoundaryQueryKey)
        return int(self.cache.invalidate(BoundaryQueryKey.normalized(query)))

    def metrics(self) -> dict:
        """Get resolver metrics for observability."""
        return {
            "lookup_count": self._lookup_count,
            "failure_count": self._failure_count,
            "in_flight": len(self._in_flight),
            "has_boundary": self.current is not None,
        }
