"""
Photon Geocoder Client
======================

Blocking HTTP client for a Photon-compatible place search endpoint
(https://photon.komoot.io/api/).

A lookup is a single GET by free-text query; the response is a GeoJSON
FeatureCollection of ranked candidates. Candidates that are areas carry
`properties.extent` as [min_lng, max_lat, max_lng, min_lat].

Design Rules:
    - One session per client, reused across lookups
    - Transport and payload problems raise GeocoderError
    - The client is synchronous; the resolver runs it in a worker thread
"""

import logging
from typing import List, Optional, Tuple

import requests
from pydantic import BaseModel, Field

from hidezone.models.geometry import LatLng


logger = logging.getLogger(__name__)


class GeocoderError(Exception):
    """Raised when a place lookup fails."""
    pass


class PlaceCandidate(BaseModel):
    """
    One ranked search result.

    Attributes:
        name: Display name of the place
        country: Country name, if reported
        osm_type: OpenStreetMap element type (N, W, R)
        osm_id: OpenStreetMap element id
        point: Representative point of the place
        extent: (min_lng, min_lat, max_lng, max_lat), None for point-like places
    """

    name: str = ""
    country: Optional[str] = None
    osm_type: Optional[str] = None
    osm_id: Optional[int] = None
    point: LatLng
    extent: Optional[Tuple[float, float, float, float]] = Field(default=None)

    @property
    def display_name(self) -> str:
        return ", ".join(part for part in (self.name, self.country) if part)


def _normalize_extent(raw: Optional[list]) -> Optional[Tuple[float, float, float, float]]:
    if not raw or len(raw) != 4:
        return None
    lng1, lat1, lng2, lat2 = (float(v) for v in raw)
    min_lng, max_lng = sorted((lng1, lng2))
    min_lat, max_lat = sorted((lat1, lat2))
    if min_lng == max_lng or min_lat == max_lat:
        return None
    return (min_lng, min_lat, max_lng, max_lat)


def parse_candidates(payload: dict) -> List[PlaceCandidate]:
    """Turn a Photon response body into candidates, best first."""
    features = payload.get("features")
    if not isinstance(features, list):
        raise GeocoderError("response has no 'features' list")

    candidates = []
    for feature in features:
        geometry = feature.get("geometry") or {}
        props = feature.get("properties") or {}
        coords = geometry.get("coordinates")
        if geometry.get("type") != "Point" or not coords or len(coords) < 2:
            continue
        try:
            candidates.append(PlaceCandidate(
                name=props.get("name") or "",
                country=props.get("country"),
                osm_type=props.get("osm_type"),
                osm_id=props.get("osm_id"),
                point=LatLng(lat=coords[1], lng=coords[0]),
                extent=_normalize_extent(props.get("extent")),
            ))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed geocoder candidate: {e}")
    return candidates


class PhotonClient:
    """
    Place search against a Photon endpoint.

    Attributes:
        url: Search endpoint URL
        language: Result language
        limit: Maximum candidates requested
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        url: str = "https://photon.komoot.io/api/",
        language: str = "en",
        limit: int = 5,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.language = language
        self.limit = limit
        self.timeout = timeout
        self._session = session or requests.Session()
        self._request_count = 0

        logger.info(f"PhotonClient initialized: url={url}, lang={language}, limit={limit}")

    def search(self, query: str) -> List[PlaceCandidate]:
        """
        Look up a place by free text.

        Args:
            query: Free-text place name

        Returns:
            Candidates in the geocoder's ranking order

        Raises:
            GeocoderError: On transport errors, HTTP errors or bad payloads
        """
        self._request_count += 1
        try:
            response = self._session.get(
                self.url,
                params={"q": query, "lang": self.language, "limit": self.limit},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise GeocoderError(f"lookup request failed: {e}") from e
        except ValueError as e:
            raise GeocoderError(f"lookup returned invalid JSON: {e}") from e

        candidates = parse_candidates(payload)
        logger.debug(f"Geocoder: query={query!r}, candidates={len(candidates)}")
        return candidates

    @property
    def request_count(self) -> int:
        return self._request_count

    def close(self) -> None:
        self._session.close()
