"""
Boundary Module
===============

Base-polygon resolution (place lookup or drawn shape) and the shared cache.

Components:
    - BoundaryResolver: cached, rate-limited place resolution
    - PhotonClient: blocking Photon geocoder client
    - ResultCache: typed-key LRU cache used by the resolver and the engine
"""

from hidezone.boundary.cache import BoundaryQueryKey, RegionFingerprintKey, ResultCache
from hidezone.boundary.photon import GeocoderError, PhotonClient, PlaceCandidate
from hidezone.boundary.resolver import BoundaryResolver, compose


__all__ = [
    "BoundaryQueryKey",
    "RegionFingerprintKey",
    "ResultCache",
    "GeocoderError",
    "PhotonClient",
    "PlaceCandidate",
    "BoundaryResolver",
    "compose",
]
