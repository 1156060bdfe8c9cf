"""
hidezone
========

Feasible-region derivation engine for hide-and-seek games.

Given a playable area and the answers to the seekers' questions, the engine
computes the set of locations where the hider can still be.

Components:
    - geometry: Spherical primitives and GeoJSON conversion
    - boundary: Place lookup, drawn shapes and the shared result cache
    - evaluators: One geometric evaluator per question kind
    - engine: LangGraph derivation pipeline over immutable snapshots
    - exclusions: Point-of-interest registry with a disabled overlay

Example:
    from hidezone.engine import GameSnapshot, RegionEngine

    engine = RegionEngine()
    result = engine.derive(GameSnapshot.create(base, questions, view))

    # The HTTP service is started via main.py
"""

__version__ = "0.1.0"

# Submodules are imported explicitly; config loads settings on import

__all__ = [
    "__version__",
]
