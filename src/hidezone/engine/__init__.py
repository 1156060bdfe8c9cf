"""
Engine Module
=============

Feasible-region derivation over immutable game snapshots.

Components:
    - GameSnapshot: everything one pass reads
    - RegionEngine: LangGraph fold pipeline, memo table and pass scheduling
    - GamePayload: serialized game (API body, clipboard export)
"""

from hidezone.engine.region_engine import RegionDerivation, RegionEngine
from hidezone.engine.snapshot import (
    GamePayload,
    GameSnapshot,
    build_snapshot,
    export_game,
    import_game,
    parse_game,
)

__all__ = [
    "GamePayload",
    "GameSnapshot",
    "RegionDerivation",
    "RegionEngine",
    "build_snapshot",
    "export_game",
    "import_game",
    "parse_game",
]
