"""
Hidezone Main Application
=========================

FastAPI entry point for the feasible-region service.

Endpoints:
    GET    /                              - Service information
    GET    /health                        - Liveness probe
    GET    /metrics                       - Cache, resolver and engine metrics
    GET    /region                        - Latest derivation output
    POST   /derive                        - Derive the feasible region of a game
    POST   /boundary/resolve              - Resolve a place name into the base polygon
    POST   /boundary/drawing              - Use a drawn shape as the base polygon
    DELETE /boundary/cache                - Invalidate cached place lookups
    POST   /questions/import              - Validate questions pasted from the clipboard
    POST   /questions/hiderify            - Answer questions from the hider's location
    GET    /exclusions                    - Points of interest and their state
    POST   /exclusions/{poi_id}/disable   - Exclude a POI from distance calculations
    POST   /exclusions/{poi_id}/enable    - Include a POI again
    WS     /ws/region                     - Stream of derivation outputs
"""

import asyncio
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Body, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from shapely.geometry import MultiPolygon

from hidezone.boundary import BoundaryResolver, PhotonClient, ResultCache
from hidezone.config import settings
from hidezone.engine import RegionEngine, build_snapshot, parse_game
from hidezone.errors import BoundaryUnresolved, GeometryError, HideZoneError, SchemaError
from hidezone.exclusions import ExclusionRegistry
from hidezone.geometry.geojson import to_feature_collection, to_region
from hidezone.models.geometry import LatLng, Units
from hidezone.models.output import DerivationError, DerivationOutput
from hidezone.models.questions import export_questions, import_questions, parse_questions
from hidezone.models.reason_codes import DerivationStatus


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_cache: Optional[ResultCache] = None
_registry: Optional[ExclusionRegistry] = None
_resolver: Optional[BoundaryResolver] = None
_engine: Optional[RegionEngine] = None

_latest_output: Optional[DerivationOutput] = None
_output_version: int = 0
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_cache() -> Optional[ResultCache]:
    return _cache

def get_registry() -> Optional[ExclusionRegistry]:
    return _registry

def get_resolver() -> Optional[BoundaryResolver]:
    return _resolver

def get_engine() -> Optional[RegionEngine]:
    return _engine

def get_latest_output() -> Optional[DerivationOutput]:
    return _latest_output


# =============================================================================
# Request Bodies
# =============================================================================

class PlaceRequest(BaseModel):
    """A place to add to (or cut out of) the base polygon."""

    query: str = Field(..., description="Free-text place name")
    added: bool = Field(default=True, description="False cuts the place out")


class ResolveRequest(BaseModel):
    """Base polygon lookup with optional extra places."""

    query: str = Field(..., description="Free-text place name")
    additional: List[PlaceRequest] = Field(default_factory=list)


class ImportRequest(BaseModel):
    text: str = Field(..., description="Clipboard text")


class HiderRequest(BaseModel):
    """Hider's location and the questions to answer from it."""

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    questions: List[Dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Startup Helpers
# =============================================================================

def _data_path(path: str) -> Path:
    """Resolve a data path against the working directory, then the project root."""
    candidate = Path(path)
    if candidate.is_absolute() or candidate.exists():
        return candidate
    return Path(__file__).parent.parent.parent / path


def load_registry() -> ExclusionRegistry:
    path = _data_path(settings.exclusions.registry_path)
    try:
        return ExclusionRegistry.load_from_file(str(path))
    except FileNotFoundError:
        logger.warning(f"No exclusion registry at {path}, matching and measuring questions will fail")
        return ExclusionRegistry()


def load_default_boundary() -> Optional[MultiPolygon]:
    path = _data_path(settings.boundary.default_boundary_path)
    if not path.exists():
        logger.warning(f"No default boundary at {path}")
        return None
    with open(path, "r") as f:
        boundary = to_region(json.load(f))
    logger.info(f"Loaded default boundary from: {path}")
    return boundary


def _error_response(error: HideZoneError, status_code: int) -> JSONResponse:
    return JSONResponse(
        {
            "code": error.code,
            "message": error.message,
            "question_key": error.question_key,
            "fields": getattr(error, "fields", []),
        },
        status_code=status_code,
    )


def _publish(output: DerivationOutput) -> None:
    global _latest_output, _output_version
    _latest_output = output
    _output_version += 1


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _cache, _registry, _resolver, _engine, _startup_time
    global _latest_output, _output_version

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    port = int(os.environ.get("PORT", settings.server.port))
    logger.info(f"Configured port: {port}")

    # Boundary and region results share one typed-key cache
    _cache = ResultCache(
        max_entries=settings.boundary.cache_max_entries + settings.engine.region_cache_max_entries,
        name="results",
    )

    _registry = load_registry()

    client = PhotonClient(
        url=settings.boundary.geocoder_url,
        language=settings.boundary.language,
        limit=settings.boundary.result_limit,
        timeout=settings.boundary.timeout_seconds,
    )
    _resolver = BoundaryResolver(
        client=client,
        cache=_cache,
        min_interval=settings.boundary.min_interval_seconds,
        max_retries=settings.boundary.max_retries,
        retry_backoff=settings.boundary.retry_backoff_seconds,
    )
    _resolver.current = load_default_boundary()

    _engine = RegionEngine(
        cache=_cache,
        outer_frame=settings.geometry.outer_frame,
        busy_policy=settings.engine.busy_policy,
    )

    _latest_output = None
    _output_version = 0

    logger.info("All components started")

    yield

    logger.info("Shutting down...")
    client.close()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="hidezone",
    description="Feasible-region derivation for hide-and-seek games",
    version=settings.service.version,
    lifespan=lifespan,
)


@app.exception_handler(SchemaError)
async def schema_error_handler(request, exc: SchemaError) -> JSONResponse:
    return _error_response(exc, 422)


@app.exception_handler(GeometryError)
async def geometry_error_handler(request, exc: GeometryError) -> JSONResponse:
    return _error_response(exc, 422)


@app.exception_handler(BoundaryUnresolved)
async def boundary_error_handler(request, exc: BoundaryUnresolved) -> JSONResponse:
    return _error_response(exc, 404)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "busy_policy": settings.engine.busy_policy,
        "registry_region": _registry.region_id if _registry else None,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    resolver_metrics = {}
    if _resolver:
        resolver_metrics = _resolver.metrics()
        resolver_metrics["geocoder_requests"] = getattr(_resolver.client, "request_count", None)

    engine_metrics = _engine.get_metrics() if _engine else {}

    registry_metrics = {}
    if _registry:
        registry_metrics = {
            "points": len(_registry),
            "disabled": len(_registry.disabled),
            "version": _registry.version,
        }

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "outputs_published": _output_version,
        "resolver": resolver_metrics,
        "engine": engine_metrics,
        "registry": registry_metrics,
    })


@app.get("/region")
async def region() -> JSONResponse:
    """Get the latest derivation output."""
    current_output = get_latest_output()

    if current_output is None:
        return JSONResponse(
            {"error": "No derivation available yet"},
            status_code=503,
        )

    return JSONResponse(current_output.model_dump(mode="json"))


@app.post("/derive")
async def derive(
    payload: Dict[str, Any] = Body(...),
    units: Optional[Units] = None,
) -> JSONResponse:
    """
    Derive the feasible region of a game.

    Payload errors come back as a FAILED derivation with status 422;
    everything the engine produces (including FAILED) comes back with 200.
    """
    units = units or Units(settings.engine.default_unit)

    try:
        game = parse_game(payload)
        snapshot = build_snapshot(game, _registry, fallback_base=_resolver.current)
    except (SchemaError, GeometryError) as e:
        failed = DerivationOutput(
            status=DerivationStatus.FAILED,
            error=DerivationError(
                code=e.code,
                message=e.message,
                question_key=e.question_key,
                fields=getattr(e, "fields", []),
            ),
        )
        return JSONResponse(failed.model_dump(mode="json"), status_code=422)

    result = await _engine.submit(snapshot)
    output = result.to_output(units)
    if result.status is not DerivationStatus.BUSY:
        _publish(output)

    return JSONResponse(output.model_dump(mode="json"))


@app.post("/boundary/resolve")
async def resolve_boundary(request: ResolveRequest) -> JSONResponse:
    """
    Resolve a place name (plus extra places) into the base polygon.

    A lookup overtaken by a newer one answers 409 and changes nothing.
    On failure the previous base polygon stays in effect.
    """
    base = await _resolver.resolve_latest(
        request.query,
        [(place.query, place.added) for place in request.additional],
    )
    if base is None:
        return JSONResponse(
            {"status": "superseded", "query": request.query},
            status_code=409,
        )

    _resolver.current = base
    return JSONResponse(to_feature_collection(_resolver.current).model_dump(mode="json"))


@app.post("/boundary/drawing")
async def drawing_boundary(shape: Dict[str, Any] = Body(...)) -> JSONResponse:
    """Validate a drawn FeatureCollection and make it the base polygon."""
    region = _resolver.select_drawing(shape)
    return JSONResponse(to_feature_collection(region).model_dump(mode="json"))


@app.delete("/boundary/cache")
async def clear_boundary_cache(query: str = "all") -> JSONResponse:
    """Invalidate one cached place lookup, or all of them."""
    removed = _resolver.invalidate(query)
    return JSONResponse({"query": query, "removed": removed})


@app.post("/questions/import")
async def questions_import(request: ImportRequest) -> JSONResponse:
    """Validate clipboard text and return the normalized questions."""
    questions = import_questions(request.text)
    return JSONResponse({
        "questions": [q.model_dump(mode="json") for q in questions],
        "text": export_questions(questions),
    })


@app.post("/questions/hiderify")
async def questions_hiderify(request: HiderRequest) -> JSONResponse:
    """Answer every question as the hider at (lat, lng) would."""
    questions = parse_questions(request.questions)
    answered = _engine.hiderify(
        questions,
        LatLng(lat=request.lat, lng=request.lng),
        _registry.view(),
    )
    return JSONResponse({"questions": [q.model_dump(mode="json") for q in answered]})


@app.get("/exclusions")
async def exclusions() -> JSONResponse:
    """List points of interest with their disabled flag."""
    view = _registry.view()
    return JSONResponse({
        "region_id": _registry.region_id,
        "points": [
            {**p.model_dump(mode="json"), "disabled": p.id in view.disabled}
            for _, p in sorted(view.table.items())
        ],
    })


@app.post("/exclusions/{poi_id}/disable")
async def disable_poi(poi_id: str) -> JSONResponse:
    if _registry.get(poi_id) is None:
        return JSONResponse({"error": f"unknown point of interest '{poi_id}'"}, status_code=404)
    _registry.disable(poi_id)
    return JSONResponse({"poi_id": poi_id, "disabled": True, "version": _registry.version})


@app.post("/exclusions/{poi_id}/enable")
async def enable_poi(poi_id: str) -> JSONResponse:
    if _registry.get(poi_id) is None:
        return JSONResponse({"error": f"unknown point of interest '{poi_id}'"}, status_code=404)
    _registry.enable(poi_id)
    return JSONResponse({"poi_id": poi_id, "disabled": False, "version": _registry.version})


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/region")
async def region_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint pushing every new derivation output."""
    await websocket.accept()
    logger.info("Client connected to /ws/region")

    sent_version = 0
    try:
        while True:
            if _output_version != sent_version and _latest_output is not None:
                sent_version = _output_version
                await websocket.send_json(_latest_output.model_dump(mode="json"))
            # Client messages are ignored; waiting on them surfaces disconnects
            try:
                await asyncio.wait_for(websocket.receive_text(), timeout=0.5)
            except asyncio.TimeoutError:
                pass
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/region")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "hidezone.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
