"""
Hidezone Configuration
======================

This module handles configuration loading for the region engine service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    HIDEZONE_GEOCODER_URL    -> boundary.geocoder_url
    HIDEZONE_BUSY_POLICY     -> engine.busy_policy
    HIDEZONE_REGISTRY_PATH   -> exclusions.registry_path
    HIDEZONE_PRECISION_GRID  -> geometry.precision_grid
    HIDEZONE_PORT            -> server.port
    HIDEZONE_LOG_LEVEL       -> logging.level
    PORT                     -> server.port (Cloud Run)

Example:
    from hidezone.config import settings

    print(settings.boundary.geocoder_url)
    print(settings.geometry.circle_steps)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="hidezone", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class GeometryConfig(BaseModel):
    """Geometry primitive configuration."""

    circle_steps: int = Field(
        default=64,
        ge=8,
        description="Vertices used to approximate a geodesic circle",
    )
    bisector_samples: int = Field(
        default=256,
        ge=16,
        description="Samples along an equidistance great circle",
    )
    precision_grid: float = Field(
        default=1e-9,
        ge=0,
        description="Grid size (degrees) for boolean overlays; 0 disables snapping",
    )
    outer_frame: List[float] = Field(
        default_factory=lambda: [-180.0, -90.0, 180.0, 90.0],
        description="Mask frame as [min_lng, min_lat, max_lng, max_lat]",
    )

    @field_validator("outer_frame")
    @classmethod
    def validate_frame(cls, v: List[float]) -> List[float]:
        """Ensure the frame is a well-ordered rectangle."""
        if len(v) != 4:
            raise ValueError("outer_frame must have exactly 4 numbers")
        if v[0] >= v[2] or v[1] >= v[3]:
            raise ValueError("outer_frame must be [min_lng, min_lat, max_lng, max_lat]")
        return v


class BoundaryConfig(BaseModel):
    """Place lookup (geocoder) configuration."""

    geocoder_url: str = Field(
        default="https://photon.komoot.io/api/",
        description="Photon-compatible search endpoint",
    )
    language: str = Field(default="en", description="Result language")
    result_limit: int = Field(default=5, ge=1, le=50, description="Candidates per lookup")
    timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP timeout")
    min_interval_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Minimum delay between two outgoing lookups",
    )
    max_retries: int = Field(default=2, ge=0, description="Retries after a failed lookup")
    retry_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Delay between lookup retries",
    )
    cache_max_entries: int = Field(default=128, ge=1, description="Boundary cache size")
    default_boundary_path: str = Field(
        default="./data/boundaries/dc_default.geojson",
        description="Boundary in effect until a place is resolved or drawn",
    )


class EngineConfig(BaseModel):
    """Region engine configuration."""

    busy_policy: str = Field(
        default="coalesce",
        description="What to do with requests arriving mid-pass: 'coalesce' or 'reject'",
    )
    region_cache_max_entries: int = Field(
        default=64,
        ge=1,
        description="Derivations memoized by snapshot fingerprint",
    )
    default_unit: str = Field(default="miles", description="Default distance unit")

    @field_validator("busy_policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        if v not in ("coalesce", "reject"):
            raise ValueError("busy_policy must be 'coalesce' or 'reject'")
        return v


class ExclusionsConfig(BaseModel):
    """Point-of-interest registry configuration."""

    registry_path: str = Field(
        default="./data/exclusions/dc_metro.json",
        description="Path to the POI registry JSON file",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for hidezone.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    geometry: GeometryConfig = Field(default_factory=GeometryConfig)
    boundary: BoundaryConfig = Field(default_factory=BoundaryConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    exclusions: ExclusionsConfig = Field(default_factory=ExclusionsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    if env_url := os.environ.get("HIDEZONE_GEOCODER_URL"):
        config_data.setdefault("boundary", {})["geocoder_url"] = env_url

    if env_policy := os.environ.get("HIDEZONE_BUSY_POLICY"):
        config_data.setdefault("engine", {})["busy_policy"] = env_policy

    if env_registry := os.environ.get("HIDEZONE_REGISTRY_PATH"):
        config_data.setdefault("exclusions", {})["registry_path"] = env_registry

    if env_grid := os.environ.get("HIDEZONE_PRECISION_GRID"):
        config_data.setdefault("geometry", {})["precision_grid"] = float(env_grid)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("HIDEZONE_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_log := os.environ.get("HIDEZONE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
