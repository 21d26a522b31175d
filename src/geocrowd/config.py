"""
GeoCrowd Configuration
======================

This module handles configuration loading for the proximity and density engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    GEOCROWD_CELL_PRECISION     -> geo.cell_precision
    GEOCROWD_GROUPING_PRECISION -> geo.grouping_precision
    GEOCROWD_SEARCH_TIMEOUT     -> search.timeout_seconds
    GEOCROWD_MAX_BATCH_SIZE     -> store.max_batch_size
    GEOCROWD_WORKERS            -> workers.count
    GEOCROWD_QUEUE_SIZE         -> workers.queue_size
    GEOCROWD_LOG_LEVEL          -> logging.level
    GEOCROWD_PORT               -> server.port
    PORT                        -> server.port (Cloud Run)

Example:
    from geocrowd.config import settings

    print(settings.geo.cell_precision)
    print(settings.density.deep_above)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="geocrowd", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class PrecisionBand(BaseModel):
    """One row of the radius -> geohash precision lookup table."""

    max_radius_km: Optional[float] = Field(
        default=None,
        gt=0,
        description="Largest radius served by this band (None = catch-all)",
    )
    precision: int = Field(..., ge=1, le=12, description="Cell length for this band")


def _default_precision_table() -> List[PrecisionBand]:
    return [
        PrecisionBand(max_radius_km=0.02, precision=8),
        PrecisionBand(max_radius_km=0.15, precision=7),
        PrecisionBand(max_radius_km=1.2, precision=6),
        PrecisionBand(max_radius_km=5.0, precision=5),
        PrecisionBand(max_radius_km=20.0, precision=4),
        PrecisionBand(max_radius_km=80.0, precision=3),
        PrecisionBand(max_radius_km=None, precision=2),
    ]


class GeoConfig(BaseModel):
    """Geohash indexing configuration."""

    cell_precision: int = Field(
        default=9,
        ge=1,
        le=12,
        description="Length of the cell stored on every spatial entity",
    )
    grouping_precision: int = Field(
        default=5,
        ge=1,
        le=12,
        description="Prefix length shared by signals of one density group (~5 km)",
    )
    precision_table: List[PrecisionBand] = Field(
        default_factory=_default_precision_table,
        min_length=1,
        description="Radius -> precision bands, ordered by increasing radius",
    )

    @field_validator("precision_table")
    @classmethod
    def validate_table(cls, v: List[PrecisionBand]) -> List[PrecisionBand]:
        """Bands must grow in radius and end with a catch-all band."""
        if v[-1].max_radius_km is not None:
            raise ValueError("precision_table must end with a catch-all band")
        radii = [band.max_radius_km for band in v[:-1]]
        if any(r is None for r in radii):
            raise ValueError("only the last precision band may omit max_radius_km")
        if radii != sorted(radii):
            raise ValueError("precision_table must be ordered by increasing radius")
        return v

    @model_validator(mode="after")
    def validate_cell_precision(self) -> "GeoConfig":
        """Stored cells must be at least as long as any scanned prefix."""
        longest = max(band.precision for band in self.precision_table)
        if self.cell_precision < longest:
            raise ValueError(
                f"cell_precision ({self.cell_precision}) is shorter than the "
                f"longest planner precision ({longest})"
            )
        if self.grouping_precision > self.cell_precision:
            raise ValueError("grouping_precision cannot exceed cell_precision")
        return self


class SearchConfig(BaseModel):
    """Proximity search configuration."""

    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Default deadline for a proximity query",
    )
    default_radius_km: float = Field(
        default=10.0,
        gt=0,
        description="Radius used for event queries when none is given",
    )
    default_signal_radius_km: float = Field(
        default=5.0,
        gt=0,
        description="Radius used for signal queries when none is given",
    )
    max_results: int = Field(
        default=50,
        ge=1,
        description="Maximum matches returned over HTTP",
    )


class TierConfig(BaseModel):
    """Visual tier rendered for a density band."""

    color_hex: str = Field(..., pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex color")
    radius_meters: int = Field(..., gt=0, description="Rendered radius in meters")


class DensityConfig(BaseModel):
    """Density tier thresholds (people counts, exclusive lower bounds)."""

    elevated_above: int = Field(default=25, ge=0, description="ELEVATED when count > this")
    deep_above: int = Field(default=50, ge=0, description="DEEP when count > this")
    base: TierConfig = Field(
        default_factory=lambda: TierConfig(color_hex="#FFD700", radius_meters=75)
    )
    elevated: TierConfig = Field(
        default_factory=lambda: TierConfig(color_hex="#FF6B6B", radius_meters=125)
    )
    deep: TierConfig = Field(
        default_factory=lambda: TierConfig(color_hex="#8B0000", radius_meters=200)
    )

    @model_validator(mode="after")
    def validate_order(self) -> "DensityConfig":
        """Deep threshold must sit above the elevated threshold."""
        if self.deep_above <= self.elevated_above:
            raise ValueError("deep_above must be greater than elevated_above")
        return self


class StoreConfig(BaseModel):
    """Document store configuration."""

    max_batch_size: int = Field(
        default=500,
        ge=1,
        description="Maximum operations per atomic batch write",
    )


class WorkersConfig(BaseModel):
    """Recompute worker configuration."""

    count: int = Field(default=4, ge=1, description="Number of recompute workers")
    queue_size: int = Field(default=1000, ge=1, description="Mutation queue capacity")
    push_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Interval between WebSocket signal snapshots",
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
    Main settings class for GeoCrowd.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    geo: GeoConfig = Field(default_factory=GeoConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    density: DensityConfig = Field(default_factory=DensityConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    workers: WorkersConfig = Field(default_factory=WorkersConfig)
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
        if env_path := os.environ.get("GEOCROWD_CONFIG"):
            config_path = env_path
        else:
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

    # Geo settings
    if env_cell := os.environ.get("GEOCROWD_CELL_PRECISION"):
        config_data.setdefault("geo", {})["cell_precision"] = int(env_cell)
    if env_group := os.environ.get("GEOCROWD_GROUPING_PRECISION"):
        config_data.setdefault("geo", {})["grouping_precision"] = int(env_group)

    # Search settings
    if env_timeout := os.environ.get("GEOCROWD_SEARCH_TIMEOUT"):
        config_data.setdefault("search", {})["timeout_seconds"] = float(env_timeout)

    # Store settings
    if env_batch := os.environ.get("GEOCROWD_MAX_BATCH_SIZE"):
        config_data.setdefault("store", {})["max_batch_size"] = int(env_batch)

    # Worker settings
    if env_workers := os.environ.get("GEOCROWD_WORKERS"):
        config_data.setdefault("workers", {})["count"] = int(env_workers)
    if env_queue := os.environ.get("GEOCROWD_QUEUE_SIZE"):
        config_data.setdefault("workers", {})["queue_size"] = int(env_queue)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("GEOCROWD_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("GEOCROWD_LOG_LEVEL"):
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
