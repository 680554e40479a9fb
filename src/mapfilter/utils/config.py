"""
Configuration

Nested configuration sections for the viewport pipeline. Values can be
loaded from ``MAPFILTER_*`` environment variables or from a plain mapping,
and are validated before any component is built from them.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError


SOURCE_KINDS = ("bundled", "http")


@dataclass
class TileConfig:
    """Tile grid settings."""
    tile_size: int = 512
    max_zoom: int = 22


@dataclass
class SourceConfig:
    """Where raw tile bytes come from."""
    kind: str = "bundled"
    base_url: str = "http://localhost:8000/tiles"
    url_template: str = "{base_url}/{z}/{x}/{y}.{ext}"
    bundle_dir: str = "VectorTileSampleData"
    extension: str = "mvt"
    timeout_seconds: float = 10.0
    user_agent: str = "mapfilter/1.0"


@dataclass
class OrchestrationConfig:
    """Viewport pass settings."""
    poi_layer: str = "pois"
    neighborhood_radius: int = 1
    max_workers: int = 1


@dataclass
class MetricsConfig:
    enabled: bool = True
    namespace: str = "mapfilter"


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"


@dataclass
class Config:
    """
    Top-level configuration object.

    Sections are accessed as attributes, e.g. ``config.tiles.tile_size`` or
    ``config.orchestration.poi_layer``.
    """
    environment: str = "development"
    tiles: TileConfig = field(default_factory=TileConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Config":
        """
        Load configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Validated configuration

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: Any, cast=str) -> Any:
            raw = env.get(f"MAPFILTER_{name}")
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ConfigurationError(f"MAPFILTER_{name}", raw, f"expected {cast.__name__}")

        config = cls(
            environment=get("ENVIRONMENT", "development"),
            tiles=TileConfig(
                tile_size=get("TILE_SIZE", 512, int),
                max_zoom=get("MAX_ZOOM", 22, int),
            ),
            source=SourceConfig(
                kind=get("SOURCE_KIND", "bundled"),
                base_url=get("SOURCE_BASE_URL", "http://localhost:8000/tiles"),
                url_template=get("SOURCE_URL_TEMPLATE", "{base_url}/{z}/{x}/{y}.{ext}"),
                bundle_dir=get("BUNDLE_DIR", "VectorTileSampleData"),
                extension=get("TILE_EXTENSION", "mvt"),
                timeout_seconds=get("SOURCE_TIMEOUT", 10.0, float),
            ),
            orchestration=OrchestrationConfig(
                poi_layer=get("POI_LAYER", "pois"),
                neighborhood_radius=get("NEIGHBORHOOD_RADIUS", 1, int),
                max_workers=get("MAX_WORKERS", 1, int),
            ),
            metrics=MetricsConfig(
                enabled=get("METRICS_ENABLED", True, _parse_bool),
            ),
            server=ServerConfig(
                host=get("HOST", "0.0.0.0"),
                port=get("PORT", 8000, int),
                log_level=get("LOG_LEVEL", "info"),
            ),
        )
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """
        Build configuration from a nested mapping.

        Args:
            data: Mapping with an optional ``environment`` key and one dict per section

        Returns:
            Validated configuration
        """
        sections = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}

        for key, value in data.items():
            if key not in sections:
                raise ConfigurationError(key, value, "unknown configuration key")
            if key == "environment":
                kwargs[key] = value
                continue
            section_type = sections[key].default_factory
            if not isinstance(value, dict):
                raise ConfigurationError(key, value, "section must be a mapping")
            allowed = {f.name for f in fields(section_type)}
            unknown = set(value) - allowed
            if unknown:
                raise ConfigurationError(f"{key}.{sorted(unknown)[0]}", value, "unknown configuration key")
            kwargs[key] = section_type(**value)

        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        """Fail fast on out-of-range values."""
        size = self.tiles.tile_size
        if not isinstance(size, int) or size <= 0 or size & (size - 1):
            raise ConfigurationError("tiles.tile_size", size, "must be a positive power of two")

        if not 0 <= self.tiles.max_zoom <= 30:
            raise ConfigurationError("tiles.max_zoom", self.tiles.max_zoom, "must be between 0 and 30")

        if self.source.kind not in SOURCE_KINDS:
            raise ConfigurationError("source.kind", self.source.kind, f"must be one of {SOURCE_KINDS}")

        if self.source.timeout_seconds <= 0:
            raise ConfigurationError("source.timeout_seconds", self.source.timeout_seconds, "must be positive")

        if not self.orchestration.poi_layer:
            raise ConfigurationError("orchestration.poi_layer", self.orchestration.poi_layer, "must not be empty")

        if self.orchestration.neighborhood_radius < 0:
            raise ConfigurationError(
                "orchestration.neighborhood_radius",
                self.orchestration.neighborhood_radius,
                "must be zero or greater"
            )

        if self.orchestration.max_workers < 1:
            raise ConfigurationError("orchestration.max_workers", self.orchestration.max_workers, "must be at least 1")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(value)
