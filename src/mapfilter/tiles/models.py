"""
Tile Data Model

Value types passed between the projector, the decoder, the feature
projector and the viewport orchestrator.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from shapely.geometry import Point

from ..utils.exceptions import InvalidCoordinateError


# Approximate length of one degree of latitude
MILES_PER_DEGREE_LATITUDE = 69.0


@dataclass(frozen=True)
class GeoPosition:
    """A WGS84 latitude/longitude pair."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidCoordinateError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidCoordinateError(f"Longitude out of range: {self.longitude}")

    def to_point(self) -> Point:
        """Return the position as a shapely Point in (lon, lat) order."""
        return Point(self.longitude, self.latitude)


@dataclass(frozen=True)
class ViewportSpan:
    """Angular extent of a visible map region, in degrees."""
    latitude_degrees: float
    longitude_degrees: float

    @property
    def average_span(self) -> float:
        return (self.latitude_degrees + self.longitude_degrees) / 2.0


@dataclass(frozen=True)
class Viewport:
    """Visible map region: a center and its angular span."""
    center: GeoPosition
    span: ViewportSpan

    @classmethod
    def from_center_and_radius(cls, center: GeoPosition, radius_miles: float) -> "Viewport":
        """
        Build a viewport around ``center`` covering ``radius_miles`` in every direction.

        Args:
            center: Center of the region
            radius_miles: Distance from the center to the region edge

        Returns:
            Viewport whose span is twice the radius in each axis
        """
        latitude_degrees = 2 * radius_miles / MILES_PER_DEGREE_LATITUDE
        cos_lat = math.cos(math.radians(center.latitude))
        longitude_degrees = latitude_degrees / cos_lat if cos_lat > 1e-12 else 360.0
        return cls(
            center=center,
            span=ViewportSpan(
                latitude_degrees=latitude_degrees,
                longitude_degrees=min(longitude_degrees, 360.0)
            )
        )


@dataclass(frozen=True)
class TileCoordinate:
    """Integer tile-grid address at a zoom level."""
    x: int
    y: int
    z: int

    @property
    def tile_id(self) -> str:
        """Get unique tile identifier."""
        return f"{self.z}/{self.x}/{self.y}"

    def offset(self, dx: int, dy: int) -> "TileCoordinate":
        return TileCoordinate(x=self.x + dx, y=self.y + dy, z=self.z)


class GeometryKind(str, Enum):
    """Geometry types found in decoded vector tile features."""
    POINT = "Point"
    MULTI_POINT = "MultiPoint"
    LINE_STRING = "LineString"
    MULTI_LINE_STRING = "MultiLineString"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"
    UNKNOWN = "Unknown"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "GeometryKind":
        for kind in cls:
            if kind.value == name:
                return kind
        return cls.UNKNOWN


@dataclass
class DecodedFeature:
    """A feature in tile-local integer coordinates."""
    geometry_kind: GeometryKind
    coordinates: Any
    properties: Dict[str, Any] = field(default_factory=dict)
    feature_id: Optional[int] = None


@dataclass
class DecodedLayer:
    """A named layer of decoded features."""
    name: str
    features: List[DecodedFeature] = field(default_factory=list)
    extent: int = 4096
    version: int = 2

    def __len__(self) -> int:
        return len(self.features)


@dataclass
class DecodedTile:
    """Decoded layers of one tile, looked up by name."""
    layers: Dict[str, DecodedLayer] = field(default_factory=dict)

    def get_layer(self, name: str) -> Optional[DecodedLayer]:
        return self.layers.get(name)

    @property
    def layer_names(self) -> List[str]:
        return list(self.layers.keys())

    @property
    def feature_count(self) -> int:
        return sum(len(layer) for layer in self.layers.values())

    def __len__(self) -> int:
        return len(self.layers)


@dataclass(frozen=True)
class PointFeature:
    """A renderable marker."""
    position: GeoPosition
    label: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_geojson(self) -> Dict[str, Any]:
        """Return the marker as a GeoJSON Feature."""
        return {
            'type': 'Feature',
            'geometry': self.position.to_point().__geo_interface__,
            'properties': {**self.properties, 'label': self.label}
        }


@dataclass
class ProjectedLayer:
    """Markers projected from one layer, plus the point features that could not be projected."""
    markers: List[PointFeature] = field(default_factory=list)
    skipped_features: int = 0


class TileStatus(str, Enum):
    """Outcome of processing one tile in a viewport pass."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    DECODE_FAILED = "decode_failed"
    NO_LAYER = "no_layer"


@dataclass
class TileOutcome:
    tile: TileCoordinate
    status: TileStatus
    features: List[PointFeature] = field(default_factory=list)
    skipped_features: int = 0
    error: Optional[str] = None


@dataclass
class PassResult:
    """Aggregate result of one orchestration pass."""
    viewport: Viewport
    zoom: int
    center: TileCoordinate
    outcomes: List[TileOutcome] = field(default_factory=list)
    error: Optional[str] = None
    superseded: bool = False
    duration_seconds: float = 0.0

    @property
    def features(self) -> List[PointFeature]:
        return [feature for outcome in self.outcomes for feature in outcome.features]

    @property
    def skipped_features(self) -> int:
        return sum(outcome.skipped_features for outcome in self.outcomes)

    @property
    def tiles(self) -> List[TileCoordinate]:
        return [outcome.tile for outcome in self.outcomes]

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for outcome in self.outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zoom': self.zoom,
            'center_tile': self.center.tile_id,
            'tiles': [outcome.tile.tile_id for outcome in self.outcomes],
            'tiles_by_status': self.count_by_status(),
            'features_emitted': len(self.features),
            'skipped_features': self.skipped_features,
            'superseded': self.superseded,
            'error': self.error,
            'duration_seconds': self.duration_seconds
        }
