"""
Tile Module

Everything between a tile address and a list of markers:
- Web Mercator projection and zoom derivation
- Deduplication of processed tiles
- Tile byte sources (HTTP and bundled files)
- Mapbox Vector Tile decoding
- Projection of point features to geographic markers
"""

from .models import (
    GeoPosition,
    ViewportSpan,
    Viewport,
    TileCoordinate,
    GeometryKind,
    DecodedFeature,
    DecodedLayer,
    DecodedTile,
    PointFeature,
    ProjectedLayer,
    TileStatus,
    TileOutcome,
    PassResult
)
from .projection import CoordinateProjector
from .tile_store import ProcessedTileStore, tile_key
from .sources import TileSource, HttpTileSource, BundledTileSource, create_tile_source
from .decoder import VectorTileDecoder
from .feature_projector import FeatureProjector, format_label

__all__ = [
    "GeoPosition",
    "ViewportSpan",
    "Viewport",
    "TileCoordinate",
    "GeometryKind",
    "DecodedFeature",
    "DecodedLayer",
    "DecodedTile",
    "PointFeature",
    "ProjectedLayer",
    "TileStatus",
    "TileOutcome",
    "PassResult",
    "CoordinateProjector",
    "ProcessedTileStore",
    "tile_key",
    "TileSource",
    "HttpTileSource",
    "BundledTileSource",
    "create_tile_source",
    "VectorTileDecoder",
    "FeatureProjector",
    "format_label"
]
