"""
Feature Projector

Converts point features of a decoded layer from tile-local coordinates to
geographic positions and wraps them as renderable markers.

A tile-local coordinate (px, py) inside tile (x, y, z) with extent E sits
at absolute pixel (x * E + px, y * E + py) of a world that is E * 2**z
pixels wide, which the coordinate projector inverts to latitude/longitude.
"""

import math
from numbers import Real
from typing import List

import structlog

from .models import (
    DecodedFeature,
    DecodedLayer,
    GeoPosition,
    GeometryKind,
    PointFeature,
    ProjectedLayer,
    TileCoordinate
)
from .projection import CoordinateProjector
from ..utils.exceptions import FeatureProjectionError, InvalidCoordinateError


def format_label(longitude: float, latitude: float) -> str:
    """Marker label: ``"{lon},{lat}"`` with round-trip float formatting."""
    return f"{longitude!r},{latitude!r}"


class FeatureProjector:
    """Projects point features of a layer into geographic markers."""

    def __init__(self, projector: CoordinateProjector):
        self.projector = projector
        self.logger = structlog.get_logger(component="FeatureProjector")

    def project_layer(
        self,
        layer: DecodedLayer,
        tile_x: int,
        tile_y: int,
        zoom: int
    ) -> List[PointFeature]:
        """
        Project every Point feature of ``layer``.

        Features of other geometry kinds are ignored. A feature whose
        coordinates cannot be projected is logged and skipped without
        affecting the rest of the layer.

        Args:
            layer: Decoded layer
            tile_x: Column of the tile the layer came from
            tile_y: Row of the tile the layer came from
            zoom: Zoom level of the tile

        Returns:
            Markers in layer order
        """
        return self.project(layer, TileCoordinate(x=tile_x, y=tile_y, z=zoom)).markers

    def project(self, layer: DecodedLayer, tile: TileCoordinate) -> ProjectedLayer:
        """Like ``project_layer``, also reporting how many point features were skipped."""
        projected = ProjectedLayer()

        for index, feature in enumerate(layer.features):
            if feature.geometry_kind is not GeometryKind.POINT:
                continue
            try:
                projected.markers.append(self.project_feature(feature, tile, layer.extent))
            except FeatureProjectionError as e:
                projected.skipped_features += 1
                self.logger.warning(
                    "Skipping feature with unprojectable geometry",
                    layer=layer.name,
                    tile_id=tile.tile_id,
                    feature_index=index,
                    error=str(e)
                )

        self.logger.debug(
            "Projected layer",
            layer=layer.name,
            tile_id=tile.tile_id,
            markers=len(projected.markers),
            skipped=projected.skipped_features
        )
        return projected

    def project_feature(
        self,
        feature: DecodedFeature,
        tile: TileCoordinate,
        extent: int
    ) -> PointFeature:
        """
        Project a single Point feature.

        Raises:
            FeatureProjectionError: If the coordinates are missing or not numeric
        """
        if feature.geometry_kind is not GeometryKind.POINT:
            raise FeatureProjectionError(f"Not a point feature: {feature.geometry_kind.value}")

        local_x, local_y = _point_coordinates(feature.coordinates)
        if not extent or extent <= 0:
            raise FeatureProjectionError(f"Invalid layer extent: {extent}")

        latitude, longitude = self.projector.pixel_to_lat_lon(
            tile.x * extent + local_x,
            tile.y * extent + local_y,
            tile.z,
            tile_size=extent
        )

        try:
            position = GeoPosition(latitude=latitude, longitude=longitude)
        except InvalidCoordinateError as e:
            raise FeatureProjectionError(str(e)) from e

        return PointFeature(
            position=position,
            label=format_label(longitude, latitude),
            properties=feature.properties
        )


def _point_coordinates(coordinates) -> tuple:
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
        raise FeatureProjectionError(f"Malformed point coordinates: {coordinates!r}")

    x, y = coordinates[0], coordinates[1]
    for value in (x, y):
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise FeatureProjectionError(f"Malformed point coordinates: {coordinates!r}")
    return float(x), float(y)
