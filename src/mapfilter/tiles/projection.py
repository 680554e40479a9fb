"""
Coordinate Projector

Spherical Web Mercator math shared by the viewport orchestrator and the
feature projector, so both agree on where tile boundaries fall.

Pixel space for a zoom level is a square of ``tile_size * 2**zoom`` pixels
with the origin at the north-west corner of the world. Tile indices are
pixel coordinates integer-divided by the tile size.
"""

import math
from typing import Optional, Tuple

from .models import TileCoordinate, ViewportSpan
from ..utils.exceptions import InvalidCoordinateError, InvalidViewportError


MIN_LATITUDE = -85.05112878
MAX_LATITUDE = 85.05112878
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


def clip(value: float, min_value: float, max_value: float) -> float:
    """Clip a number to the specified minimum and maximum values."""
    return min(max(value, min_value), max_value)


class CoordinateProjector:
    """
    Converts between geographic positions, pixels and tile indices.

    Args:
        tile_size: Edge length of a tile in pixels
        max_zoom: Highest zoom level ``zoom_level`` will return
    """

    def __init__(self, tile_size: int = 512, max_zoom: int = 22):
        self.tile_size = tile_size
        self.max_zoom = max_zoom

    def map_size(self, zoom: int, tile_size: Optional[int] = None) -> int:
        """Width and height of the world in pixels at ``zoom``."""
        return (tile_size or self.tile_size) << zoom

    def zoom_level(self, span: ViewportSpan) -> int:
        """
        Derive the zoom level that fits a viewport's angular span.

        Uses ``floor(log2(360 / average_span))`` where the average span is the
        mean of the latitude and longitude extents.

        Raises:
            InvalidViewportError: If the average span is not a positive finite number
        """
        average_span = span.average_span
        if not math.isfinite(average_span) or average_span <= 0:
            raise InvalidViewportError(f"Viewport span must be positive and finite, got {average_span}")

        ratio = 360.0 / average_span
        if math.isinf(ratio):
            return self.max_zoom

        zoom = int(math.floor(math.log2(ratio)))
        return int(clip(zoom, 0, self.max_zoom))

    def lat_lon_to_pixel(
        self,
        latitude: float,
        longitude: float,
        zoom: int,
        tile_size: Optional[int] = None
    ) -> Tuple[int, int]:
        """
        Project a position to absolute pixel coordinates.

        Latitude is clipped to the Mercator limits and the result to the
        last pixel of the map, so the poles and the antimeridian stay inside
        the tile grid.
        """
        _check_position(latitude, longitude)

        latitude = clip(latitude, MIN_LATITUDE, MAX_LATITUDE)
        longitude = clip(longitude, MIN_LONGITUDE, MAX_LONGITUDE)

        x = (longitude + 180.0) / 360.0
        sin_latitude = math.sin(latitude * math.pi / 180.0)
        y = 0.5 - math.log((1 + sin_latitude) / (1 - sin_latitude)) / (4 * math.pi)

        map_size = self.map_size(zoom, tile_size)
        pixel_x = int(clip(math.floor(x * map_size), 0, map_size - 1))
        pixel_y = int(clip(math.floor(y * map_size), 0, map_size - 1))
        return pixel_x, pixel_y

    def pixel_to_lat_lon(
        self,
        pixel_x: float,
        pixel_y: float,
        zoom: int,
        tile_size: Optional[int] = None
    ) -> Tuple[float, float]:
        """
        Inverse of ``lat_lon_to_pixel``; accepts fractional pixels.

        Args:
            pixel_x: X coordinate in pixels
            pixel_y: Y coordinate in pixels
            zoom: Zoom level
            tile_size: Pixel size of a tile, when different from the configured one

        Returns:
            (latitude, longitude) in degrees
        """
        map_size = self.map_size(zoom, tile_size)
        x = clip(pixel_x, 0, map_size) / map_size - 0.5
        y = 0.5 - clip(pixel_y, 0, map_size) / map_size

        latitude = 90.0 - 360.0 * math.atan(math.exp(-y * 2 * math.pi)) / math.pi
        longitude = 360.0 * x
        return latitude, longitude

    def world_to_tile(self, longitude: float, latitude: float, zoom: int) -> TileCoordinate:
        """Return the tile containing a position at ``zoom``."""
        pixel_x, pixel_y = self.lat_lon_to_pixel(latitude, longitude, zoom)
        return TileCoordinate(
            x=pixel_x // self.tile_size,
            y=pixel_y // self.tile_size,
            z=zoom
        )

    def tile_bounds(self, tile: TileCoordinate) -> Tuple[float, float, float, float]:
        """Convert a tile to its bounding box (west, south, east, north) in degrees."""
        north, west = self.pixel_to_lat_lon(tile.x * self.tile_size, tile.y * self.tile_size, tile.z)
        south, east = self.pixel_to_lat_lon(
            (tile.x + 1) * self.tile_size,
            (tile.y + 1) * self.tile_size,
            tile.z
        )
        return (west, south, east, north)

    def tiles_per_axis(self, zoom: int) -> int:
        return 1 << zoom


def _check_position(latitude: float, longitude: float) -> None:
    if not -90.0 <= latitude <= 90.0:
        raise InvalidCoordinateError(f"Latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise InvalidCoordinateError(f"Longitude out of range: {longitude}")
