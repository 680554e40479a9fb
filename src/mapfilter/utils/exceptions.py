"""
Error Taxonomy

Exception hierarchy shared by every stage of the viewport pipeline.

Tile- and feature-level failures (fetch, decode, projection) are recoverable
and are absorbed by the orchestrator into per-tile outcomes. Only errors
outside this hierarchy are treated as unexpected and surfaced to the user.
"""

from typing import Any, Dict, Optional


class MapFilterError(Exception):
    """Base exception for all mapfilter errors."""

    default_code: str = "MAPFILTER_ERROR"

    def __init__(self, message: str = "", code: Optional[str] = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def to_error_dict(self) -> Dict[str, Any]:
        """Return a structured payload for logs and HTTP responses."""
        return {
            'error_type': type(self).__name__,
            'code': self.code,
            'message': self.message
        }


class ConfigurationError(MapFilterError):
    """Raised when configuration values are missing or out of range."""

    default_code = "CONFIG_INVALID"

    def __init__(self, key: str, value: Any, message: str):
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")

    def to_error_dict(self) -> Dict[str, Any]:
        payload = super().to_error_dict()
        payload['key'] = self.key
        return payload


class InvalidViewportError(MapFilterError, ValueError):
    """Viewport region is undefined or degenerate (zero or negative span)."""

    default_code = "VIEWPORT_INVALID"


class InvalidCoordinateError(MapFilterError, ValueError):
    """Latitude or longitude outside the valid geographic range."""

    default_code = "COORDINATE_INVALID"


class TileFetchError(MapFilterError):
    """A tile source could not be reached or returned an unusable response."""

    default_code = "TILE_FETCH_FAILED"

    def __init__(self, message: str, z: int, x: int, y: int):
        self.z = z
        self.x = x
        self.y = y
        super().__init__(message)

    @property
    def tile_id(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"

    def to_error_dict(self) -> Dict[str, Any]:
        payload = super().to_error_dict()
        payload['tile_id'] = self.tile_id
        return payload


class TileDecodeError(MapFilterError):
    """Tile bytes do not conform to the vector tile schema."""

    default_code = "TILE_DECODE_FAILED"


class FeatureProjectionError(MapFilterError):
    """A single feature carries coordinate data that cannot be projected."""

    default_code = "FEATURE_PROJECTION_FAILED"
