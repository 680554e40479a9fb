"""
Shared utilities: configuration, logging setup and the error taxonomy.
"""

from .config import Config
from .exceptions import (
    MapFilterError,
    ConfigurationError,
    InvalidViewportError,
    InvalidCoordinateError,
    TileFetchError,
    TileDecodeError,
    FeatureProjectionError
)
from .log_config import configure_logging

__all__ = [
    "Config",
    "MapFilterError",
    "ConfigurationError",
    "InvalidViewportError",
    "InvalidCoordinateError",
    "TileFetchError",
    "TileDecodeError",
    "FeatureProjectionError",
    "configure_logging"
]
