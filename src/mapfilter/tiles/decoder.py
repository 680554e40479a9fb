"""
Vector Tile Decoder

Decodes Mapbox Vector Tile (MVT) payloads into named layers of features.

Feature coordinates are left in tile-local integer space: ``0..extent`` on
both axes, with the origin at the top-left corner of the tile and y
growing downwards. The layer's ``extent`` (4096 for most producers) is kept
on each ``DecodedLayer`` so the feature projector can scale coordinates
back to geographic positions.
"""

import gzip
import zlib
from typing import Any, Dict, Optional

import mapbox_vector_tile
import structlog

from .models import DecodedFeature, DecodedLayer, DecodedTile, GeometryKind
from ..utils.exceptions import TileDecodeError


GZIP_MAGIC = b"\x1f\x8b"

# MVT standard extent
DEFAULT_EXTENT = 4096


class VectorTileDecoder:
    """Turns raw tile bytes into a ``DecodedTile``."""

    def __init__(self):
        self.logger = structlog.get_logger(component="VectorTileDecoder")

    def decode(self, raw: Optional[bytes]) -> Optional[DecodedTile]:
        """
        Decode a tile.

        Args:
            raw: Encoded tile bytes, optionally gzip-compressed

        Returns:
            Decoded tile, or None when there is no data to decode

        Raises:
            TileDecodeError: If the bytes are not a valid vector tile
        """
        if not raw:
            return None

        data = self._decompress(raw)

        try:
            decoded = mapbox_vector_tile.decode(data, default_options={'y_coord_down': True})
        except Exception as e:
            raise TileDecodeError(f"Malformed vector tile: {e}") from e

        if not isinstance(decoded, dict):
            raise TileDecodeError(f"Unexpected decoder output: {type(decoded).__name__}")

        layers = {}
        for name, layer_data in decoded.items():
            layers[name] = self._build_layer(name, layer_data)

        tile = DecodedTile(layers=layers)
        self.logger.debug(
            "Decoded tile",
            layers=tile.layer_names,
            feature_count=tile.feature_count,
            size_bytes=len(raw)
        )
        return tile

    def _decompress(self, raw: bytes) -> bytes:
        """Strip gzip compression when present."""
        if not raw.startswith(GZIP_MAGIC):
            return raw
        try:
            return gzip.decompress(raw)
        except (OSError, EOFError, zlib.error) as e:
            raise TileDecodeError(f"Corrupt gzip tile payload: {e}") from e

    def _build_layer(self, name: str, layer_data: Dict[str, Any]) -> DecodedLayer:
        if not isinstance(layer_data, dict):
            raise TileDecodeError(f"Layer {name!r} has unexpected structure")

        features = []
        for feature in layer_data.get('features', []):
            geometry = feature.get('geometry') or {}
            features.append(DecodedFeature(
                geometry_kind=GeometryKind.from_name(geometry.get('type')),
                coordinates=geometry.get('coordinates'),
                properties=dict(feature.get('properties') or {}),
                feature_id=feature.get('id')
            ))

        return DecodedLayer(
            name=name,
            features=features,
            extent=layer_data.get('extent', DEFAULT_EXTENT),
            version=layer_data.get('version', 2)
        )
