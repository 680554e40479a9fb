"""
MapFilter

Turns a visible map viewport into point-of-interest markers: the viewport
is translated into a neighborhood of map tiles, each tile's Mapbox Vector
Tile payload is fetched and decoded, and its point features are projected
back to geographic positions for rendering.
"""

__version__ = "1.0.0"

# Core modules
from . import utils
from . import tiles
from . import monitoring
from . import viewport

__all__ = [
    "utils",
    "tiles",
    "monitoring",
    "viewport"
]
