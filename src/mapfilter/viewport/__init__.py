"""
Viewport Module

Reacts to map viewport changes: the event channel, the rendering sink
interface and the orchestrator that turns a viewport into markers.
"""

from .events import ViewportEventBus
from .sinks import RenderingSink, MarkerCollector, features_to_geojson
from .orchestrator import ViewportOrchestrator, DEFAULT_CENTER, DEFAULT_RADIUS_MILES

__all__ = [
    "ViewportEventBus",
    "RenderingSink",
    "MarkerCollector",
    "features_to_geojson",
    "ViewportOrchestrator",
    "DEFAULT_CENTER",
    "DEFAULT_RADIUS_MILES"
]
