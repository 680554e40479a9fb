"""
Rendering Sinks

Receivers of the markers and error notifications produced by viewport
passes. The map UI implements ``RenderingSink``; ``MarkerCollector`` keeps
everything in memory for the HTTP service and for tests.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

import structlog

from ..tiles.models import PointFeature


class RenderingSink(ABC):
    """Where markers and user-facing errors are delivered."""

    @abstractmethod
    def add_features(self, features: Sequence[PointFeature]) -> None:
        """Display a batch of markers."""
        pass

    @abstractmethod
    def show_error(self, message: str) -> None:
        """Show a single human-readable error notification."""
        pass


class MarkerCollector(RenderingSink):
    """In-memory sink that accumulates markers and error messages."""

    def __init__(self):
        self._markers: List[PointFeature] = []
        self._errors: List[str] = []
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(component="MarkerCollector")

    def add_features(self, features: Sequence[PointFeature]) -> None:
        with self._lock:
            self._markers.extend(features)
        self.logger.debug("Markers added", count=len(features))

    def show_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)
        self.logger.warning("Error notification", message=message)

    @property
    def markers(self) -> List[PointFeature]:
        with self._lock:
            return list(self._markers)

    @property
    def errors(self) -> List[str]:
        with self._lock:
            return list(self._errors)

    def clear(self) -> None:
        with self._lock:
            self._markers.clear()
            self._errors.clear()

    def to_geojson(self) -> Dict[str, Any]:
        """Return the collected markers as a GeoJSON FeatureCollection."""
        return features_to_geojson(self.markers)


def features_to_geojson(features: Sequence[PointFeature]) -> Dict[str, Any]:
    return {
        'type': 'FeatureCollection',
        'features': [feature.to_geojson() for feature in features]
    }
