"""
Viewport Orchestrator

Runs one pass per viewport-change event: derive the zoom level and the
center tile, walk the surrounding neighborhood of tiles, and for each tile
not seen before fetch, decode and project its point-of-interest layer into
markers for the rendering sink.

Per-tile problems (tile missing, source unreachable, corrupt bytes, no POI
layer) are recorded as ``TileOutcome`` values and never stop the pass.
Anything else is unexpected: it ends the pass and is reported once through
``RenderingSink.show_error``. Tiles recorded in the processed tile store
before the failure stay recorded.

A newer viewport supersedes a running pass: tiles not yet started are
abandoned and never recorded, while tiles already started finish and
deliver their markers.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

import structlog

from .events import ViewportEventBus
from .sinks import RenderingSink
from ..monitoring.metrics import MetricsCollector
from ..tiles.decoder import VectorTileDecoder
from ..tiles.feature_projector import FeatureProjector
from ..tiles.models import (
    GeoPosition,
    PassResult,
    TileCoordinate,
    TileOutcome,
    TileStatus,
    Viewport
)
from ..tiles.projection import CoordinateProjector
from ..tiles.sources import TileSource, create_tile_source
from ..tiles.tile_store import ProcessedTileStore
from ..utils.config import Config
from ..utils.exceptions import (
    InvalidCoordinateError,
    InvalidViewportError,
    TileDecodeError,
    TileFetchError
)


# Initial map region of the application
DEFAULT_CENTER = GeoPosition(latitude=38.2527, longitude=-85.7585)
DEFAULT_RADIUS_MILES = 1.5


class ViewportOrchestrator:
    """
    Drives viewport passes.

    Args:
        config: Configuration object
        tile_source: Provider of raw tile bytes
        sink: Receiver of markers and error notifications
        tile_store: Processed tile store (a new one when omitted)
        projector: Coordinate projector (built from ``config.tiles`` when omitted)
        decoder: Vector tile decoder
        feature_projector: Feature projector (shares ``projector`` when omitted)
        metrics: Metrics collector
    """

    def __init__(
        self,
        config: Config,
        tile_source: TileSource,
        sink: RenderingSink,
        tile_store: Optional[ProcessedTileStore] = None,
        projector: Optional[CoordinateProjector] = None,
        decoder: Optional[VectorTileDecoder] = None,
        feature_projector: Optional[FeatureProjector] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.config = config
        self.tile_source = tile_source
        self.sink = sink
        self.tile_store = tile_store if tile_store is not None else ProcessedTileStore()
        self.projector = projector or CoordinateProjector(
            tile_size=config.tiles.tile_size,
            max_zoom=config.tiles.max_zoom
        )
        self.decoder = decoder or VectorTileDecoder()
        self.feature_projector = feature_projector or FeatureProjector(self.projector)
        self.metrics = metrics or MetricsCollector(
            enabled=config.metrics.enabled,
            namespace=config.metrics.namespace
        )

        self.poi_layer = config.orchestration.poi_layer
        self.radius = config.orchestration.neighborhood_radius
        self.max_workers = config.orchestration.max_workers

        self._timed_process_tile = self.metrics.time_function('tile_processing_duration_seconds')(
            self.process_tile
        )

        self._generation = 0
        self._generation_lock = threading.Lock()

        self.logger = structlog.get_logger(
            component="ViewportOrchestrator",
            poi_layer=self.poi_layer
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        sink: RenderingSink,
        tile_source: Optional[TileSource] = None
    ) -> "ViewportOrchestrator":
        """Build an orchestrator whose tile source is chosen by ``config.source``."""
        return cls(
            config=config,
            tile_source=tile_source or create_tile_source(config.source),
            sink=sink
        )

    def attach(self, bus: ViewportEventBus) -> Callable[[], None]:
        """Subscribe to viewport changes; returns the unsubscribe callable."""
        return bus.subscribe(self.on_viewport_changed)

    def on_viewport_changed(self, viewport: Optional[Viewport]) -> Optional[PassResult]:
        """
        Run one pass for a viewport-change event.

        Args:
            viewport: The new visible region, or None when it is not established yet

        Returns:
            The pass result, or None when the viewport was unusable
        """
        if viewport is None:
            self.logger.debug("Viewport not established; ignoring change")
            return None

        try:
            zoom = self.projector.zoom_level(viewport.span)
            center = self.projector.world_to_tile(
                viewport.center.longitude,
                viewport.center.latitude,
                zoom
            )
        except (InvalidViewportError, InvalidCoordinateError) as e:
            self.logger.debug("Ignoring unusable viewport", error=str(e))
            return None

        generation = self._next_generation()
        result = PassResult(viewport=viewport, zoom=zoom, center=center)
        start_time = time.time()

        try:
            tiles = self.neighborhood(center)
            if self.max_workers > 1:
                self._run_concurrent(tiles, result, generation)
            else:
                self._run_sequential(tiles, result, generation)

        except Exception as e:
            result.error = str(e) or type(e).__name__
            self.logger.error(
                "Viewport pass failed",
                center_tile=center.tile_id,
                error=result.error,
                exc_info=True
            )
            self._notify_error(result.error)

        result.duration_seconds = time.time() - start_time
        self._record_pass(result)
        return result

    def neighborhood(self, center: TileCoordinate) -> List[TileCoordinate]:
        """
        Tiles within ``neighborhood_radius`` of ``center``, center included.

        Columns wrap around the antimeridian; rows beyond the top or bottom of
        the world are dropped.
        """
        tiles_per_axis = self.projector.tiles_per_axis(center.z)
        tiles = []
        seen = set()

        for dx in range(-self.radius, self.radius + 1):
            for dy in range(-self.radius, self.radius + 1):
                y = center.y + dy
                if not 0 <= y < tiles_per_axis:
                    continue
                tile = TileCoordinate(x=(center.x + dx) % tiles_per_axis, y=y, z=center.z)
                if tile in seen:
                    continue
                seen.add(tile)
                tiles.append(tile)

        return tiles

    def process_tile(self, tile: TileCoordinate) -> TileOutcome:
        """
        Fetch, decode and project one tile.

        Expected failures become a non-success ``TileOutcome``; unexpected
        exceptions propagate to the pass.
        """
        if not self.tile_store.should_process(tile.x, tile.y):
            return TileOutcome(tile=tile, status=TileStatus.SKIPPED)

        try:
            raw = self.tile_source.fetch(tile.z, tile.x, tile.y)
        except TileFetchError as e:
            self.logger.warning("Tile fetch failed", tile_id=tile.tile_id, error=str(e))
            return TileOutcome(tile=tile, status=TileStatus.FETCH_FAILED, error=str(e))

        if raw is None:
            self.logger.warning("Tile not available", tile_id=tile.tile_id)
            return TileOutcome(tile=tile, status=TileStatus.NOT_FOUND)

        try:
            decoded = self.decoder.decode(raw)
        except TileDecodeError as e:
            self.logger.warning("Tile decode failed", tile_id=tile.tile_id, error=str(e))
            return TileOutcome(tile=tile, status=TileStatus.DECODE_FAILED, error=str(e))

        if decoded is None:
            return TileOutcome(tile=tile, status=TileStatus.NOT_FOUND)

        layer = decoded.get_layer(self.poi_layer)
        if layer is None:
            self.logger.info(
                "Tile has no POI layer",
                tile_id=tile.tile_id,
                layers=decoded.layer_names
            )
            return TileOutcome(tile=tile, status=TileStatus.NO_LAYER)

        projected = self.feature_projector.project(layer, tile)
        return TileOutcome(
            tile=tile,
            status=TileStatus.SUCCESS,
            features=projected.markers,
            skipped_features=projected.skipped_features
        )

    def _process_current_tile(self, tile: TileCoordinate, generation: int) -> Optional[TileOutcome]:
        """Process ``tile`` unless a newer viewport has superseded ``generation``."""
        if self._superseded(generation):
            return None
        return self._timed_process_tile(tile)

    def _run_sequential(self, tiles: List[TileCoordinate], result: PassResult, generation: int) -> None:
        for tile in tiles:
            outcome = self._process_current_tile(tile, generation)
            if outcome is None:
                result.superseded = True
                self.logger.info(
                    "Pass superseded by a newer viewport",
                    pending_tiles=len(tiles) - len(result.outcomes)
                )
                return
            self._record_outcome(result, outcome)

    def _run_concurrent(self, tiles: List[TileCoordinate], result: PassResult, generation: int) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="tile-worker") as executor:
            future_to_tile = {
                executor.submit(self._process_current_tile, tile, generation): tile
                for tile in tiles
            }
            try:
                for future in as_completed(future_to_tile):
                    if future.cancelled():
                        continue

                    # Tiles that were started are in the store; deliver their markers
                    outcome = future.result()
                    if outcome is not None:
                        self._record_outcome(result, outcome)

                    if not result.superseded and self._superseded(generation):
                        result.superseded = True
                        cancelled = sum(1 for pending in future_to_tile if pending.cancel())
                        self.logger.info("Pass superseded by a newer viewport", cancelled_tiles=cancelled)
            except Exception:
                for pending in future_to_tile:
                    pending.cancel()
                raise

    def _record_outcome(self, result: PassResult, outcome: TileOutcome) -> None:
        result.outcomes.append(outcome)
        self.metrics.increment_counter('tiles_processed_total', labels={'status': outcome.status.value})

        if outcome.skipped_features:
            self.metrics.increment_counter('point_features_skipped_total', outcome.skipped_features)

        if outcome.features:
            self.sink.add_features(outcome.features)
            self.metrics.increment_counter('point_features_emitted_total', len(outcome.features))

    def _record_pass(self, result: PassResult) -> None:
        status = 'success' if result.succeeded else 'error'
        self.metrics.increment_counter('viewport_passes_total', labels={'status': status})
        self.metrics.record_histogram('viewport_pass_duration_seconds', result.duration_seconds)
        self.metrics.set_gauge('processed_tiles', len(self.tile_store))

        self.logger.info(
            "Viewport pass completed",
            zoom=result.zoom,
            center_tile=result.center.tile_id,
            tiles_by_status=result.count_by_status(),
            features_emitted=len(result.features),
            status=status,
            duration_seconds=round(result.duration_seconds, 4)
        )

    def _notify_error(self, message: str) -> None:
        try:
            self.sink.show_error(message)
        except Exception as e:
            self.logger.error("Failed to deliver error notification", error=str(e))

    def _next_generation(self) -> int:
        with self._generation_lock:
            self._generation += 1
            return self._generation

    def _superseded(self, generation: int) -> bool:
        with self._generation_lock:
            return self._generation != generation
