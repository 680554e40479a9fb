"""
MapFilter Server

FastAPI adapter around the viewport orchestrator. It serves bundled vector
tiles, accepts viewport changes from a map client and returns the markers
each pass produced.
"""

from pathlib import Path
from typing import Optional

import aiofiles
import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field

from . import __version__
from .tiles.decoder import GZIP_MAGIC
from .tiles.models import GeoPosition, TileCoordinate, Viewport, ViewportSpan
from .tiles.sources import BundledTileSource
from .utils.config import Config
from .utils.log_config import configure_logging
from .viewport.orchestrator import ViewportOrchestrator
from .viewport.sinks import MarkerCollector, features_to_geojson


TILE_FORMATS = ("mvt", "pbf")

logger = structlog.get_logger()


class PositionModel(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class SpanModel(BaseModel):
    latitude_degrees: float
    longitude_degrees: float


class ViewportRequest(BaseModel):
    """Visible map region; ``center`` or ``span`` may be null while the map is loading."""
    center: Optional[PositionModel] = None
    span: Optional[SpanModel] = None


def create_app(
    config: Optional[Config] = None,
    orchestrator: Optional[ViewportOrchestrator] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration object (read from the environment when omitted)
        orchestrator: Orchestrator to drive; built from ``config`` when omitted.
            Its sink must be a ``MarkerCollector``.
    """
    config = config or Config.from_env()
    if orchestrator is None:
        orchestrator = ViewportOrchestrator.from_config(config, sink=MarkerCollector())
    if not isinstance(orchestrator.sink, MarkerCollector):
        raise TypeError("The server requires an orchestrator with a MarkerCollector sink")

    sink: MarkerCollector = orchestrator.sink
    tile_dir = Path(config.source.bundle_dir)

    app = FastAPI(
        title="MapFilter Server",
        description="Point-of-interest markers from vector tiles",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.orchestrator = orchestrator

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "mapfilter-server",
            "version": __version__,
            "tile_directory": str(tile_dir),
            "processed_tiles": len(orchestrator.tile_store)
        }

    @app.get("/")
    async def root():
        """Root endpoint with server information."""
        return {
            "service": "MapFilter Server",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "tiles": "/tiles/{z}/{x}/{y}.{format}",
                "bounds": "/bounds/{z}/{x}/{y}",
                "viewport": "/viewport",
                "markers": "/markers",
                "stats": "/stats",
                "metrics": "/metrics",
                "docs": "/docs"
            },
            "supported_formats": list(TILE_FORMATS),
            "poi_layer": config.orchestration.poi_layer
        }

    @app.get("/tiles/{z}/{x}/{y}.{format}")
    async def get_tile(z: int, x: int, y: int, format: str):
        """
        Serve a bundled vector tile.

        Args:
            z: Zoom level
            x: Tile X coordinate
            y: Tile Y coordinate
            format: Tile format (mvt, pbf)
        """
        if z < 0 or z > config.tiles.max_zoom:
            raise HTTPException(status_code=400, detail="Invalid zoom level")

        if format not in TILE_FORMATS:
            raise HTTPException(status_code=400, detail="Unsupported format")

        source = BundledTileSource(tile_dir, extension=format)
        for tile_path in source.candidate_paths(z, x, y):
            if not tile_path.is_file():
                continue

            async with aiofiles.open(tile_path, 'rb') as f:
                content = await f.read()

            headers = {"Cache-Control": "public, max-age=3600"}
            if content.startswith(GZIP_MAGIC):
                headers["Content-Encoding"] = "gzip"

            logger.info("Serving tile", z=z, x=x, y=y, format=format, path=str(tile_path))
            return Response(content=content, media_type="application/x-protobuf", headers=headers)

        raise HTTPException(status_code=404, detail="Tile not found")

    @app.get("/bounds/{z}/{x}/{y}")
    async def get_tile_bounds(z: int, x: int, y: int):
        """Get geographic bounds for a tile."""
        projector = orchestrator.projector
        if z < 0 or z > config.tiles.max_zoom:
            raise HTTPException(status_code=400, detail="Invalid zoom level")
        if not (0 <= x < projector.tiles_per_axis(z) and 0 <= y < projector.tiles_per_axis(z)):
            raise HTTPException(status_code=400, detail="Tile outside the grid")

        west, south, east, north = projector.tile_bounds(TileCoordinate(x=x, y=y, z=z))
        return {
            "z": z,
            "x": x,
            "y": y,
            "bounds": {"west": west, "south": south, "east": east, "north": north},
            "bbox": [west, south, east, north]
        }

    @app.post("/viewport")
    def viewport_changed(request: ViewportRequest):
        """Run one orchestration pass for a viewport change."""
        if request.center is None or request.span is None:
            return {"status": "ignored", "reason": "viewport not established"}

        viewport = Viewport(
            center=GeoPosition(latitude=request.center.latitude, longitude=request.center.longitude),
            span=ViewportSpan(
                latitude_degrees=request.span.latitude_degrees,
                longitude_degrees=request.span.longitude_degrees
            )
        )

        result = orchestrator.on_viewport_changed(viewport)
        if result is None:
            return {"status": "ignored", "reason": "viewport span is not usable"}

        return {
            "status": "ok" if result.succeeded else "error",
            "pass": result.to_dict(),
            "markers": features_to_geojson(result.features)
        }

    @app.get("/markers")
    async def get_markers():
        """All markers rendered so far."""
        return sink.to_geojson()

    @app.get("/stats")
    async def get_stats():
        """Get server statistics."""
        return {
            "processed_tiles": len(orchestrator.tile_store),
            "markers": len(sink.markers),
            "errors": sink.errors,
            "metrics": orchestrator.metrics.get_system_health()
        }

    @app.get("/metrics")
    async def get_metrics():
        """Prometheus exposition of the orchestrator metrics."""
        return PlainTextResponse(
            orchestrator.metrics.export_metrics("prometheus"),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.post("/reset")
    async def reset():
        """Forget processed tiles and rendered markers."""
        orchestrator.tile_store.clear()
        sink.clear()
        return {"status": "success", "message": "Processed tiles and markers cleared"}

    return app


def main() -> None:
    """Run the server with uvicorn."""
    config = Config.from_env()
    configure_logging(level=config.server.log_level)

    logger.info(
        "Starting MapFilter Server",
        tile_dir=config.source.bundle_dir,
        source=config.source.kind,
        port=config.server.port
    )

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
        access_log=True
    )


if __name__ == "__main__":
    main()
