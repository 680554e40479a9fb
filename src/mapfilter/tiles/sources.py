"""
Tile Sources

Interchangeable providers of raw encoded tile bytes. A source answers
``fetch(z, x, y)`` with the tile bytes, or ``None`` when the tile does not
exist. Failures to reach the backing store raise ``TileFetchError``.

Two implementations are provided:
- ``HttpTileSource``: requests tiles from a ``{base_url}/{z}/{x}/{y}.{ext}`` endpoint
- ``BundledTileSource``: reads tiles shipped with the application
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

import requests
import structlog

from ..utils.config import SourceConfig
from ..utils.exceptions import ConfigurationError, TileFetchError


ALTERNATE_EXTENSIONS = {"mvt": "pbf", "pbf": "mvt"}


class TileSource(ABC):
    """Abstract base class for tile byte sources."""

    def __init__(self):
        self.logger = structlog.get_logger(source_type=self.__class__.__name__)

    @abstractmethod
    def fetch(self, z: int, x: int, y: int) -> Optional[bytes]:
        """
        Fetch encoded bytes for a tile.

        Args:
            z: Zoom level
            x: Tile column
            y: Tile row

        Returns:
            Tile bytes, or None when the tile does not exist
        """
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass


class HttpTileSource(TileSource):
    """Fetches tiles over HTTP(S) from a templated URL."""

    def __init__(
        self,
        base_url: str,
        url_template: str = "{base_url}/{z}/{x}/{y}.{ext}",
        extension: str = "mvt",
        timeout: float = 10.0,
        user_agent: str = "mapfilter/1.0",
        session: Optional[requests.Session] = None
    ):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.url_template = url_template
        self.extension = extension
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept-Encoding": "gzip, deflate"
        })

    def tile_url(self, z: int, x: int, y: int) -> str:
        return self.url_template.format(
            base_url=self.base_url,
            z=z,
            x=x,
            y=y,
            ext=self.extension
        )

    def fetch(self, z: int, x: int, y: int) -> Optional[bytes]:
        url = self.tile_url(z, x, y)

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TileFetchError(f"Request for tile failed: {e}", z, x, y) from e

        if response.status_code in (204, 404):
            self.logger.debug("Tile not found", url=url, status_code=response.status_code)
            return None

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise TileFetchError(
                f"Tile endpoint returned HTTP {response.status_code}", z, x, y
            ) from e

        content = response.content
        if not content:
            return None

        self.logger.debug("Fetched tile", url=url, size_bytes=len(content))
        return content

    def close(self) -> None:
        self.session.close()


class BundledTileSource(TileSource):
    """
    Reads tiles bundled with the application.

    Tiles are looked up as ``{z}_{x}_{y}.{ext}`` in the bundle directory,
    falling back to the ``{z}/{x}/{y}.{ext}`` directory layout written by
    tile generators. ``mvt`` and ``pbf`` extensions are interchangeable.
    """

    def __init__(self, bundle_dir: Union[str, Path], extension: str = "mvt"):
        super().__init__()
        self.bundle_dir = Path(bundle_dir)
        self.extension = extension

    def candidate_paths(self, z: int, x: int, y: int) -> List[Path]:
        extensions = [self.extension]
        if self.extension in ALTERNATE_EXTENSIONS:
            extensions.append(ALTERNATE_EXTENSIONS[self.extension])

        paths = []
        for ext in extensions:
            paths.append(self.bundle_dir / f"{z}_{x}_{y}.{ext}")
            paths.append(self.bundle_dir / str(z) / str(x) / f"{y}.{ext}")
        return paths

    def fetch(self, z: int, x: int, y: int) -> Optional[bytes]:
        for path in self.candidate_paths(z, x, y):
            if not path.is_file():
                continue
            try:
                content = path.read_bytes()
            except OSError as e:
                raise TileFetchError(f"Could not read bundled tile {path}: {e}", z, x, y) from e

            self.logger.debug("Loaded bundled tile", path=str(path), size_bytes=len(content))
            return content or None

        self.logger.debug("Bundled tile not found", tile_id=f"{z}/{x}/{y}")
        return None


def create_tile_source(config: SourceConfig) -> TileSource:
    """
    Build the tile source named by ``config.kind``.

    Raises:
        ConfigurationError: If the kind is not recognised
    """
    if config.kind == "http":
        return HttpTileSource(
            base_url=config.base_url,
            url_template=config.url_template,
            extension=config.extension,
            timeout=config.timeout_seconds,
            user_agent=config.user_agent
        )
    if config.kind == "bundled":
        return BundledTileSource(config.bundle_dir, extension=config.extension)

    raise ConfigurationError("source.kind", config.kind, "unknown tile source")
