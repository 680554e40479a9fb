"""
Processed Tile Store

Records which tile columns/rows have already been fetched so that panning
the map does not fetch, decode and render the same tile twice.

Keys are built from (x, y) only. A tile seen at one zoom level is
therefore also treated as processed at every other zoom level; tests pin
this down so that changing it is a deliberate decision.
"""

import threading
from typing import List

import structlog


def tile_key(x: int, y: int) -> str:
    """Deduplication key for a tile column/row."""
    return f"{x}_{y}"


class ProcessedTileStore:
    """
    Thread-safe set of processed tile keys.

    The check-and-record step in ``should_process`` holds a lock, so two
    workers can never both be told to process the same key. Entries are
    never evicted; the store lives as long as the map session that owns it.
    """

    def __init__(self):
        self._keys = set()
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(component="ProcessedTileStore")

    def should_process(self, x: int, y: int) -> bool:
        """
        Return True the first time a (x, y) pair is seen, False afterwards.

        Args:
            x: Tile column
            y: Tile row

        Returns:
            Whether the caller should process this tile
        """
        key = tile_key(x, y)
        with self._lock:
            if key in self._keys:
                self.logger.debug("Tile already processed", tile_key=key)
                return False
            self._keys.add(key)
        return True

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._keys)

    def clear(self) -> None:
        with self._lock:
            count = len(self._keys)
            self._keys.clear()
        self.logger.info("Processed tile store cleared", keys_removed=count)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
