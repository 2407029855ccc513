"""
Tile Cache - persistent raster tile storage keyed by URL.

Features:
- SQLite store that survives restarts
- One network fetch per URL; later lookups are served from disk
- Failed fetches are never cached; callers fall back to the origin URL
"""

import time
import sqlite3
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence
from urllib.parse import quote

import requests

from core.errors import TileFetchError
from core.settings import MapSettings, get_settings
from loaders.http import make_retrying, make_session

log = logging.getLogger(__name__)


def tile_url(base_url: str, region_ids: Sequence[str], z: int, x: int, y: int) -> str:
    """
    Address of one tile: {base}/{region ids...}/{z}/{x}/{y}.png

    Region identifiers (e.g. "Shajra Parcha", tehsil, mauza) are URL-quoted.
    """
    segments = [quote(str(part), safe="") for part in region_ids]
    return "/".join([base_url.rstrip("/"), *segments, str(z), str(x), f"{y}.png"])


@dataclass
class TileResult:
    """
    Outcome of resolving a tile.

    data is None when the tile could not be fetched through the cache; the
    renderer should then request url directly from its origin.
    """
    url: str
    data: Optional[bytes]
    from_cache: bool = False


class TileStore:
    """SQLite key-value store for tile bytes."""

    def __init__(self, db_path: str = "tile_cache.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5.0)

    def _init_db(self):
        conn = self._connect()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tiles (
                url TEXT PRIMARY KEY,
                data BLOB NOT NULL,
                content_type TEXT,
                created_at REAL
            )
        """)
        conn.commit()
        conn.close()

    def get(self, url: str) -> Optional[bytes]:
        conn = self._connect()
        row = conn.execute("SELECT data FROM tiles WHERE url = ?", (url,)).fetchone()
        conn.close()
        if row:
            return bytes(row[0])
        return None

    def set(self, url: str, data: bytes, content_type: str = "image/png"):
        conn = self._connect()
        conn.execute(
            """INSERT OR REPLACE INTO tiles
               (url, data, content_type, created_at)
               VALUES (?, ?, ?, ?)""",
            (url, sqlite3.Binary(data), content_type, time.time())
        )
        conn.commit()
        conn.close()

    def clear(self) -> int:
        conn = self._connect()
        cursor = conn.execute("DELETE FROM tiles")
        conn.commit()
        conn.close()
        return cursor.rowcount

    def stats(self) -> Dict[str, int]:
        conn = self._connect()
        count, total = conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(LENGTH(data)), 0) FROM tiles"
        ).fetchone()
        conn.close()
        return {"tiles": count, "bytes": total}


class TileCache:
    """
    Fetch-through cache for raster tiles.

    The same URL always serves the same bytes, so entries never expire; they
    are only dropped by clear(). Two concurrent misses for one URL may both
    reach the network; the second write simply replaces the first.
    """

    def __init__(
        self,
        store: Optional[TileStore] = None,
        settings: Optional[MapSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or TileStore(self.settings.tile_cache_path)
        self.session = session or make_session()

    def get_or_fetch(self, url: str) -> bytes:
        """
        Return the tile's bytes, fetching and storing them on a miss.

        Raises:
            TileFetchError: the origin answered with an error status, returned
                an empty body, or could not be reached
        """
        cached = self.store.get(url)
        if cached is not None:
            log.debug(f"Tile cache hit: {url}")
            return cached

        data, content_type = self._fetch(url)
        self.store.set(url, data, content_type)
        log.debug(f"Tile cached: {url} ({len(data)} bytes)")
        return data

    def resolve(self, url: str) -> TileResult:
        """Like get_or_fetch, but a failed fetch yields a direct-from-origin result."""
        cached = self.store.get(url)
        if cached is not None:
            return TileResult(url=url, data=cached, from_cache=True)
        try:
            return TileResult(url=url, data=self.get_or_fetch(url))
        except TileFetchError as e:
            log.warning(f"{e}; falling back to origin")
            return TileResult(url=url, data=None)

    def clear(self) -> int:
        """Delete every cached tile."""
        removed = self.store.clear()
        log.info(f"All cached tiles deleted ({removed})")
        return removed

    def stats(self) -> Dict[str, int]:
        return self.store.stats()

    def _fetch(self, url: str):
        try:
            response = make_retrying(self.settings)(
                self.session.get, url, timeout=self.settings.request_timeout_seconds
            )
        except requests.RequestException as e:
            raise TileFetchError(url, reason=str(e)) from e

        if not 200 <= response.status_code < 300:
            raise TileFetchError(url, status=response.status_code)
        if not response.content:
            raise TileFetchError(url, reason="empty body")
        content_type = response.headers.get("Content-Type", "image/png")
        return response.content, content_type


# Singleton instance
_tile_cache: Optional[TileCache] = None

def get_tile_cache() -> TileCache:
    """Get the singleton tile cache."""
    global _tile_cache
    if _tile_cache is None:
        _tile_cache = TileCache()
    return _tile_cache
