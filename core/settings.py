"""
Map Settings

Every tunable value of the map engine lives here, with an explicit meaning.
Values come from defaults, a JSON file, or PARCEL_MAP_* environment variables.
"""

import json
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Dict, Optional
import logging

log = logging.getLogger(__name__)

ENV_PREFIX = "PARCEL_MAP_"


# ═══════════════════════════════════════════════════════════════════════════
# MAP SETTINGS
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class MapSettings:
    """
    All configurable settings for the map engine.

    Field names map to environment variables by upper-casing and adding the
    PARCEL_MAP_ prefix, e.g. tile_cache_path -> PARCEL_MAP_TILE_CACHE_PATH.
    """

    # Servers
    api_base_url: str = "http://localhost:5000"
    """Backend serving mauza boundary GeoJSON under /api/geojson/."""

    public_base_url: str = "http://localhost:3000"
    """Static file server holding 'JSON Murabba' sub-grids and 'Shajra Parcha' tiles."""

    # Network
    request_timeout_seconds: float = 10.0
    """Timeout applied to every tile, sub-grid and boundary request."""

    fetch_attempts: int = 3
    """How many times a request is tried when the connection itself fails."""

    retry_min_wait_seconds: float = 1.0
    """Shortest backoff between connection retries."""

    retry_max_wait_seconds: float = 5.0
    """Longest backoff between connection retries."""

    # Storage
    tile_cache_path: str = "tile_cache.db"
    """SQLite file holding cached raster tiles. Survives restarts."""

    # Geometry
    earth_radius_meters: float = 6371008.8
    """Radius of the spherical Earth model used for distances and bearings."""

    grid_size: int = 5
    """A murabba is split into grid_size x grid_size killas."""

    # Labels
    label_min_zoom: int = 14
    """Labels are visible at this zoom level and above."""

    label_large_zoom: int = 16
    """Labels switch to the large font class at this zoom level and above."""

    # Viewport
    viewport_width_px: int = 1024
    """Width of the map viewport, used when fitting bounds."""

    viewport_height_px: int = 768
    """Height of the map viewport, used when fitting bounds."""

    max_zoom: int = 21
    """Deepest zoom the viewport will fit to."""

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "MapSettings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            log.warning(f"Ignoring unknown settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_file(cls, path: str) -> "MapSettings":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "MapSettings":
        """Build settings from defaults overridden by PARCEL_MAP_* variables."""
        environ = os.environ if environ is None else environ
        settings = cls()
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            default = getattr(settings, f.name)
            try:
                value = type(default)(raw)
            except ValueError as e:
                raise ValueError(
                    f"{ENV_PREFIX}{f.name.upper()}={raw!r} is not a valid {type(default).__name__}"
                ) from e
            setattr(settings, f.name, value)
        return settings

    def save(self, path: str) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


# Singleton instance
_settings: Optional[MapSettings] = None

def get_settings() -> MapSettings:
    """Get the process-wide settings, read from the environment once."""
    global _settings
    if _settings is None:
        _settings = MapSettings.from_env()
    return _settings
