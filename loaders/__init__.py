"""
Data loaders for the Parcel Map Engine.

Includes:
- Raster tile cache (SQLite, fetch-through)
- Precomputed killa sub-grids (static file server)
- Mauza boundaries and shajra metadata (API)
"""

from loaders.tiles import TileCache, TileStore, TileResult, get_tile_cache, tile_url
from loaders.subgrid import SubGridLoader, sanitize_parcel_id
from loaders.boundaries import BoundaryLoader, MauzaBoundary, parse_metadata_bounds

__all__ = [
    # Tiles
    "TileCache",
    "TileStore",
    "TileResult",
    "get_tile_cache",
    "tile_url",
    # Sub-grids
    "SubGridLoader",
    "sanitize_parcel_id",
    # Boundaries
    "BoundaryLoader",
    "MauzaBoundary",
    "parse_metadata_bounds",
]
