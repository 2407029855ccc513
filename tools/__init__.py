"""
CLI tools for the Parcel Map Engine.
"""

from tools.tile_cache import prefetch, view_tiles, tile_bounds, tiles_in_bounds, lnglat_to_tile

__all__ = [
    "prefetch",
    "view_tiles",
    "tile_bounds",
    "tiles_in_bounds",
    "lnglat_to_tile",
]
