"""
Manage the on-disk raster tile cache.

    python -m tools.tile_cache stats
    python -m tools.tile_cache clear
    python -m tools.tile_cache prefetch --tehsil Yazman --mauza "4 DNB" --zoom 14 17

prefetch reads the mauza's shajra metadata for its bounds, unless
--bounds "minLng,minLat,maxLng,maxLat" is given.
"""

import base64
import itertools
import logging
import math
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from core.models import Bounds
from core.settings import MapSettings, get_settings
from loaders.boundaries import BoundaryLoader, parse_metadata_bounds
from loaders.tiles import TileCache, TileStore, tile_url

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAX_VIEW_TILES = 64


def lnglat_to_tile(lng: float, lat: float, zoom: int) -> Tuple[int, int]:
    """Slippy-map tile containing a point."""
    n = 2 ** zoom
    lat = max(-85.0511287798, min(85.0511287798, lat))
    x = int((lng + 180.0) / 360.0 * n)
    y = int((1.0 - math.asinh(math.tan(math.radians(lat))) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tiles_in_bounds(bounds: Bounds, zoom: int) -> Iterator[Tuple[int, int]]:
    """Every (x, y) tile at zoom that intersects bounds."""
    x_min, y_min = lnglat_to_tile(bounds.min_lng, bounds.max_lat, zoom)
    x_max, y_max = lnglat_to_tile(bounds.max_lng, bounds.min_lat, zoom)
    for x in range(x_min, x_max + 1):
        for y in range(y_min, y_max + 1):
            yield x, y


def tile_bounds(x: int, y: int, zoom: int) -> Bounds:
    """Geographic extent of one slippy-map tile."""
    n = 2 ** zoom

    def lat_at(row):
        return math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * row / n))))

    return Bounds(
        min_lat=lat_at(y + 1),
        min_lng=x / n * 360.0 - 180.0,
        max_lat=lat_at(y),
        max_lng=(x + 1) / n * 360.0 - 180.0,
    )


def view_tiles(
    cache: TileCache,
    base_url: str,
    region_ids: Sequence[str],
    bounds: Bounds,
    zoom: int,
    limit: int = MAX_VIEW_TILES,
) -> List[Dict]:
    """
    Images for the tiles covering bounds, read through the cache.

    Each entry has "image" (a data URI, or the origin URL when the cache
    could not fetch the tile) and "bounds" as [west, south, east, north].
    """
    tiles = []
    for x, y in itertools.islice(tiles_in_bounds(bounds, zoom), limit):
        url = tile_url(base_url, region_ids, zoom, x, y)
        result = cache.resolve(url)
        if result.data is None:
            image = url
        else:
            image = "data:image/png;base64," + base64.b64encode(result.data).decode("ascii")
        b = tile_bounds(x, y, zoom)
        tiles.append({"image": image, "bounds": [b.min_lng, b.min_lat, b.max_lng, b.max_lat]})
    return tiles


def prefetch(
    cache: TileCache,
    base_url: str,
    region_ids: Sequence[str],
    bounds: Bounds,
    min_zoom: int,
    max_zoom: int,
) -> dict:
    """
    Pull every tile of a region into the cache.

    Returns counts of fetched, cached (already present) and failed tiles.
    """
    counts = {"fetched": 0, "cached": 0, "failed": 0}
    for z in range(min_zoom, max_zoom + 1):
        for x, y in tiles_in_bounds(bounds, z):
            result = cache.resolve(tile_url(base_url, region_ids, z, x, y))
            if result.data is None:
                counts["failed"] += 1
            elif result.from_cache:
                counts["cached"] += 1
            else:
                counts["fetched"] += 1
        log.info(f"Zoom {z} done: {counts}")
    return counts


def _region_bounds(settings: MapSettings, tehsil: str, mauza: str, raw_bounds: Optional[str]) -> Optional[Bounds]:
    if raw_bounds:
        return parse_metadata_bounds(raw_bounds)
    metadata = BoundaryLoader(settings=settings).load_shajra_metadata(tehsil, mauza)
    if not metadata:
        return None
    return parse_metadata_bounds(metadata.get("bounds"))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI interface for the tile cache."""
    import argparse

    parser = argparse.ArgumentParser(description="Shajra tile cache maintenance")
    parser.add_argument("--db", help="Cache database (defaults to PARCEL_MAP_TILE_CACHE_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="Show how many tiles are cached")
    sub.add_parser("clear", help="Delete every cached tile")

    fetch = sub.add_parser("prefetch", help="Download a mauza's shajra tiles")
    fetch.add_argument("--tehsil", required=True)
    fetch.add_argument("--mauza", required=True)
    fetch.add_argument("--zoom", type=int, nargs=2, metavar=("MIN", "MAX"), default=[14, 18])
    fetch.add_argument("--bounds", help='"minLng,minLat,maxLng,maxLat" (defaults to the shajra metadata)')

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    settings = get_settings()
    cache = TileCache(store=TileStore(args.db or settings.tile_cache_path), settings=settings)

    if args.command == "stats":
        stats = cache.stats()
        print(f"Tiles: {stats['tiles']}")
        print(f"Size:  {stats['bytes'] / 1024:.1f} KB")
        return 0

    if args.command == "clear":
        print(f"Deleted {cache.clear()} tiles")
        return 0

    bounds = _region_bounds(settings, args.tehsil, args.mauza, args.bounds)
    if bounds is None:
        print(f"No bounds for {args.tehsil}/{args.mauza}; pass --bounds")
        return 1

    region_ids = BoundaryLoader(settings=settings).shajra_region_ids(args.tehsil, args.mauza)
    min_zoom, max_zoom = sorted(args.zoom)
    counts = prefetch(cache, settings.public_base_url, region_ids, bounds, min_zoom, max_zoom)

    print(f"\n{'='*60}")
    print("PREFETCH COMPLETE")
    print(f"{'='*60}")
    print(f"Fetched: {counts['fetched']}")
    print(f"Already cached: {counts['cached']}")
    print(f"Failed: {counts['failed']}")
    return 0 if counts["failed"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
