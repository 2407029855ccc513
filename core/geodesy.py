"""
Geodesic helpers on a spherical Earth.

Wraps pyproj.Geod so callers work with Coordinate objects and meters.
"""

from typing import Optional, Sequence

from pyproj import Geod

from core.models import Coordinate

MEAN_EARTH_RADIUS_M = 6371008.8


class Geodesy:
    """
    Distance, bearing and destination calculations.

    Bearings are degrees clockwise from north in (-180, 180].
    """

    def __init__(self, radius_m: float = MEAN_EARTH_RADIUS_M):
        self.radius_m = radius_m
        self._geod = Geod(a=radius_m, f=0.0)

    def distance(self, a: Coordinate, b: Coordinate) -> float:
        """Great-circle distance in meters."""
        _, _, dist = self._geod.inv(a.lng, a.lat, b.lng, b.lat)
        return float(dist)

    def initial_bearing(self, a: Coordinate, b: Coordinate) -> float:
        """Bearing at a of the great circle from a to b."""
        az12, _, _ = self._geod.inv(a.lng, a.lat, b.lng, b.lat)
        return float(az12)

    def destination(self, origin: Coordinate, distance_m: float, bearing: float) -> Coordinate:
        """Point reached by travelling distance_m from origin along bearing."""
        lng, lat, _ = self._geod.fwd(origin.lng, origin.lat, bearing, distance_m)
        # fwd can return longitudes a hair outside +/-180 near the antimeridian
        lng = (lng + 180.0) % 360.0 - 180.0
        return Coordinate(lat=float(lat), lng=float(lng))

    def polygon_area(self, ring: Sequence[Coordinate]) -> float:
        """Area in square meters enclosed by a ring (closing point optional)."""
        if len(ring) < 3:
            return 0.0
        area, _ = self._geod.polygon_area_perimeter([p.lng for p in ring], [p.lat for p in ring])
        return abs(float(area))

    @staticmethod
    def midpoint(a: Coordinate, b: Coordinate) -> Coordinate:
        """Arithmetic midpoint; adequate for label placement on short segments."""
        return Coordinate((a.lat + b.lat) / 2, (a.lng + b.lng) / 2)


_geodesy: Optional[Geodesy] = None

def get_geodesy() -> Geodesy:
    """Get the shared spherical geodesy helper."""
    global _geodesy
    if _geodesy is None:
        _geodesy = Geodesy()
    return _geodesy
