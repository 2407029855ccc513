"""
Core data models for the parcel map engine.

Coordinates are (lat, lng) in decimal degrees (WGS84). GeoJSON positions
are [lng, lat]; the conversion helpers here are the only place that swaps them.
"""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

from core.errors import DegenerateGeometryError

MURABBA_PROPERTY = "Murabba_No"
KILLA_PROPERTY = "Killa"


@dataclass(frozen=True)
class Coordinate:
    """A point on the Earth in decimal degrees."""
    lat: float
    lng: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude {self.lat} outside [-90, 90]")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude {self.lng} outside [-180, 180]")

    @classmethod
    def from_lnglat(cls, position: Sequence[float]) -> "Coordinate":
        return cls(lat=float(position[1]), lng=float(position[0]))

    def to_lnglat(self) -> List[float]:
        return [self.lng, self.lat]


# ═══════════════════════════════════════════════════════════════════════════
# BOUNDS
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class Bounds:
    """
    Geographic bounding box.

    All coordinates are in decimal degrees (WGS84).
    """
    min_lat: float   # Southern edge
    min_lng: float   # Western edge
    max_lat: float   # Northern edge
    max_lng: float   # Eastern edge

    @property
    def center(self) -> Coordinate:
        return Coordinate((self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2)

    def contains(self, point: Coordinate) -> bool:
        """Check if a point is inside this bounding box."""
        return (self.min_lat <= point.lat <= self.max_lat and
                self.min_lng <= point.lng <= self.max_lng)

    def union(self, other: "Bounds") -> "Bounds":
        return Bounds(
            min_lat=min(self.min_lat, other.min_lat),
            min_lng=min(self.min_lng, other.min_lng),
            max_lat=max(self.max_lat, other.max_lat),
            max_lng=max(self.max_lng, other.max_lng),
        )

    @classmethod
    def from_coordinates(cls, points: Iterable[Coordinate]) -> "Bounds":
        points = list(points)
        if not points:
            raise ValueError("Cannot compute bounds of an empty point set")
        return cls(
            min_lat=min(p.lat for p in points),
            min_lng=min(p.lng for p in points),
            max_lat=max(p.lat for p in points),
            max_lng=max(p.lng for p in points),
        )

    @classmethod
    def from_geojson(cls, geojson: Dict) -> "Bounds":
        """Bounds of every position in a Feature, FeatureCollection or geometry."""
        return cls.from_coordinates(Coordinate.from_lnglat(p) for p in iter_positions(geojson))


def iter_positions(geojson: Dict):
    """Yield every [lng, lat] position of a GeoJSON object."""
    kind = geojson.get("type")
    if kind == "FeatureCollection":
        for feature in geojson.get("features", []):
            yield from iter_positions(feature)
    elif kind == "Feature":
        if geojson.get("geometry"):
            yield from iter_positions(geojson["geometry"])
    elif kind == "GeometryCollection":
        for geometry in geojson.get("geometries", []):
            yield from iter_positions(geometry)
    else:
        yield from _walk_coordinates(geojson.get("coordinates", []))


def _walk_coordinates(coords):
    if coords and isinstance(coords[0], (int, float)):
        yield coords
        return
    for item in coords:
        yield from _walk_coordinates(item)


# ═══════════════════════════════════════════════════════════════════════════
# QUADRILATERAL
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class Quadrilateral:
    """
    A murabba boundary: four corners in ring order.

    The ring runs top-left, top-right, bottom-right, bottom-left, which is
    how murabba boundaries are digitised.
    """
    top_left: Coordinate
    top_right: Coordinate
    bottom_right: Coordinate
    bottom_left: Coordinate

    @property
    def corners(self) -> List[Coordinate]:
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]

    @property
    def bounds(self) -> Bounds:
        return Bounds.from_coordinates(self.corners)

    @classmethod
    def from_ring(cls, ring: Sequence[Sequence[float]]) -> "Quadrilateral":
        """Build from a GeoJSON linear ring, using its first four positions."""
        distinct = {tuple(p[:2]) for p in ring}
        if len(ring) < 4 or len(distinct) < 4:
            raise DegenerateGeometryError(
                f"Boundary ring has {len(distinct)} distinct positions, need 4 corners"
            )
        corners = [Coordinate.from_lnglat(p) for p in ring[:4]]
        return cls(*corners)

    @classmethod
    def from_geometry(cls, geometry: Dict) -> "Quadrilateral":
        """Build from a GeoJSON Polygon or single-part MultiPolygon."""
        kind = geometry.get("type")
        coords = geometry.get("coordinates") or []
        if kind == "MultiPolygon":
            if len(coords) != 1:
                raise DegenerateGeometryError(f"MultiPolygon with {len(coords)} parts is not a single parcel")
            coords = coords[0]
        elif kind != "Polygon":
            raise DegenerateGeometryError(f"Parcel geometry must be a Polygon, got {kind}")
        if not coords:
            raise DegenerateGeometryError("Parcel polygon has no rings")
        return cls.from_ring(coords[0])


# ═══════════════════════════════════════════════════════════════════════════
# GRID TEMPLATE / TRANSFORMED GRID
# ═══════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class GridTemplate:
    """
    A fixed N x N set of template cells in row-major order.

    Only the order and the properties of the template features matter;
    their own coordinates are replaced when the grid is georeferenced.
    """
    size: int
    properties: tuple

    def __post_init__(self):
        if self.size < 1:
            raise ValueError("Grid size must be at least 1")
        if len(self.properties) != self.size * self.size:
            raise ValueError(
                f"A {self.size}x{self.size} template needs {self.size * self.size} cells, "
                f"got {len(self.properties)}"
            )

    def __len__(self) -> int:
        return len(self.properties)

    def cell_properties(self, index: int) -> Dict[str, Any]:
        """A private copy of a cell's properties."""
        return copy.deepcopy(self.properties[index])

    @classmethod
    def from_geojson(cls, feature_collection: Dict, size: int = 5) -> "GridTemplate":
        features = feature_collection.get("features", [])
        return cls(size=size, properties=tuple(copy.deepcopy(f.get("properties") or {}) for f in features))


def default_killa_template(size: int = 5) -> GridTemplate:
    """
    The standard murabba template: killas numbered in serpentine order.

    Row 0 runs 1..5 left to right, row 1 runs 6..10 right to left, and so on.
    """
    props = []
    for row in range(size):
        for col in range(size):
            position = col if row % 2 == 0 else size - 1 - col
            props.append({KILLA_PROPERTY: str(row * size + position + 1)})
    return GridTemplate(size=size, properties=tuple(props))


@dataclass
class TransformedGrid:
    """
    Georeferenced sub-grid of a murabba.

    features is a list of GeoJSON Polygon features. source is "synthesized"
    when built by the geodesic transformer, "precomputed" when fetched.
    """
    features: List[Dict]
    source: str = "synthesized"

    SYNTHESIZED = "synthesized"
    PRECOMPUTED = "precomputed"

    def __len__(self) -> int:
        return len(self.features)

    def rings(self) -> List[List[List[float]]]:
        """Outer ring of every cell, as [lng, lat] positions."""
        rings = []
        for feature in self.features:
            geometry = feature["geometry"]
            coords = geometry["coordinates"]
            if geometry["type"] == "MultiPolygon":
                coords = coords[0]
            rings.append(coords[0])
        return rings

    @property
    def bounds(self) -> Bounds:
        return Bounds.from_geojson(self.to_geojson())

    def validate(self) -> None:
        """
        Check every cell is a non-empty ring of WGS-84 degree positions.

        Raises:
            ValueError: naming the first bad cell (projected coordinates such
                as a UTM export fail the range check)
        """
        if not self.features:
            raise ValueError("grid has no cells")
        for i, feature in enumerate(self.features):
            geometry = (feature or {}).get("geometry") or {}
            coords = geometry.get("coordinates") or []
            if geometry.get("type") == "MultiPolygon":
                coords = coords[0] if coords else []
            if not coords or len(coords[0]) < 4:
                raise ValueError(f"cell {i} has an empty or open ring")
            for position in coords[0]:
                if len(position) < 2:
                    raise ValueError(f"cell {i} has a malformed position {position!r}")
                lng, lat = position[0], position[1]
                if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
                    raise ValueError(f"cell {i} position {[lng, lat]} is not in degrees")

    def to_geojson(self) -> Dict:
        return {"type": "FeatureCollection", "features": self.features}

    @classmethod
    def from_geojson(cls, feature_collection: Dict, source: str = PRECOMPUTED) -> "TransformedGrid":
        return cls(features=list(feature_collection.get("features", [])), source=source)


# ═══════════════════════════════════════════════════════════════════════════
# DRAWN SHAPES
# ═══════════════════════════════════════════════════════════════════════════
def _new_shape_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class LineShape:
    """An open polyline of two or more points."""
    points: List[Coordinate]
    shape_id: str = field(default_factory=_new_shape_id)

    kind = "polyline"

    def to_geojson(self) -> Dict:
        return {
            "type": "Feature",
            "properties": {"shape_id": self.shape_id, "kind": self.kind},
            "geometry": {"type": "LineString", "coordinates": [p.to_lnglat() for p in self.points]},
        }


@dataclass
class PolygonShape:
    """A polygon's outer ring, without the repeated closing point."""
    points: List[Coordinate]
    shape_id: str = field(default_factory=_new_shape_id)

    kind = "polygon"

    def to_geojson(self) -> Dict:
        ring = [p.to_lnglat() for p in self.points]
        if ring and ring[0] != ring[-1]:
            ring.append(ring[0])
        return {
            "type": "Feature",
            "properties": {"shape_id": self.shape_id, "kind": self.kind},
            "geometry": {"type": "Polygon", "coordinates": [ring]},
        }


@dataclass
class CircleShape:
    """A circle given by its center and radius in meters."""
    center: Coordinate
    radius_m: float
    shape_id: str = field(default_factory=_new_shape_id)

    kind = "circle"

    def to_geojson(self) -> Dict:
        return {
            "type": "Feature",
            "properties": {"shape_id": self.shape_id, "kind": self.kind, "radius": self.radius_m},
            "geometry": {"type": "Point", "coordinates": self.center.to_lnglat()},
        }


@dataclass
class PointShape:
    """A single dropped marker."""
    point: Coordinate
    shape_id: str = field(default_factory=_new_shape_id)

    kind = "marker"

    def to_geojson(self) -> Dict:
        return {
            "type": "Feature",
            "properties": {"shape_id": self.shape_id, "kind": self.kind},
            "geometry": {"type": "Point", "coordinates": self.point.to_lnglat()},
        }
