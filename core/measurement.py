"""
Measurement labels for drawn shapes.

Lengths are shown in feet; areas in the acre / kanal / marla system used on
Punjab revenue records:
    1 acre  = 8 kanal
    1 kanal = 20 marla
    1 marla = 272.25 sq ft
"""

import logging
import math
from typing import Callable, List, Optional, Union

from core.geodesy import Geodesy, get_geodesy
from core.labels import LabelHandle, ViewportLabelManager
from core.models import Bounds, CircleShape, Coordinate, LineShape, PointShape, PolygonShape

log = logging.getLogger(__name__)

FEET_PER_METER = 3.28084
SQ_FEET_PER_SQ_METER = 10.7639

MARLA_SQ_FEET = 272.25
KANAL_SQ_FEET = MARLA_SQ_FEET * 20
ACRE_SQ_FEET = KANAL_SQ_FEET * 8

Shape = Union[LineShape, PolygonShape, CircleShape, PointShape]


def format_area_custom_units(area_sq_feet: float) -> str:
    """
    Express an area as acres, kanals, marlas and left-over square feet.

    Units are peeled off largest first; each step works on the remainder of
    the previous one.

    >>> format_area_custom_units(300)
    '0-Acre 0-Kanal 1-Marla 27.75-Sq Feet'
    """
    if area_sq_feet < 0:
        raise ValueError(f"Area cannot be negative: {area_sq_feet}")

    remaining = area_sq_feet
    acres = int(remaining // ACRE_SQ_FEET)
    remaining = remaining % ACRE_SQ_FEET
    kanals = int(remaining // KANAL_SQ_FEET)
    remaining = remaining % KANAL_SQ_FEET
    marlas = int(remaining // MARLA_SQ_FEET)
    remaining = remaining % MARLA_SQ_FEET

    return f"{acres}-Acre {kanals}-Kanal {marlas}-Marla {remaining:.2f}-Sq Feet"


def format_length(meters: float) -> str:
    return f"{meters * FEET_PER_METER:.2f} Ft"


class MeasurementAnnotator:
    """
    Puts length/area/coordinate labels on drawn shapes.

    Labels are owned by the shape's shape_id. Annotating a shape again
    (after a vertex drag) replaces its previous labels.
    """

    def __init__(
        self,
        labels: ViewportLabelManager,
        geodesy: Optional[Geodesy] = None,
        clipboard: Optional[Callable[[str], None]] = None,
    ):
        self.labels = labels
        self.geodesy = geodesy or get_geodesy()
        self.clipboard = clipboard

    def annotate(self, shape: Shape) -> List[LabelHandle]:
        self.clear_annotations(shape)

        if isinstance(shape, LineShape):
            handles = self._segment_lengths(shape.shape_id, shape.points, closed=False)
        elif isinstance(shape, PolygonShape):
            handles = [self._polygon_area(shape)]
            handles += self._segment_lengths(shape.shape_id, _open_ring(shape.points), closed=True)
        elif isinstance(shape, CircleShape):
            handles = [self._circle_details(shape)]
        elif isinstance(shape, PointShape):
            handles = [self._point_coordinates(shape)]
        else:
            raise TypeError(f"Cannot annotate {type(shape).__name__}")

        log.debug(f"Annotated {shape.kind} {shape.shape_id} with {len(handles)} label(s)")
        return handles

    def clear_annotations(self, shape: Shape) -> int:
        return self.labels.unbind_owner(shape.shape_id)

    # Shape kinds --------------------------------------------------------------
    def _segment_lengths(self, owner: str, points: List[Coordinate], closed: bool) -> List[LabelHandle]:
        if len(points) < 2:
            return []
        pairs = list(zip(points, points[1:]))
        if closed and len(points) > 2:
            pairs.append((points[-1], points[0]))

        handles = []
        for a, b in pairs:
            meters = self.geodesy.distance(a, b)
            handles.append(self.labels.bind(
                owner, Geodesy.midpoint(a, b), format_length(meters), css_class="distance-label"
            ))
        return handles

    def _polygon_area(self, shape: PolygonShape) -> LabelHandle:
        ring = _open_ring(shape.points)
        sq_feet = self.geodesy.polygon_area(ring) * SQ_FEET_PER_SQ_METER
        anchor = Bounds.from_coordinates(ring).center
        return self.labels.bind(
            shape.shape_id, anchor, "Area: " + format_area_custom_units(sq_feet), css_class="area-label"
        )

    def _circle_details(self, shape: CircleShape) -> LabelHandle:
        sq_feet = math.pi * shape.radius_m ** 2 * SQ_FEET_PER_SQ_METER
        text = f"Radius: {format_length(shape.radius_m)} Area: {format_area_custom_units(sq_feet)}"
        return self.labels.bind(shape.shape_id, shape.center, text, css_class="circle-label")

    def _point_coordinates(self, shape: PointShape) -> LabelHandle:
        text = f"{shape.point.lat:.5f}, {shape.point.lng:.5f}"
        return self.labels.bind(
            shape.shape_id, shape.point, text, css_class="marker-label", on_activate=self._copy
        )

    def _copy(self, text: str) -> None:
        if self.clipboard is None:
            log.info(f"No clipboard available; coordinates: {text}")
            return
        self.clipboard(text)


def _open_ring(points: List[Coordinate]) -> List[Coordinate]:
    if len(points) > 1 and points[0] == points[-1]:
        return points[:-1]
    return points
