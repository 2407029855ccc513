"""
Grid Engine for murabba sub-division.
Projects an N x N killa template onto a real-world quadrilateral.
"""

import logging
from typing import Dict, List, Optional

from core.errors import DegenerateGeometryError
from core.geodesy import Geodesy, get_geodesy
from core.models import Coordinate, GridTemplate, Quadrilateral, TransformedGrid

log = logging.getLogger(__name__)

MIN_EDGE_METERS = 1e-6


class GeodesicGridTransformer:
    """
    Georeferences a GridTemplate onto a murabba boundary.

    The top edge (top-left -> top-right) and left edge (top-left -> bottom-left)
    give the two grid axes. Each axis keeps its own bearing, so a sheared
    quadrilateral yields a sheared grid rather than a corrected one.
    """

    def __init__(self, geodesy: Optional[Geodesy] = None):
        self.geodesy = geodesy or get_geodesy()

    def transform(
        self,
        template: GridTemplate,
        top_left: Coordinate,
        top_right: Coordinate,
        bottom_right: Coordinate,
        bottom_left: Coordinate,
    ) -> TransformedGrid:
        """
        Build the georeferenced grid.

        Args:
            template: N x N template; its properties are copied onto the output
            top_left, top_right, bottom_right, bottom_left: murabba corners

        Returns:
            TransformedGrid with N*N closed-ring polygon features

        Raises:
            DegenerateGeometryError: top or left edge is shorter than MIN_EDGE_METERS
        """
        geo = self.geodesy
        size = template.size

        width = geo.distance(top_left, top_right)
        height = geo.distance(top_left, bottom_left)
        if width < MIN_EDGE_METERS or height < MIN_EDGE_METERS:
            raise DegenerateGeometryError(
                f"Quadrilateral is degenerate (width={width:.3g} m, height={height:.3g} m)"
            )

        cell_width = width / size
        cell_height = height / size
        bearing_top = geo.initial_bearing(top_left, top_right)
        bearing_left = geo.initial_bearing(top_left, bottom_left)

        features: List[Dict] = []
        for index in range(len(template)):
            row, col = divmod(index, size)

            along_top = geo.destination(top_left, col * cell_width, bearing_top)
            cell_tl = geo.destination(along_top, row * cell_height, bearing_left)
            cell_tr = geo.destination(cell_tl, cell_width, bearing_top)
            cell_bl = geo.destination(cell_tl, cell_height, bearing_left)
            cell_br = geo.destination(cell_tr, cell_height, bearing_left)

            ring = [p.to_lnglat() for p in (cell_tl, cell_tr, cell_br, cell_bl, cell_tl)]
            features.append({
                "type": "Feature",
                "properties": template.cell_properties(index),
                "geometry": {"type": "Polygon", "coordinates": [ring]},
            })

        log.debug(
            f"Synthesized {len(features)} cells "
            f"({cell_width:.1f} m x {cell_height:.1f} m, bearings {bearing_top:.1f}/{bearing_left:.1f})"
        )
        return TransformedGrid(features=features, source=TransformedGrid.SYNTHESIZED)

    def transform_quadrilateral(self, template: GridTemplate, quad: Quadrilateral) -> TransformedGrid:
        """Convenience wrapper taking a Quadrilateral."""
        return self.transform(template, quad.top_left, quad.top_right, quad.bottom_right, quad.bottom_left)


def cell_center(feature: Dict) -> Coordinate:
    """Center of a cell's bounding box, where its killa label sits."""
    geometry = feature["geometry"]
    coords = geometry["coordinates"]
    if geometry["type"] == "MultiPolygon":
        coords = coords[0]
    ring = coords[0]
    lats = [p[1] for p in ring]
    lngs = [p[0] for p in ring]
    return Coordinate((min(lats) + max(lats)) / 2, (min(lngs) + max(lngs)) / 2)
