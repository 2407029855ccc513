"""
Region layer: the murabba boundaries of one mauza.

Renders the boundary FeatureCollection, labels each murabba with its
number, and routes both clicks and programmatic selection into the
ParcelSelectionController.
"""

import logging
from typing import Dict, List, Optional

from core.grid import cell_center
from core.labels import ViewportLabelManager
from core.models import MURABBA_PROPERTY
from core.selection import ParcelOverlay, ParcelSelectionController

log = logging.getLogger(__name__)

BOUNDARY_LABEL_OWNER = "murabba-boundaries"


class RegionLayer:
    """
    The boundary layer currently on the map.

    boundary objects expose tehsil, mauza, geojson, features, find() and
    murabba_options(); loaders.boundaries.MauzaBoundary is the usual one.
    """

    BOUNDARY_STYLE = {"fillColor": "#000000", "fillOpacity": 0, "color": "#ff0c04", "weight": 3}

    def __init__(self, map_view, labels: ViewportLabelManager, controller: ParcelSelectionController):
        self.map_view = map_view
        self.labels = labels
        self.controller = controller
        self.boundary = None
        self.overlay_id: Optional[int] = None

    def load(self, boundary) -> Optional[int]:
        """
        Replace the current region with a new mauza boundary.

        Sub-grids and labels of the previous region are removed first.
        Returns the overlay id, or None when the boundary has no features.
        """
        self.clear()
        self.boundary = boundary
        self.controller.region_ids = (boundary.tehsil, boundary.mauza)

        if not boundary.features:
            log.warning(f"Region {boundary.tehsil}/{boundary.mauza} has no murabbas")
            return None

        self.overlay_id = self.map_view.add_overlay(
            boundary.geojson,
            on_click=self._on_click,
            style=self.BOUNDARY_STYLE,
            name=f"{boundary.tehsil}/{boundary.mauza}",
        )
        for feature in boundary.features:
            number = (feature.get("properties") or {}).get(MURABBA_PROPERTY)
            if number is None or not feature.get("geometry"):
                continue
            self.labels.bind(BOUNDARY_LABEL_OWNER, cell_center(feature), str(number), css_class="murabba-tooltip")

        self.map_view.fit_bounds(self.map_view.get_bounds(self.overlay_id))
        return self.overlay_id

    def murabba_options(self) -> List[str]:
        if self.boundary is None:
            return []
        return self.boundary.murabba_options()

    async def select_by_number(self, murabba_no) -> Optional[ParcelOverlay]:
        """Programmatic selection, e.g. from a murabba dropdown."""
        feature = self.boundary.find(murabba_no) if self.boundary is not None else None
        if feature is None:
            log.warning(f"No layer found for murabba {murabba_no}")
            return None
        return await self._select_feature(feature)

    def clear(self) -> None:
        self.controller.clear()
        self.labels.unbind_owner(BOUNDARY_LABEL_OWNER)
        if self.overlay_id is not None:
            self.map_view.remove_overlay(self.overlay_id)
        self.overlay_id = None
        self.boundary = None

    def _on_click(self, feature: Dict):
        """Click handler; returns the selection coroutine for the UI loop to run."""
        if (feature.get("properties") or {}).get(MURABBA_PROPERTY) is None:
            return None
        return self._select_feature(feature)

    async def _select_feature(self, feature: Dict) -> Optional[ParcelOverlay]:
        number = feature["properties"][MURABBA_PROPERTY]
        return await self.controller.select(number, feature["geometry"])
