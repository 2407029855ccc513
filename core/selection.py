"""
Parcel Selection Controller - murabba clicks to killa sub-grids.

Selecting a murabba loads its 5x5 killa grid once: a precomputed file when
the file server has one, otherwise a grid synthesized from the murabba's
corners. Clicks and programmatic selection share the same entry point.

Lifecycle per murabba:
    unselected -> loading -> loaded -> unselected   (deselect / clear)
    unselected -> loading -> error  -> unselected   (synthesis failed)
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from core.errors import ParcelMapError, SubGridFetchError
from core.grid import GeodesicGridTransformer, cell_center
from core.labels import LabelHandle, ViewportLabelManager
from core.models import (
    KILLA_PROPERTY,
    Bounds,
    GridTemplate,
    Quadrilateral,
    TransformedGrid,
    default_killa_template,
)

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# SELECTION STATE
# ═══════════════════════════════════════════════════════════════════════════
class SelectionState:
    """Murabba selection lifecycle states."""
    UNSELECTED = "unselected"  # Nothing on the map
    LOADING = "loading"        # Fetch or synthesis in flight
    LOADED = "loaded"          # Sub-grid rendered and registered
    ERROR = "error"            # Synthesis failed; reported, then back to unselected


@dataclass
class ParcelOverlay:
    """A rendered killa sub-grid."""
    parcel_id: str
    grid: TransformedGrid
    overlay_id: int
    bounds: Bounds
    labels: List[LabelHandle] = field(default_factory=list)

    @property
    def label_owner(self):
        return subgrid_label_owner(self.parcel_id)


def subgrid_label_owner(parcel_id: str):
    return ("subgrid", parcel_id)


# ═══════════════════════════════════════════════════════════════════════════
# CONTROLLER
# ═══════════════════════════════════════════════════════════════════════════
class ParcelSelectionController:
    """
    Keeps at most one sub-grid overlay per murabba.

    Collaborators are injected:
        map_view        renderer (add/remove overlay, bounds, fit viewport)
        labels          ViewportLabelManager for killa numbers
        subgrid_loader  object with fetch(region_ids, parcel_id) -> FeatureCollection;
                        optional, without it every grid is synthesized
        transformer     GeodesicGridTransformer used for synthesis
        template        GridTemplate used for synthesis
    """

    GRID_STYLE = {"color": "#FFD700", "weight": 2, "fillOpacity": 0}

    def __init__(
        self,
        map_view,
        labels: ViewportLabelManager,
        subgrid_loader=None,
        transformer: Optional[GeodesicGridTransformer] = None,
        template: Optional[GridTemplate] = None,
        region_ids: Sequence[str] = (),
        on_overlay_ready: Optional[Callable[[ParcelOverlay], None]] = None,
        on_overlay_error: Optional[Callable[[str, Exception], None]] = None,
    ):
        self.map_view = map_view
        self.labels = labels
        self.subgrid_loader = subgrid_loader
        self.transformer = transformer or GeodesicGridTransformer()
        self.template = template or default_killa_template()
        self.region_ids = tuple(region_ids)
        self.on_overlay_ready = on_overlay_ready
        self.on_overlay_error = on_overlay_error

        self._overlays: Dict[str, ParcelOverlay] = {}
        self._states: Dict[str, str] = {}
        # One token per in-flight selection; a result is committed only if
        # its token is still the current one for that murabba.
        self._pending: Dict[str, object] = {}

    # Queries ----------------------------------------------------------------
    def state(self, parcel_id) -> str:
        return self._states.get(str(parcel_id), SelectionState.UNSELECTED)

    def get_loaded_overlay(self, parcel_id) -> Optional[ParcelOverlay]:
        return self._overlays.get(str(parcel_id))

    def loaded_ids(self) -> List[str]:
        return list(self._overlays)

    # Selection --------------------------------------------------------------
    async def select(self, parcel_id, geometry: Dict) -> Optional[ParcelOverlay]:
        """
        Show the killa grid of one murabba.

        Args:
            parcel_id: murabba number
            geometry: the murabba's GeoJSON Polygon (ring starts at the top-left corner)

        Returns:
            The overlay, or None when the selection was superseded (already
            loading, or deselected before it finished)

        Raises:
            ParcelMapError: the grid could not be synthesized
        """
        key = str(parcel_id)

        existing = self._overlays.get(key)
        if existing is not None:
            log.debug(f"Murabba {key} already loaded; refocusing")
            self.map_view.fit_bounds(existing.bounds)
            return existing

        if self._states.get(key) == SelectionState.LOADING:
            log.debug(f"Murabba {key} is already loading")
            return None

        token = object()
        self._pending[key] = token
        self._states[key] = SelectionState.LOADING
        region_ids = self.region_ids
        geometry = copy.deepcopy(geometry)

        try:
            grid = await self._load_grid(key, geometry, region_ids)
        except (ParcelMapError, ValueError) as e:
            if self._pending.get(key) is not token:
                log.debug(f"Ignoring failure of superseded selection {key}: {e}")
                return None
            self._fail(key, e)
            raise

        if self._pending.get(key) is not token:
            log.info(f"Murabba {key} was deselected while loading; discarding its grid")
            return None
        del self._pending[key]

        try:
            overlay = self._render(key, grid)
        except Exception as e:
            self._fail(key, e)
            raise
        self._overlays[key] = overlay
        self._states[key] = SelectionState.LOADED
        self.map_view.fit_bounds(overlay.bounds)
        log.info(f"Murabba {key} loaded ({grid.source}, {len(grid)} killas)")

        if self.on_overlay_ready is not None:
            self.on_overlay_ready(overlay)
        return overlay

    def deselect(self, parcel_id) -> bool:
        """Remove a murabba's grid and labels. Returns False if nothing was shown."""
        key = str(parcel_id)
        was_pending = self._pending.pop(key, None) is not None
        self._states.pop(key, None)

        overlay = self._overlays.pop(key, None)
        if overlay is None:
            return was_pending

        self.map_view.remove_overlay(overlay.overlay_id)
        removed = self.labels.unbind_owner(overlay.label_owner)
        log.debug(f"Murabba {key} deselected ({removed} labels removed)")
        return True

    def clear(self) -> None:
        """Deselect every murabba, loaded or loading."""
        for key in list(self._overlays) + list(self._pending):
            self.deselect(key)

    select_parcel = select
    deselect_parcel = deselect

    # Internals --------------------------------------------------------------
    async def _load_grid(self, key: str, geometry: Dict, region_ids: Sequence[str]) -> TransformedGrid:
        if self.subgrid_loader is not None:
            try:
                payload = await asyncio.to_thread(self.subgrid_loader.fetch, region_ids, key)
                return self._precomputed(key, payload)
            except SubGridFetchError as e:
                log.warning(f"{e}; synthesizing murabba {key} from template")

        quad = Quadrilateral.from_geometry(geometry)
        return self.transformer.transform_quadrilateral(self.template, quad)

    @staticmethod
    def _precomputed(key: str, payload: Dict) -> TransformedGrid:
        grid = TransformedGrid.from_geojson(payload, source=TransformedGrid.PRECOMPUTED)
        try:
            grid.validate()
        except (ValueError, TypeError) as e:
            raise SubGridFetchError(f"precomputed grid of murabba {key}", str(e)) from e
        return grid

    def _render(self, key: str, grid: TransformedGrid) -> ParcelOverlay:
        """Draw the grid and its killa labels; nothing stays on the map if this fails."""
        owner = subgrid_label_owner(key)
        overlay_id = None
        try:
            overlay_id = self.map_view.add_overlay(grid.to_geojson(), style=self.GRID_STYLE, name=f"murabba {key}")
            handles = []
            for feature in grid.features:
                killa = (feature.get("properties") or {}).get(KILLA_PROPERTY)
                if killa is None:
                    continue
                handles.append(self.labels.bind(owner, cell_center(feature), str(killa), css_class="killa-tooltip"))
            bounds = self.map_view.get_bounds(overlay_id)
        except Exception:
            self.labels.unbind_owner(owner)
            if overlay_id is not None:
                self.map_view.remove_overlay(overlay_id)
            raise
        return ParcelOverlay(
            parcel_id=key,
            grid=grid,
            overlay_id=overlay_id,
            bounds=bounds,
            labels=handles,
        )

    def _fail(self, key: str, error: Exception) -> None:
        self._pending.pop(key, None)
        self._states[key] = SelectionState.ERROR
        log.error(f"Murabba {key} could not be loaded: {error}")
        try:
            if self.on_overlay_error is not None:
                self.on_overlay_error(key, error)
        finally:
            self._states.pop(key, None)
