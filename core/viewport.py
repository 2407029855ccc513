"""
Map view abstraction.

The engine only needs a handful of renderer operations: add/remove an
overlay, read its bounds, fit the viewport to bounds, and report zoom
changes. HeadlessMap implements them in-process; the Streamlit app and the
tests render from it.
"""

import itertools
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.models import Bounds

log = logging.getLogger(__name__)

TILE_SIZE_PX = 256
MAX_MERCATOR_LAT = 85.0511287798


@dataclass
class Overlay:
    """A GeoJSON layer placed on the map."""
    id: int
    geojson: Dict
    bounds: Bounds
    style: Dict[str, Any] = field(default_factory=dict)
    on_click: Optional[Callable[[Dict], Any]] = None
    name: str = ""


def _mercator_y(lat: float) -> float:
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
    rad = math.radians(lat)
    return math.log(math.tan(math.pi / 4 + rad / 2))


def zoom_for_bounds(bounds: Bounds, width_px: int, height_px: int, max_zoom: int = 21) -> int:
    """Largest integer web-mercator zoom at which bounds fit in the viewport."""
    lng_fraction = (bounds.max_lng - bounds.min_lng) / 360.0
    lat_fraction = (_mercator_y(bounds.max_lat) - _mercator_y(bounds.min_lat)) / (2 * math.pi)

    candidates = [max_zoom]
    if lng_fraction > 0:
        candidates.append(math.floor(math.log2(width_px / TILE_SIZE_PX / lng_fraction)))
    if lat_fraction > 0:
        candidates.append(math.floor(math.log2(height_px / TILE_SIZE_PX / lat_fraction)))
    return max(0, min(candidates))


class HeadlessMap:
    """
    In-process map viewport.

    Keeps overlays, the current view center and zoom, and notifies zoom
    listeners whenever the zoom changes (the 'zoomend' event of a web map).
    """

    def __init__(self, width_px: int = 1024, height_px: int = 768, zoom: float = 5, max_zoom: int = 21):
        self.width_px = width_px
        self.height_px = height_px
        self.max_zoom = max_zoom
        self._zoom = zoom
        self.center = None
        self.overlays: Dict[int, Overlay] = {}
        self.fitted: List[Bounds] = []
        self._zoom_listeners: List[Callable[[float], None]] = []
        self._ids = itertools.count(1)

    # Overlays ---------------------------------------------------------------
    def add_overlay(
        self,
        geojson: Dict,
        on_click: Optional[Callable[[Dict], Any]] = None,
        style: Optional[Dict[str, Any]] = None,
        name: str = "",
    ) -> int:
        overlay_id = next(self._ids)
        self.overlays[overlay_id] = Overlay(
            id=overlay_id,
            geojson=geojson,
            bounds=Bounds.from_geojson(geojson),
            style=dict(style or {}),
            on_click=on_click,
            name=name,
        )
        log.debug(f"Added overlay {overlay_id} ({name or 'unnamed'})")
        return overlay_id

    def remove_overlay(self, overlay_id: int) -> bool:
        removed = self.overlays.pop(overlay_id, None)
        if removed is not None:
            log.debug(f"Removed overlay {overlay_id} ({removed.name or 'unnamed'})")
        return removed is not None

    def get_bounds(self, overlay_id: int) -> Bounds:
        return self.overlays[overlay_id].bounds

    def click(self, overlay_id: int, feature_index: int) -> Any:
        """Simulate a click on one feature of an overlay."""
        overlay = self.overlays[overlay_id]
        if overlay.on_click is None:
            return None
        feature = overlay.geojson["features"][feature_index]
        return overlay.on_click(feature)

    # Viewport ---------------------------------------------------------------
    @property
    def zoom(self) -> float:
        return self._zoom

    def set_zoom(self, zoom: float) -> None:
        self._zoom = zoom
        for listener in list(self._zoom_listeners):
            listener(zoom)

    def on_zoom(self, listener: Callable[[float], None]) -> None:
        self._zoom_listeners.append(listener)

    def off_zoom(self, listener: Callable[[float], None]) -> None:
        if listener in self._zoom_listeners:
            self._zoom_listeners.remove(listener)

    def view_bounds(self) -> Optional[Bounds]:
        """Geographic extent currently in the viewport, or None before the first fit."""
        if self.center is None:
            return None
        world_px = TILE_SIZE_PX * 2 ** self._zoom
        cx = (self.center.lng + 180.0) / 360.0 * world_px
        cy = (1.0 - _mercator_y(self.center.lat) / math.pi) / 2.0 * world_px

        def to_lnglat(px, py):
            lng = px / world_px * 360.0 - 180.0
            lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * py / world_px))))
            return max(-180.0, min(180.0, lng)), max(-90.0, min(90.0, lat))

        west, north = to_lnglat(cx - self.width_px / 2, max(0.0, cy - self.height_px / 2))
        east, south = to_lnglat(cx + self.width_px / 2, min(world_px, cy + self.height_px / 2))
        return Bounds(min_lat=south, min_lng=west, max_lat=north, max_lng=east)

    def fit_bounds(self, bounds: Bounds) -> None:
        self.fitted.append(bounds)
        self.center = bounds.center
        self.set_zoom(zoom_for_bounds(bounds, self.width_px, self.height_px, self.max_zoom))
