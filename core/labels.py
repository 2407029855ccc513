"""
Viewport Label Manager - zoom-driven text labels.

Labels (murabba numbers, killa numbers, lengths, areas) are anchored at a
point and grouped by the feature that owns them. Visibility and font size
are recomputed from the zoom level on every zoom change.
"""

import itertools
import logging
import warnings
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterable, List, Optional

from core.errors import LabelLeakWarning
from core.models import Coordinate

log = logging.getLogger(__name__)


class SizeClass:
    """Font size classes, smallest to largest."""
    SMALL = "label-small"
    MEDIUM = "label-medium"
    LARGE = "label-large"


@dataclass
class LabelHandle:
    """A bound label. Hold on to it to unbind it later."""
    id: int
    owner: Hashable
    anchor: Coordinate
    text: str
    css_class: str = "label"
    visible: bool = False
    size_class: str = SizeClass.SMALL
    on_activate: Optional[Callable[[str], None]] = None


class ViewportLabelManager:
    """
    Binds labels to a live map viewport.

    Every bind() must be matched by exactly one unbind() (or unbind_owner())
    when the owning feature is removed or redrawn.
    """

    def __init__(self, min_zoom: float = 14, large_zoom: float = 16, zoom: float = 0):
        self.min_zoom = min_zoom
        self.large_zoom = large_zoom
        self.zoom = zoom
        self._labels: Dict[int, LabelHandle] = {}
        self._by_owner: Dict[Hashable, List[int]] = {}
        self._ids = itertools.count(1)

    @classmethod
    def attach(cls, map_view, min_zoom: float = 14, large_zoom: float = 16) -> "ViewportLabelManager":
        """Create a manager that follows map_view's zoom events."""
        manager = cls(min_zoom=min_zoom, large_zoom=large_zoom, zoom=map_view.zoom)
        map_view.on_zoom(manager.update_zoom)
        return manager

    def size_class_for(self, zoom: float) -> str:
        if zoom >= self.large_zoom:
            return SizeClass.LARGE
        if zoom >= self.min_zoom:
            return SizeClass.MEDIUM
        return SizeClass.SMALL

    def is_visible_at(self, zoom: float) -> bool:
        return zoom >= self.min_zoom

    # Binding ----------------------------------------------------------------
    def bind(
        self,
        owner: Hashable,
        anchor: Coordinate,
        text: str,
        css_class: str = "label",
        on_activate: Optional[Callable[[str], None]] = None,
    ) -> LabelHandle:
        handle = LabelHandle(
            id=next(self._ids),
            owner=owner,
            anchor=anchor,
            text=text,
            css_class=css_class,
            visible=self.is_visible_at(self.zoom),
            size_class=self.size_class_for(self.zoom),
            on_activate=on_activate,
        )
        self._labels[handle.id] = handle
        self._by_owner.setdefault(owner, []).append(handle.id)
        return handle

    def unbind(self, handle: LabelHandle) -> bool:
        """Remove a label immediately. Returns False if it was not bound."""
        if self._labels.pop(handle.id, None) is None:
            return False
        ids = self._by_owner.get(handle.owner, [])
        if handle.id in ids:
            ids.remove(handle.id)
        if not ids:
            self._by_owner.pop(handle.owner, None)
        return True

    def unbind_owner(self, owner: Hashable) -> int:
        """Remove every label of one feature; returns how many were removed."""
        ids = self._by_owner.pop(owner, [])
        for label_id in ids:
            self._labels.pop(label_id, None)
        return len(ids)

    def unbind_all(self) -> int:
        count = len(self._labels)
        self._labels.clear()
        self._by_owner.clear()
        return count

    # Viewport ---------------------------------------------------------------
    def update_zoom(self, zoom: float) -> None:
        """Recompute visibility and size class of every label."""
        self.zoom = zoom
        visible = self.is_visible_at(zoom)
        size_class = self.size_class_for(zoom)
        for handle in self._labels.values():
            handle.visible = visible
            handle.size_class = size_class

    def activate(self, handle: LabelHandle) -> None:
        """Click/tap on a label."""
        if handle.id in self._labels and handle.on_activate is not None:
            handle.on_activate(handle.text)

    # Introspection ----------------------------------------------------------
    def labels(self, owner: Optional[Hashable] = None) -> List[LabelHandle]:
        if owner is None:
            return list(self._labels.values())
        return [self._labels[i] for i in self._by_owner.get(owner, [])]

    def visible_labels(self) -> List[LabelHandle]:
        return [h for h in self._labels.values() if h.visible]

    def bound_count(self, owner: Optional[Hashable] = None) -> int:
        if owner is None:
            return len(self._labels)
        return len(self._by_owner.get(owner, []))

    def owners(self) -> List[Hashable]:
        return list(self._by_owner)

    def check_leaks(self, live_owners: Iterable[Hashable]) -> List[LabelHandle]:
        """
        Find labels whose owner is gone.

        Emits a LabelLeakWarning when any are found. Meant for tests.
        """
        live = set(live_owners)
        leaked = [h for h in self._labels.values() if h.owner not in live]
        if leaked:
            owners = sorted({str(h.owner) for h in leaked})
            warnings.warn(
                f"{len(leaked)} label(s) still bound for removed features: {owners}",
                LabelLeakWarning,
                stacklevel=2,
            )
        return leaked
