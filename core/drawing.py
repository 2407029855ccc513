"""
Drawing session: measurement labels across the shape edit lifecycle.

The UI reports created / edit-start / vertex-drag / edit-stop / edited /
deleted events; each one keeps the shape's labels in step with its geometry.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from core.labels import LabelHandle
from core.measurement import MeasurementAnnotator, Shape

log = logging.getLogger(__name__)


class DrawingSession:
    """Tracks drawn shapes and their measurement labels."""

    def __init__(
        self,
        annotator: MeasurementAnnotator,
        on_change: Optional[Callable[[Dict], None]] = None,
    ):
        self.annotator = annotator
        self.on_change = on_change
        self.shapes: Dict[str, Shape] = {}
        self.editing: set = set()

    def created(self, shape: Shape) -> List[LabelHandle]:
        self.shapes[shape.shape_id] = shape
        handles = self.annotator.annotate(shape)
        self._changed()
        return handles

    def edit_start(self, shapes: Optional[Iterable[Shape]] = None) -> None:
        """Enter edit mode; labels start following vertex drags."""
        for shape in self._targets(shapes):
            self.editing.add(shape.shape_id)
            self.annotator.annotate(shape)

    def vertex_drag(self, shape: Shape) -> List[LabelHandle]:
        """A vertex moved. The shape object already carries the new geometry."""
        if shape.shape_id not in self.shapes:
            raise KeyError(f"Unknown shape {shape.shape_id}")
        self.shapes[shape.shape_id] = shape
        return self.annotator.annotate(shape)

    def edit_stop(self, shapes: Optional[Iterable[Shape]] = None) -> None:
        for shape in self._targets(shapes):
            self.editing.discard(shape.shape_id)

    def edited(self, shapes: Iterable[Shape]) -> None:
        """Edits were saved."""
        for shape in shapes:
            self.shapes[shape.shape_id] = shape
            self.annotator.annotate(shape)
        self._changed()

    def deleted(self, shapes: Iterable[Shape]) -> None:
        for shape in shapes:
            self.annotator.clear_annotations(shape)
            self.shapes.pop(shape.shape_id, None)
            self.editing.discard(shape.shape_id)
        self._changed()

    def clear(self) -> None:
        self.deleted(list(self.shapes.values()))

    def to_geojson(self) -> Dict:
        return {
            "type": "FeatureCollection",
            "features": [shape.to_geojson() for shape in self.shapes.values()],
        }

    def _targets(self, shapes: Optional[Iterable[Shape]]) -> List[Shape]:
        return list(self.shapes.values()) if shapes is None else list(shapes)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.to_geojson())
