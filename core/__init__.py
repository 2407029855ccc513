"""
Core module for the Parcel Map Engine.
Contains data models, the geodesic grid transformer, selection and labelling.
"""

from core.models import (
    Coordinate,
    Bounds,
    Quadrilateral,
    GridTemplate,
    TransformedGrid,
    LineShape,
    PolygonShape,
    CircleShape,
    PointShape,
    default_killa_template,
)
from core.errors import (
    ParcelMapError,
    DegenerateGeometryError,
    TileFetchError,
    SubGridFetchError,
    LabelLeakWarning,
)
from core.settings import MapSettings, get_settings
from core.geodesy import Geodesy, get_geodesy
from core.grid import GeodesicGridTransformer
from core.labels import ViewportLabelManager, LabelHandle, SizeClass
from core.measurement import MeasurementAnnotator, format_area_custom_units, format_length
from core.drawing import DrawingSession
from core.viewport import HeadlessMap
from core.selection import ParcelSelectionController, ParcelOverlay, SelectionState
from core.region import RegionLayer

__all__ = [
    # Models
    "Coordinate",
    "Bounds",
    "Quadrilateral",
    "GridTemplate",
    "TransformedGrid",
    "LineShape",
    "PolygonShape",
    "CircleShape",
    "PointShape",
    "default_killa_template",
    # Errors
    "ParcelMapError",
    "DegenerateGeometryError",
    "TileFetchError",
    "SubGridFetchError",
    "LabelLeakWarning",
    # Settings
    "MapSettings",
    "get_settings",
    # Geometry
    "Geodesy",
    "get_geodesy",
    "GeodesicGridTransformer",
    # Labels and measurement
    "ViewportLabelManager",
    "LabelHandle",
    "SizeClass",
    "MeasurementAnnotator",
    "format_area_custom_units",
    "format_length",
    "DrawingSession",
    # Map and selection
    "HeadlessMap",
    "ParcelSelectionController",
    "ParcelOverlay",
    "SelectionState",
    "RegionLayer",
]
