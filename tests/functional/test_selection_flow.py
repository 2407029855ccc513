import asyncio

import pytest
from unittest.mock import MagicMock
from core.drawing import DrawingSession
from core.labels import ViewportLabelManager
from core.measurement import MeasurementAnnotator
from core.models import Coordinate, PolygonShape, TransformedGrid
from core.region import BOUNDARY_LABEL_OWNER, RegionLayer
from core.selection import ParcelSelectionController, subgrid_label_owner
from core.settings import MapSettings
from core.viewport import HeadlessMap
from loaders.boundaries import BoundaryLoader
from loaders.subgrid import SubGridLoader


def ring(west, north):
    east, south = west + 0.002, north - 0.001
    return [[west, north], [east, north], [east, south], [west, south], [west, north]]


MAUZA = {"type": "FeatureCollection", "features": [
    {"type": "Feature", "properties": {"Murabba_No": "1"}, "geometry": {"type": "Polygon", "coordinates": [ring(71.600, 29.401)]}},
    {"type": "Feature", "properties": {"Murabba_No": "2/1"}, "geometry": {"type": "Polygon", "coordinates": [ring(71.602, 29.401)]}},
]}
PRECOMPUTED = {"type": "FeatureCollection", "features": [
    {"type": "Feature", "properties": {"Killa": str(n)}, "geometry": {"type": "Polygon", "coordinates": [ring(71.602, 29.401)]}}
    for n in range(1, 26)
]}


def response(status=200, payload=None):
    r = MagicMock()
    r.status_code = status
    r.ok = status < 400
    r.headers = {"Content-Type": "application/json"}
    r.json.return_value = payload
    return r


@pytest.fixture
def session():
    """File server with a precomputed grid for murabba 2/1 only."""
    def get(url, **kwargs):
        if "/api/geojson/" in url:
            return response(payload=MAUZA)
        if "/JSON%20Murabba/" in url and "/2-1.geojson" in url:
            return response(payload=PRECOMPUTED)
        return response(status=404)

    session = MagicMock()
    session.get.side_effect = get
    return session


@pytest.fixture
def app(session):
    settings = MapSettings(api_base_url="http://api", public_base_url="http://files")
    map_view = HeadlessMap(zoom=5)
    labels = ViewportLabelManager.attach(map_view)
    controller = ParcelSelectionController(
        map_view, labels, subgrid_loader=SubGridLoader(settings=settings, session=session)
    )
    region = RegionLayer(map_view, labels, controller)
    boundary = BoundaryLoader(settings=settings, session=session).load_boundary("Yazman", "4 DNB")
    region.load(boundary)
    return map_view, labels, controller, region


def test_click_synthesizes_and_labels_follow_zoom(app):
    map_view, labels, controller, region = app
    boundary_overlay = region.overlay_id

    overlay = asyncio.run(map_view.click(boundary_overlay, 0))

    assert overlay.grid.source == TransformedGrid.SYNTHESIZED
    assert len(overlay.grid) == 25
    assert len(map_view.overlays) == 2

    # fit_bounds zoomed in past the label threshold
    owner = subgrid_label_owner("1")
    assert map_view.zoom >= 14
    assert all(h.visible for h in labels.labels(owner))

    map_view.set_zoom(12)
    assert labels.visible_labels() == []

    map_view.set_zoom(16)
    assert {h.size_class for h in labels.labels(owner)} == {"label-large"}


def test_precomputed_grid_is_fetched_by_sanitized_id(app, session):
    map_view, labels, controller, region = app

    overlay = asyncio.run(region.select_by_number("2/1"))

    assert overlay.grid.source == TransformedGrid.PRECOMPUTED
    urls = [c[0][0] for c in session.get.call_args_list]
    assert any("/JSON%20Murabba/Yazman/4%20DNB/2-1.geojson?t=" in u for u in urls)


def test_deselect_and_switch_region_leave_no_labels(app):
    map_view, labels, controller, region = app
    asyncio.run(region.select_by_number("1"))
    asyncio.run(region.select_by_number("2/1"))

    controller.deselect("1")
    live = [BOUNDARY_LABEL_OWNER, subgrid_label_owner("2/1")]
    assert labels.check_leaks(live) == []

    region.clear()
    assert labels.check_leaks([]) == []
    assert map_view.overlays == {}


def test_measurement_alongside_selection(app):
    map_view, labels, controller, region = app
    asyncio.run(region.select_by_number("1"))

    session = DrawingSession(MeasurementAnnotator(labels))
    shape = PolygonShape([
        Coordinate(29.4010, 71.6000), Coordinate(29.4010, 71.6020),
        Coordinate(29.4000, 71.6020), Coordinate(29.4000, 71.6000),
    ])
    session.created(shape)
    area = [h for h in labels.labels(shape.shape_id) if h.css_class == "area-label"][0]
    assert area.text.startswith("Area: ")

    session.deleted([shape])
    controller.deselect("1")
    assert labels.check_leaks([BOUNDARY_LABEL_OWNER]) == []
