import pytest
import requests
from unittest.mock import MagicMock
from core.errors import ParcelMapError
from core.models import Bounds, Coordinate
from core.settings import MapSettings
from loaders.boundaries import BoundaryLoader, MauzaBoundary, natural_key, parse_metadata_bounds

RING = [[71.600, 29.401], [71.602, 29.401], [71.602, 29.400], [71.600, 29.400], [71.600, 29.401]]
MAUZA = {"type": "FeatureCollection", "features": [
    {"type": "Feature", "properties": {"Murabba_No": 12}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
    {"type": "Feature", "properties": {"Murabba_No": "3"}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
    {"type": "Feature", "properties": {"Murabba_No": "3"}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
    {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
]}


def json_response(payload, status=200, content_type="application/json"):
    r = MagicMock()
    r.status_code = status
    r.ok = 200 <= status < 400
    r.headers = {"Content-Type": content_type}
    r.json.return_value = payload
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return r


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def loader(session):
    settings = MapSettings(
        api_base_url="http://api",
        public_base_url="http://files",
        retry_min_wait_seconds=0,
        retry_max_wait_seconds=0,
    )
    return BoundaryLoader(settings=settings, session=session)


def test_natural_key():
    assert sorted(["10", "2", "1/2", "1"], key=natural_key) == ["1", "1/2", "2", "10"]


def test_mauza_boundary_options():
    boundary = MauzaBoundary("Yazman", "4 DNB", MAUZA)
    assert boundary.murabba_options() == ["3", "12"]
    assert boundary.find("12") is MAUZA["features"][0]
    assert boundary.find(3) is MAUZA["features"][1]
    assert boundary.find("99") is None


def test_mauza_boundary_quadrilateral():
    boundary = MauzaBoundary("Yazman", "4 DNB", MAUZA)
    assert boundary.quadrilateral("12").top_left == Coordinate(29.401, 71.600)
    with pytest.raises(KeyError):
        boundary.quadrilateral("99")


def test_mauza_boundary_bounds():
    assert MauzaBoundary("Yazman", "4 DNB", MAUZA).bounds == Bounds(29.400, 71.600, 29.401, 71.602)
    assert MauzaBoundary("Yazman", "x", {"type": "FeatureCollection", "features": []}).bounds is None


def test_parse_bounds_string():
    assert parse_metadata_bounds("71.6,29.4,71.7,29.5") == Bounds(29.4, 71.6, 29.5, 71.7)


def test_parse_bounds_corners():
    raw = {
        "topLeft": [29.5, 71.6],
        "topRight": [29.5, 71.7],
        "bottomRight": [29.4, 71.7],
        "bottomLeft": [29.4, 71.6],
    }
    assert parse_metadata_bounds(raw) == Bounds(29.4, 71.6, 29.5, 71.7)


def test_parse_bounds_pairs():
    assert parse_metadata_bounds([[29.5, 71.7], [29.4, 71.6]]) == Bounds(29.4, 71.6, 29.5, 71.7)


@pytest.mark.parametrize("raw", [None, "", "1,2,3", "a,b,c,d", {"north": 1}, 42])
def test_parse_bounds_invalid(raw):
    assert parse_metadata_bounds(raw) is None


def test_boundary_url(loader):
    url = loader.boundary_url("Yazman", "4 DNB")
    assert url.startswith("http://api/api/geojson/Yazman/4%20DNB?t=")


def test_load_boundary(loader, session):
    session.get.return_value = json_response(MAUZA)

    boundary = loader.load_boundary("Yazman", "4 DNB")

    assert boundary.tehsil == "Yazman"
    assert boundary.mauza == "4 DNB"
    assert len(boundary.features) == 4
    assert session.get.call_args[1]["headers"] == {"Cache-Control": "no-store"}


def test_load_boundary_http_error(loader, session):
    session.get.return_value = json_response({}, status=500)
    with pytest.raises(ParcelMapError):
        loader.load_boundary("Yazman", "4 DNB")


def test_load_boundary_not_feature_collection(loader, session):
    session.get.return_value = json_response({"type": "Feature"})
    with pytest.raises(ParcelMapError):
        loader.load_boundary("Yazman", "4 DNB")


def test_load_boundary_unreachable(loader, session):
    session.get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(ParcelMapError):
        loader.load_boundary("Yazman", "4 DNB")


def test_shajra_metadata(loader, session):
    session.get.return_value = json_response({"bounds": "71.6,29.4,71.7,29.5"})

    metadata = loader.load_shajra_metadata("Yazman", "4 DNB")

    assert metadata == {"bounds": "71.6,29.4,71.7,29.5"}
    assert session.get.call_args[0][0].startswith("http://files/Shajra%20Parcha/Yazman/4%20DNB.json?t=")


def test_shajra_metadata_missing(loader, session):
    session.get.return_value = json_response(None, status=404)
    assert loader.load_shajra_metadata("Yazman", "4 DNB") is None


def test_shajra_metadata_html_fallback_page(loader, session):
    """A static server answering with its index page means no metadata."""
    session.get.return_value = json_response(None, content_type="text/html")
    assert loader.load_shajra_metadata("Yazman", "4 DNB") is None


def test_shajra_region_ids(loader):
    assert loader.shajra_region_ids("Yazman", "4 DNB") == ["Shajra Parcha", "Yazman", "4 DNB"]
