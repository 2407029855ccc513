import pytest
from core.errors import DegenerateGeometryError
from core.models import (
    Bounds,
    CircleShape,
    Coordinate,
    GridTemplate,
    LineShape,
    PointShape,
    PolygonShape,
    Quadrilateral,
    TransformedGrid,
    default_killa_template,
)

RING = [[71.600, 29.401], [71.602, 29.401], [71.602, 29.400], [71.600, 29.400], [71.600, 29.401]]


def test_coordinate_validation():
    with pytest.raises(ValueError):
        Coordinate(91.0, 0.0)
    with pytest.raises(ValueError):
        Coordinate(0.0, -181.0)


def test_coordinate_lnglat_conversion():
    c = Coordinate.from_lnglat([71.6, 29.4])
    assert c.lat == 29.4
    assert c.lng == 71.6
    assert c.to_lnglat() == [71.6, 29.4]


def test_bounds_from_geojson():
    fc = {"type": "FeatureCollection", "features": [
        {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
        {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [71.605, 29.399]}},
    ]}
    b = Bounds.from_geojson(fc)
    assert b == Bounds(min_lat=29.399, min_lng=71.600, max_lat=29.401, max_lng=71.605)


def test_bounds_contains_and_union():
    a = Bounds(29.0, 71.0, 29.5, 71.5)
    b = Bounds(29.4, 71.4, 30.0, 72.0)
    assert a.contains(Coordinate(29.2, 71.2))
    assert not a.contains(Coordinate(29.8, 71.2))
    assert a.union(b) == Bounds(29.0, 71.0, 30.0, 72.0)
    assert a.center == Coordinate(29.25, 71.25)


def test_bounds_empty_raises():
    with pytest.raises(ValueError):
        Bounds.from_coordinates([])


def test_quadrilateral_from_polygon():
    quad = Quadrilateral.from_geometry({"type": "Polygon", "coordinates": [RING]})
    assert quad.top_left == Coordinate(29.401, 71.600)
    assert quad.top_right == Coordinate(29.401, 71.602)
    assert quad.bottom_right == Coordinate(29.400, 71.602)
    assert quad.bottom_left == Coordinate(29.400, 71.600)


def test_quadrilateral_from_single_part_multipolygon():
    quad = Quadrilateral.from_geometry({"type": "MultiPolygon", "coordinates": [[RING]]})
    assert quad.top_left == Coordinate(29.401, 71.600)


def test_quadrilateral_rejects_bad_geometry():
    with pytest.raises(DegenerateGeometryError):
        Quadrilateral.from_geometry({"type": "MultiPolygon", "coordinates": [[RING], [RING]]})
    with pytest.raises(DegenerateGeometryError):
        Quadrilateral.from_geometry({"type": "Point", "coordinates": [71.6, 29.4]})
    with pytest.raises(DegenerateGeometryError):
        Quadrilateral.from_geometry({"type": "Polygon", "coordinates": [RING[:3]]})


def test_grid_template_size_check():
    with pytest.raises(ValueError):
        GridTemplate(size=5, properties=({},) * 24)


def test_default_killa_template_serpentine():
    template = default_killa_template()
    killas = [template.properties[i]["Killa"] for i in range(25)]
    assert killas[:5] == ["1", "2", "3", "4", "5"]
    assert killas[5:10] == ["10", "9", "8", "7", "6"]
    assert sorted(killas, key=int) == [str(n) for n in range(1, 26)]


def test_grid_template_from_geojson():
    fc = {"type": "FeatureCollection", "features": [{"properties": {"Killa": str(i)}} for i in range(4)]}
    template = GridTemplate.from_geojson(fc, size=2)
    assert template.cell_properties(3) == {"Killa": "3"}


def test_transformed_grid_from_geojson():
    fc = {"type": "FeatureCollection", "features": [
        {"type": "Feature", "properties": {"Killa": "1"}, "geometry": {"type": "MultiPolygon", "coordinates": [[RING]]}},
    ]}
    grid = TransformedGrid.from_geojson(fc)
    assert grid.source == TransformedGrid.PRECOMPUTED
    assert grid.rings() == [RING]
    assert grid.bounds == Bounds(29.400, 71.600, 29.401, 71.602)


def test_shapes_to_geojson():
    a, b, c = Coordinate(29.40, 71.60), Coordinate(29.40, 71.61), Coordinate(29.41, 71.61)

    line = LineShape([a, b]).to_geojson()
    assert line["geometry"] == {"type": "LineString", "coordinates": [[71.60, 29.40], [71.61, 29.40]]}

    polygon = PolygonShape([a, b, c]).to_geojson()
    ring = polygon["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1]
    assert len(ring) == 4

    circle = CircleShape(a, 25.0).to_geojson()
    assert circle["properties"]["radius"] == 25.0
    assert circle["properties"]["kind"] == "circle"

    marker = PointShape(a).to_geojson()
    assert marker["geometry"]["coordinates"] == [71.60, 29.40]


def test_shape_ids_are_unique():
    assert PointShape(Coordinate(0, 0)).shape_id != PointShape(Coordinate(0, 0)).shape_id


def test_quadrilateral_rejects_closed_triangle():
    """Four positions but only three distinct corners."""
    triangle = [[71.600, 29.401], [71.602, 29.401], [71.602, 29.400], [71.600, 29.401]]
    with pytest.raises(DegenerateGeometryError):
        Quadrilateral.from_ring(triangle)


def test_transformed_grid_validate():
    TransformedGrid.from_geojson({"type": "FeatureCollection", "features": [
        {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
    ]}).validate()

    utm_ring = [[500000, 3300000], [500200, 3300000], [500200, 3299900], [500000, 3300000]]
    for coords in ([utm_ring], [[]]):
        grid = TransformedGrid.from_geojson({"type": "FeatureCollection", "features": [
            {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": coords}},
        ]})
        with pytest.raises(ValueError):
            grid.validate()

    with pytest.raises(ValueError):
        TransformedGrid(features=[]).validate()
