"""
Parcel Map Engine - Main Application

Streamlit viewer: load a mauza, pick a murabba, and see its killa sub-grid
with zoom-dependent labels.
"""

import asyncio
import logging

import pydeck as pdk
import streamlit as st

# ═══════════════════════════════════════════════════════════════════════════
# PAGE CONFIG
# ═══════════════════════════════════════════════════════════════════════════
st.set_page_config(
    page_title="Parcel Map Engine",
    page_icon="🗺️",
    layout="wide",
    initial_sidebar_state="expanded"
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
log = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
# IMPORTS
# ═══════════════════════════════════════════════════════════════════════════
from core.errors import ParcelMapError
from core.geodesy import Geodesy
from core.grid import GeodesicGridTransformer
from core.labels import ViewportLabelManager
from core.models import Bounds, default_killa_template
from core.region import RegionLayer
from core.selection import ParcelSelectionController
from core.settings import get_settings
from core.viewport import HeadlessMap
from loaders.boundaries import BoundaryLoader, parse_metadata_bounds
from loaders.subgrid import SubGridLoader
from loaders.tiles import get_tile_cache
from tools.tile_cache import view_tiles

settings = get_settings()


def hex_to_rgb(color: str, alpha: int = 255):
    color = color.lstrip("#")
    return [int(color[i:i + 2], 16) for i in (0, 2, 4)] + [alpha]


def build_engine():
    """One map, label manager, controller and region layer per browser session."""
    map_view = HeadlessMap(
        width_px=settings.viewport_width_px,
        height_px=settings.viewport_height_px,
        max_zoom=settings.max_zoom,
    )
    labels = ViewportLabelManager.attach(
        map_view, min_zoom=settings.label_min_zoom, large_zoom=settings.label_large_zoom
    )
    controller = ParcelSelectionController(
        map_view,
        labels,
        subgrid_loader=SubGridLoader(settings=settings),
        transformer=GeodesicGridTransformer(Geodesy(settings.earth_radius_meters)),
        template=default_killa_template(settings.grid_size),
    )
    region = RegionLayer(map_view, labels, controller)
    return {"map": map_view, "labels": labels, "controller": controller, "region": region}


if "engine" not in st.session_state:
    st.session_state.engine = build_engine()
    st.session_state.region_key = None
    st.session_state.shajra_bounds = None

engine = st.session_state.engine
map_view: HeadlessMap = engine["map"]
labels: ViewportLabelManager = engine["labels"]
controller: ParcelSelectionController = engine["controller"]
region: RegionLayer = engine["region"]

# ═══════════════════════════════════════════════════════════════════════════
# SIDEBAR
# ═══════════════════════════════════════════════════════════════════════════
st.sidebar.title("🗺️ Parcel Map Engine")
st.sidebar.markdown("---")

tehsil = st.sidebar.text_input("Tehsil", value="")
mauza = st.sidebar.text_input("Mauza", value="")

if st.sidebar.button("📥 Load Mauza", disabled=not (tehsil and mauza)):
    loader = BoundaryLoader(settings=settings)
    try:
        boundary = loader.load_boundary(tehsil, mauza)
    except ParcelMapError as e:
        st.sidebar.error(f"❌ {e}")
    else:
        region.load(boundary)
        metadata = loader.load_shajra_metadata(tehsil, mauza)
        st.session_state.shajra_bounds = parse_metadata_bounds((metadata or {}).get("bounds"))
        st.session_state.region_key = (tehsil, mauza)
        st.rerun()

options = region.murabba_options()
if options:
    st.sidebar.markdown("---")
    murabba = st.sidebar.selectbox("Murabba", options)
    col1, col2 = st.sidebar.columns(2)
    with col1:
        if st.button("🔍 Show Killas"):
            try:
                asyncio.run(region.select_by_number(murabba))
            except ParcelMapError as e:
                st.sidebar.error(f"❌ {e}")
    with col2:
        if st.button("✖ Hide"):
            controller.deselect(murabba)

st.sidebar.markdown("---")
zoom = st.sidebar.slider("Zoom", 0, settings.max_zoom, int(map_view.zoom))
if zoom != map_view.zoom:
    map_view.set_zoom(zoom)

tile_cache = get_tile_cache()
tile_stats = tile_cache.stats()
st.sidebar.metric("Cached tiles", tile_stats["tiles"])
if st.sidebar.button("🗑️ Delete Cached Tiles"):
    tile_cache.clear()
    st.rerun()

# ═══════════════════════════════════════════════════════════════════════════
# MAIN PAGE
# ═══════════════════════════════════════════════════════════════════════════
st.title("🗺️ Parcel Map Engine")

if st.session_state.region_key is None:
    st.info("👋 Enter a tehsil and mauza in the sidebar to load its murabbas.")
    st.stop()

tehsil_loaded, mauza_loaded = st.session_state.region_key
st.caption(
    f"📍 {tehsil_loaded} / {mauza_loaded} · {len(options)} murabbas · "
    f"{len(controller.loaded_ids())} sub-grid(s) shown"
)

layers = []

shajra = st.session_state.shajra_bounds
on_screen = map_view.view_bounds()
if shajra is not None and on_screen is not None:
    visible_area = Bounds(
        min_lat=max(shajra.min_lat, on_screen.min_lat),
        min_lng=max(shajra.min_lng, on_screen.min_lng),
        max_lat=min(shajra.max_lat, on_screen.max_lat),
        max_lng=min(shajra.max_lng, on_screen.max_lng),
    )
    if visible_area.min_lat < visible_area.max_lat and visible_area.min_lng < visible_area.max_lng:
        shajra_ids = BoundaryLoader(settings=settings).shajra_region_ids(tehsil_loaded, mauza_loaded)
        # Tiles come through the cache; uncacheable ones fall back to their origin URL
        for tile in view_tiles(tile_cache, settings.public_base_url, shajra_ids, visible_area, int(map_view.zoom)):
            layers.append(pdk.Layer(
                "BitmapLayer",
                data=None,
                image=tile["image"],
                bounds=tile["bounds"],
                opacity=0.8,
            ))

for overlay in map_view.overlays.values():
    style = overlay.style
    layers.append(pdk.Layer(
        "GeoJsonLayer",
        overlay.geojson,
        stroked=True,
        filled=False,
        get_line_color=hex_to_rgb(style.get("color", "#3388ff")),
        line_width_min_pixels=style.get("weight", 1),
        pickable=True,
    ))

visible = labels.visible_labels()
if visible:
    font_sizes = {"label-small": 10, "label-medium": 12, "label-large": 16}
    layers.append(pdk.Layer(
        "TextLayer",
        [{"position": [h.anchor.lng, h.anchor.lat], "text": h.text, "size": font_sizes[h.size_class]}
         for h in visible],
        get_position="position",
        get_text="text",
        get_size="size",
        get_color=[255, 255, 255, 255],
    ))

center = map_view.center
view = pdk.ViewState(
    latitude=center.lat if center else 30.0,
    longitude=center.lng if center else 71.5,
    zoom=map_view.zoom,
)

st.pydeck_chart(
    pdk.Deck(
        layers=layers,
        initial_view_state=view,
        map_style="https://basemaps.cartocdn.com/gl/dark-matter-gl-style/style.json",
        tooltip={"text": "Murabba {Murabba_No}"}
    ),
    height=640
)
st.caption(f"Labels appear from zoom {settings.label_min_zoom} · {len(visible)} visible")
