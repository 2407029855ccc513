"""
Sub-grid Loader - precomputed killa grids from the static file server.

Files live at {public}/JSON Murabba/{tehsil}/{mauza}/{murabba}.geojson.
Murabba numbers may contain "/", which cannot appear in a file name, so
slashes become dashes.
"""

import time
import logging
from typing import Dict, Optional, Sequence
from urllib.parse import quote

import requests

from core.errors import SubGridFetchError
from core.models import TransformedGrid
from core.settings import MapSettings, get_settings
from loaders.http import make_retrying, make_session

log = logging.getLogger(__name__)

SUBGRID_ROOT = "JSON Murabba"
POLYGON_TYPES = ("Polygon", "MultiPolygon")


def sanitize_parcel_id(parcel_id) -> str:
    return str(parcel_id).replace("/", "-")


class SubGridLoader:
    """Fetches and validates precomputed sub-grid FeatureCollections."""

    def __init__(
        self,
        settings: Optional[MapSettings] = None,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = base_url or f"{self.settings.public_base_url.rstrip('/')}/{quote(SUBGRID_ROOT)}"
        self.session = session or make_session()

    def url_for(self, region_ids: Sequence[str], parcel_id, now_ms: Optional[int] = None) -> str:
        """
        Sub-grid address with a cache-busting t parameter.

        Args:
            region_ids: path segments of the mauza, e.g. ("Yazman", "4 DNB")
            parcel_id: murabba number, e.g. "12" or "12/3"
            now_ms: timestamp for the t parameter (defaults to the current time)
        """
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        segments = [quote(str(part), safe="") for part in region_ids]
        segments.append(quote(sanitize_parcel_id(parcel_id), safe="") + ".geojson")
        return f"{self.base_url.rstrip('/')}/{'/'.join(segments)}?t={now_ms}"

    def fetch(self, region_ids: Sequence[str], parcel_id) -> Dict:
        """
        Download the sub-grid for one murabba.

        Returns:
            The FeatureCollection as a dict

        Raises:
            SubGridFetchError: unreachable, non-2xx, not JSON, or not a
                FeatureCollection of polygons
        """
        url = self.url_for(region_ids, parcel_id)
        try:
            response = make_retrying(self.settings)(
                self.session.get,
                url,
                headers={"Cache-Control": "no-store"},
                timeout=self.settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise SubGridFetchError(url, f"request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SubGridFetchError(url, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise SubGridFetchError(url, "response is not JSON") from e

        validate_feature_collection(payload, url)
        log.debug(f"Fetched precomputed sub-grid {url} ({len(payload['features'])} cells)")
        return payload


def validate_feature_collection(payload, url: str = "") -> None:
    """Raise SubGridFetchError unless payload is a non-empty FeatureCollection of polygons."""
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise SubGridFetchError(url, "payload is not a FeatureCollection")
    features = payload.get("features")
    if not isinstance(features, list) or not features:
        raise SubGridFetchError(url, "FeatureCollection has no features")
    for i, feature in enumerate(features):
        geometry = (feature or {}).get("geometry") or {}
        if geometry.get("type") not in POLYGON_TYPES or not geometry.get("coordinates"):
            raise SubGridFetchError(url, f"feature {i} is not a polygon")
    try:
        TransformedGrid.from_geojson(payload).validate()
    except (ValueError, TypeError) as e:
        raise SubGridFetchError(url, str(e)) from e
