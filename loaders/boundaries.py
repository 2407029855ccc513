"""
Boundary Loader - mauza boundary layers and shajra tile metadata.

A mauza boundary is a FeatureCollection of murabba quadrilaterals, each
carrying its number in the Murabba_No property. A mauza may also have a
scanned shajra (revenue sheet) tile set, announced by a metadata file.
"""

import re
import time
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from urllib.parse import quote

import requests

from core.errors import ParcelMapError
from core.models import MURABBA_PROPERTY, Bounds, Quadrilateral
from core.settings import MapSettings, get_settings
from loaders.http import make_retrying, make_session

log = logging.getLogger(__name__)

SHAJRA_ROOT = "Shajra Parcha"


def natural_key(value: str):
    """Sort key that orders embedded numbers numerically ("2" < "10")."""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", value)]


@dataclass
class MauzaBoundary:
    """A loaded mauza boundary layer."""
    tehsil: str
    mauza: str
    geojson: Dict

    @property
    def features(self) -> List[Dict]:
        return self.geojson.get("features") or []

    def murabba_options(self) -> List[str]:
        """Distinct murabba numbers as strings, in natural order."""
        numbers = {
            str(f["properties"][MURABBA_PROPERTY])
            for f in self.features
            if (f.get("properties") or {}).get(MURABBA_PROPERTY) is not None
        }
        return sorted(numbers, key=natural_key)

    def find(self, murabba_no) -> Optional[Dict]:
        wanted = str(murabba_no)
        for feature in self.features:
            value = (feature.get("properties") or {}).get(MURABBA_PROPERTY)
            if value is not None and str(value) == wanted:
                return feature
        return None

    def quadrilateral(self, murabba_no) -> Quadrilateral:
        feature = self.find(murabba_no)
        if feature is None:
            raise KeyError(f"No murabba {murabba_no} in {self.tehsil}/{self.mauza}")
        return Quadrilateral.from_geometry(feature["geometry"])

    @property
    def bounds(self) -> Optional[Bounds]:
        if not self.features:
            return None
        return Bounds.from_geojson(self.geojson)


def parse_metadata_bounds(raw: Union[str, Dict, List, None]) -> Optional[Bounds]:
    """
    Read the bounds entry of a shajra metadata file.

    Accepted forms:
        "minLng,minLat,maxLng,maxLat"
        {"topLeft": [lat, lng], "topRight": ..., "bottomRight": ..., "bottomLeft": ...}
        [[minLat, minLng], [maxLat, maxLng]]
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            parts = [float(p) for p in raw.split(",")]
        except ValueError:
            return None
        if len(parts) != 4:
            return None
        return Bounds(min_lat=parts[1], min_lng=parts[0], max_lat=parts[3], max_lng=parts[2])
    if isinstance(raw, dict) and "topLeft" in raw:
        corners = [raw[k] for k in ("topLeft", "topRight", "bottomRight", "bottomLeft") if k in raw]
        lats = [float(c[0]) for c in corners]
        lngs = [float(c[1]) for c in corners]
        return Bounds(min_lat=min(lats), min_lng=min(lngs), max_lat=max(lats), max_lng=max(lngs))
    if isinstance(raw, list) and len(raw) == 2:
        (lat1, lng1), (lat2, lng2) = raw
        return Bounds(min_lat=min(lat1, lat2), min_lng=min(lng1, lng2),
                      max_lat=max(lat1, lat2), max_lng=max(lng1, lng2))
    return None


class BoundaryLoader:
    """
    Loads mauza boundaries from the API and shajra metadata from the file server.
    """

    def __init__(self, settings: Optional[MapSettings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or make_session()

    def boundary_url(self, tehsil: str, mauza: str) -> str:
        return (
            f"{self.settings.api_base_url.rstrip('/')}/api/geojson/"
            f"{quote(tehsil, safe='')}/{quote(mauza, safe='')}?t={int(time.time() * 1000)}"
        )

    def metadata_url(self, tehsil: str, mauza: str) -> str:
        return (
            f"{self.settings.public_base_url.rstrip('/')}/{quote(SHAJRA_ROOT)}/"
            f"{quote(tehsil, safe='')}/{quote(mauza, safe='')}.json?t={int(time.time() * 1000)}"
        )

    def shajra_region_ids(self, tehsil: str, mauza: str) -> List[str]:
        """Region path segments of the mauza's shajra tile set."""
        return [SHAJRA_ROOT, tehsil, mauza]

    def _get(self, url: str) -> requests.Response:
        return make_retrying(self.settings)(
            self.session.get,
            url,
            headers={"Cache-Control": "no-store"},
            timeout=self.settings.request_timeout_seconds,
        )

    def load_boundary(self, tehsil: str, mauza: str) -> MauzaBoundary:
        """
        Fetch a mauza's murabba boundaries.

        Raises:
            ParcelMapError: the request failed or the body is not a FeatureCollection
        """
        url = self.boundary_url(tehsil, mauza)
        try:
            response = self._get(url)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise ParcelMapError(f"Boundary fetch failed for {tehsil}/{mauza}: {e}") from e
        except ValueError as e:
            raise ParcelMapError(f"Boundary for {tehsil}/{mauza} is not valid JSON") from e

        if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
            raise ParcelMapError(f"Boundary for {tehsil}/{mauza} is not a FeatureCollection")

        boundary = MauzaBoundary(tehsil=tehsil, mauza=mauza, geojson=data)
        if not boundary.features:
            log.warning(f"No features in boundary {tehsil}/{mauza}")
        else:
            log.info(f"Loaded {tehsil}/{mauza}: {len(boundary.murabba_options())} murabbas")
        return boundary

    def load_shajra_metadata(self, tehsil: str, mauza: str) -> Optional[Dict]:
        """
        Fetch the shajra metadata file, or None when the mauza has no shajra tiles.

        A missing file, an error status or a non-JSON answer all mean "no tiles".
        """
        url = self.metadata_url(tehsil, mauza)
        try:
            response = self._get(url)
        except requests.RequestException as e:
            log.warning(f"Shajra metadata request failed for {tehsil}/{mauza}: {e}")
            return None

        is_json = "application/json" in (response.headers.get("Content-Type") or "")
        if not response.ok or not is_json:
            log.debug(f"No shajra metadata for {tehsil}/{mauza} (HTTP {response.status_code})")
            return None
        try:
            return response.json()
        except ValueError:
            log.warning(f"Shajra metadata for {tehsil}/{mauza} is not valid JSON")
            return None
