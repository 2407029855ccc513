"""
Error types for the parcel map engine.

Fetch failures are recovered close to where they happen (tile cache,
selection controller). Only geometry synthesis failures reach the caller.
"""

from typing import Optional


class ParcelMapError(Exception):
    """Base class for all parcel map errors."""


class DegenerateGeometryError(ParcelMapError):
    """A parcel boundary has (almost) zero width or height."""


class TileFetchError(ParcelMapError):
    """A raster tile could not be fetched from its origin."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else reason
        super().__init__(f"Tile fetch failed for {url}: {detail}")


class SubGridFetchError(ParcelMapError):
    """A precomputed sub-grid file is missing or malformed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Sub-grid unavailable at {url}: {reason}")


class LabelLeakWarning(UserWarning):
    """Labels are still bound for a feature that no longer exists."""
