"""Spherical-Mercator projection and map view fitting.

Pure math, no I/O. Coordinates are (longitude, latitude) in degrees; tile
space has 2^zoom tiles per axis, and pixel space is tile space times 256.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

TILE_SIZE = 256
MIN_ZOOM = 1
MAX_ZOOM = 18

# Span given to a zero-width or zero-height box so a view can be fitted
# around a single point (roughly 50 m at the equator).
MIN_SPAN_DEGREES = 0.0005


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> tuple[float, float]:
    """Fractional tile coordinates of a point at ``zoom``."""
    lat_rad = math.radians(lat)
    n = 2.0**zoom
    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    return x, y


def lonlat_to_pixel(lon: float, lat: float, zoom: int) -> tuple[float, float]:
    """Global pixel coordinates of a point at ``zoom``."""
    x, y = lonlat_to_tile(lon, lat, zoom)
    return x * TILE_SIZE, y * TILE_SIZE


@dataclass(frozen=True)
class BoundingBox:
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self) -> None:
        if self.min_lon > self.max_lon or self.min_lat > self.max_lat:
            raise ValueError(f"Bounding box min exceeds max: {self}")

    @classmethod
    def from_points(cls, points: Iterable[tuple[float, float]]) -> BoundingBox:
        """Smallest box containing every ``(lon, lat)`` point."""
        iterator = iter(points)
        try:
            lon, lat = next(iterator)
        except StopIteration:
            raise ValueError("Cannot build a bounding box from zero points") from None

        min_lon = max_lon = lon
        min_lat = max_lat = lat
        for lon, lat in iterator:
            min_lon, max_lon = min(min_lon, lon), max(max_lon, lon)
            min_lat, max_lat = min(min_lat, lat), max(max_lat, lat)
        return cls(min_lon, min_lat, max_lon, max_lat)

    @property
    def center(self) -> tuple[float, float]:
        return (self.min_lon + self.max_lon) / 2.0, (self.min_lat + self.max_lat) / 2.0

    @property
    def width(self) -> float:
        return self.max_lon - self.min_lon

    @property
    def height(self) -> float:
        return self.max_lat - self.min_lat

    def scaled(self, x_factor: float, y_factor: float) -> BoundingBox:
        """Scale about the center, independently per axis."""
        cx, cy = self.center
        half_w = self.width * x_factor / 2.0
        half_h = self.height * y_factor / 2.0
        return BoundingBox(cx - half_w, cy - half_h, cx + half_w, cy + half_h)

    def padded(self, span: float = MIN_SPAN_DEGREES) -> BoundingBox:
        """Give zero-width or zero-height axes ``span`` degrees around the center."""
        cx, cy = self.center
        min_lon, max_lon = self.min_lon, self.max_lon
        min_lat, max_lat = self.min_lat, self.max_lat
        if self.width == 0:
            min_lon, max_lon = cx - span / 2.0, cx + span / 2.0
        if self.height == 0:
            min_lat, max_lat = cy - span / 2.0, cy + span / 2.0
        return BoundingBox(min_lon, min_lat, max_lon, max_lat)


@dataclass(frozen=True)
class View:
    """A bounding box seen at a fixed zoom level."""

    zoom: int
    bbox: BoundingBox

    def __post_init__(self) -> None:
        if not MIN_ZOOM <= self.zoom <= MAX_ZOOM:
            raise ValueError(f"Zoom must be within [{MIN_ZOOM}, {MAX_ZOOM}], got {self.zoom}")

    def tile_bounds(self) -> tuple[tuple[float, float], tuple[float, float]]:
        """Top-left and bottom-right corners of the box in tile space."""
        top_left = lonlat_to_tile(self.bbox.min_lon, self.bbox.max_lat, self.zoom)
        bottom_right = lonlat_to_tile(self.bbox.max_lon, self.bbox.min_lat, self.zoom)
        return top_left, bottom_right

    def dimensions(self) -> tuple[float, float]:
        """Width and height of the box in pixels."""
        (min_x, min_y), (max_x, max_y) = self.tile_bounds()
        return (max_x - min_x) * TILE_SIZE, (max_y - min_y) * TILE_SIZE

    def can_fit_in(self, width: float, height: float) -> bool:
        w, h = self.dimensions()
        return w < width and h < height

    def scaled_to(self, width: float, height: float) -> View:
        """Rescale the box about its center so the footprint matches the canvas."""
        current_w, current_h = self.dimensions()
        return View(self.zoom, self.bbox.scaled(width / current_w, height / current_h))

    @classmethod
    def fit(cls, bbox: BoundingBox, width: float, height: float) -> View:
        """Pick the most detailed zoom that fits the canvas, then fill it exactly.

        Zoom levels are tried from 18 down to 1; if even zoom 1 does not fit,
        zoom 1 is used and the box is shrunk to the canvas.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Canvas must be non-empty, got {width}x{height}")

        bbox = bbox.padded()
        view = cls(MAX_ZOOM, bbox)
        for zoom in range(MAX_ZOOM, MIN_ZOOM - 1, -1):
            view = cls(zoom, bbox)
            if view.can_fit_in(width, height):
                break
        return view.scaled_to(width, height)
