"""GPX track reading and simple track statistics."""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import TYPE_CHECKING

from trailpress.errors import ErrorCode, SiteError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

EARTH_RADIUS_M = 6371008.8
_POINT_TAGS = frozenset({"trkpt", "rtept"})


@dataclass(frozen=True)
class TrackPoint:
    lon: float
    lat: float
    elevation: float | None = None


@dataclass(frozen=True)
class TrackStats:
    distance_km: float
    total_ascent_m: float


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_track(content: bytes | str) -> list[TrackPoint]:
    """Extract every track and route point, in document order.

    Works for GPX 1.0 and 1.1 alike since namespaces are ignored.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise SiteError(
            code=ErrorCode.DECODE_FAILED,
            message=f"GPX document is not well-formed XML: {exc}",
        ) from exc

    points: list[TrackPoint] = []
    for element in root.iter():
        if _local_name(element.tag) not in _POINT_TAGS:
            continue
        try:
            lat = float(element.attrib["lat"])
            lon = float(element.attrib["lon"])
        except (KeyError, ValueError) as exc:
            raise SiteError(
                code=ErrorCode.DECODE_FAILED,
                message=f"GPX point without valid lat/lon: {element.attrib}",
            ) from exc

        elevation = None
        for child in element:
            if _local_name(child.tag) == "ele" and child.text:
                try:
                    elevation = float(child.text)
                except ValueError:
                    elevation = None
                break
        points.append(TrackPoint(lon=lon, lat=lat, elevation=elevation))

    return points


def read_track(path: Path) -> list[TrackPoint]:
    """Read a GPX file; an empty track is an input error."""
    try:
        content = path.read_bytes()
    except OSError as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to read GPX file: {path}",
        ) from exc

    points = parse_track(content)
    if not points:
        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"GPX file has no track points: {path}",
            suggestion="Export the activity with its track or route included.",
        )
    return points


def haversine_m(a: TrackPoint, b: TrackPoint) -> float:
    """Great-circle distance in meters."""
    p1 = math.radians(a.lat)
    p2 = math.radians(b.lat)
    dphi = p2 - p1
    dl = math.radians(b.lon - a.lon)
    h = math.sin(dphi / 2.0) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2.0) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def track_stats(points: Sequence[TrackPoint]) -> TrackStats:
    """Total distance and cumulative climb along the track."""
    distance_m = 0.0
    ascent_m = 0.0
    for prev, point in zip(points, points[1:], strict=False):
        distance_m += haversine_m(prev, point)
        if (
            point.elevation is not None
            and prev.elevation is not None
            and point.elevation > prev.elevation
        ):
            ascent_m += point.elevation - prev.elevation
    return TrackStats(distance_km=distance_m / 1000.0, total_ascent_m=ascent_m)
