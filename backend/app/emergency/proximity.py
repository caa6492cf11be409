"""
proximity.py — "Is this user near the emergency?" predicates.

Two policies are available, selected by ``PROXIMITY_MODE``:

═══════════════════════════════════════════════════════════════════════════
BBOX (default)
═══════════════════════════════════════════════════════════════════════════

A record is nearby if both

    center.lat - Δ <= record.lat <= center.lat + Δ
    center.lng - Δ <= record.lng <= center.lng + Δ

with a fixed Δ = 0.0045° (≈ 500 m of latitude). Boundaries are
inclusive. The same Δ is used for longitude, so the box narrows in
metres as latitude grows (at 60° it is only ≈ 250 m wide) and its
corners reach ≈ 700 m from the centre near the equator. This is a
known approximation and is kept as-is.

═══════════════════════════════════════════════════════════════════════════
HAVERSINE
═══════════════════════════════════════════════════════════════════════════

Same two-step approach as a geo-fence:

    Step 1 — Latitude-corrected bounding box (cheap, can run in SQL)
    Step 2 — Great-circle distance <= radius on the survivors

Both policies expose the box (for pushing into a query) and a
``matches`` predicate (for in-process filtering), so every directory
backend applies identical maths.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional


# ═══════════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════════

EARTH_RADIUS_M: float = 6_371_008.8  # IAU mean radius
DEFAULT_DELTA_DEG: float = 0.0045
DEFAULT_RADIUS_M: float = 500.0


# ═══════════════════════════════════════════════════════════════════════════
# Geometry primitives
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        return math.radians(self.longitude)


@dataclass(frozen=True)
class BoundingBox:
    """Inclusive lat/lng rectangle in degrees."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return (self.min_lat <= lat <= self.max_lat
                and self.min_lng <= lng <= self.max_lng)


def haversine_m(point1: Coordinate, point2: Coordinate) -> float:
    """
    Great-circle distance between two points in metres.

    >>> haversine_m(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def fixed_delta_box(center: Coordinate, delta_deg: float) -> BoundingBox:
    """Square box of ±delta_deg on both axes, clamped to valid ranges."""
    return BoundingBox(
        min_lat=max(center.latitude - delta_deg, -90.0),
        max_lat=min(center.latitude + delta_deg, 90.0),
        min_lng=max(center.longitude - delta_deg, -180.0),
        max_lng=min(center.longitude + delta_deg, 180.0),
    )


def radius_box(center: Coordinate, radius_m: float) -> BoundingBox:
    """
    Box that fully contains the circle (center, radius_m).

    Longitude delta is widened by 1/cos(lat) since meridians converge
    toward the poles.
    """
    angular = radius_m / EARTH_RADIUS_M  # radians
    delta_lat = math.degrees(angular)

    cos_lat = math.cos(center.lat_rad)
    if cos_lat > 1e-10:
        delta_lng = math.degrees(angular / cos_lat)
    else:
        delta_lng = 180.0

    return BoundingBox(
        min_lat=max(center.latitude - delta_lat, -90.0),
        max_lat=min(center.latitude + delta_lat, 90.0),
        min_lng=max(center.longitude - delta_lng, -180.0),
        max_lng=min(center.longitude + delta_lng, 180.0),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Policies
# ═══════════════════════════════════════════════════════════════════════════

class BoundingBoxPolicy:
    """Fixed angular delta on both axes; the box is the whole test."""

    name = "bbox"
    needs_refinement = False

    def __init__(self, delta_deg: float = DEFAULT_DELTA_DEG):
        if delta_deg <= 0:
            raise ValueError(f"delta_deg must be positive, got {delta_deg}")
        self.delta_deg = delta_deg

    def box(self, center: Coordinate) -> BoundingBox:
        return fixed_delta_box(center, self.delta_deg)

    def matches(self, center: Coordinate, lat: float, lng: float) -> bool:
        return self.box(center).contains(lat, lng)

    def __repr__(self) -> str:
        return f"BoundingBoxPolicy(delta_deg={self.delta_deg})"


class HaversinePolicy:
    """True radius check with a latitude-corrected box pre-filter."""

    name = "haversine"
    needs_refinement = True

    def __init__(self, radius_m: float = DEFAULT_RADIUS_M):
        if radius_m <= 0:
            raise ValueError(f"radius_m must be positive, got {radius_m}")
        self.radius_m = radius_m

    def box(self, center: Coordinate) -> BoundingBox:
        return radius_box(center, self.radius_m)

    def matches(self, center: Coordinate, lat: float, lng: float) -> bool:
        if not self.box(center).contains(lat, lng):
            return False
        return haversine_m(center, Coordinate(lat, lng)) <= self.radius_m

    def __repr__(self) -> str:
        return f"HaversinePolicy(radius_m={self.radius_m})"


def build_policy(
    mode: str,
    *,
    delta_deg: Optional[float] = None,
    radius_m: Optional[float] = None,
):
    """Return the policy for a ``PROXIMITY_MODE`` value."""
    mode = mode.lower()
    if mode == "bbox":
        return BoundingBoxPolicy(DEFAULT_DELTA_DEG if delta_deg is None else delta_deg)
    if mode == "haversine":
        return HaversinePolicy(DEFAULT_RADIUS_M if radius_m is None else radius_m)
    raise ValueError(f"Unknown proximity mode '{mode}'. Must be 'bbox' or 'haversine'")
