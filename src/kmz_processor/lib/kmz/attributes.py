"""Derived feature attributes: geodesic area in dunum and mean elevation.

Area uses the spherical ring formula from Chamberlain & Duquette, "Some
Algorithms for Polygons on a Sphere" (JPL 2007), on a sphere of radius
6378137 m.  The browser client computes the same value with Turf.js, so both
sides agree for identical coordinates.
"""

import math
from collections.abc import Sequence
from numbers import Real
from typing import Any

from loguru import logger
from shapely.geometry import shape

from kmz_processor.lib.kmz.parser import BBox, Feature, FeatureCollection

# Reserved prefix keeps engine-injected keys apart from KML vocabulary
COMPUTED_PREFIX = "__computed_"
COMPUTED_AREA_KEY = f"{COMPUTED_PREFIX}area_dunum"
COMPUTED_ELEVATION_KEY = f"{COMPUTED_PREFIX}elev_avg_m"

EARTH_RADIUS_M = 6378137.0
SQUARE_METERS_PER_DUNUM = 1000.0
AREA_DECIMALS = 2
ELEVATION_DECIMALS = 1

_POLYGONAL_TYPES = frozenset({"Polygon", "MultiPolygon"})


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def ring_area(coords: Sequence[Sequence[float]]) -> float:
    """Unsigned area of one ring in square meters."""
    n = len(coords)
    if n <= 2:
        return 0.0

    total = 0.0
    for i in range(n):
        if i == n - 2:
            lower, middle, upper = n - 2, n - 1, 0
        elif i == n - 1:
            lower, middle, upper = n - 1, 0, 1
        else:
            lower, middle, upper = i, i + 1, i + 2
        total += (math.radians(coords[upper][0]) - math.radians(coords[lower][0])) * math.sin(
            math.radians(coords[middle][1])
        )

    return abs(total * EARTH_RADIUS_M * EARTH_RADIUS_M / 2.0)


def polygon_area(rings: Sequence[Sequence[Sequence[float]]]) -> float:
    """Outer ring area minus holes, in square meters."""
    if not rings:
        return 0.0
    area = ring_area(rings[0])
    for hole in rings[1:]:
        area -= ring_area(hole)
    return area


def geometry_area(geometry: dict[str, Any]) -> float:
    """Area of a Polygon or MultiPolygon geometry in square meters (0 for others)."""
    geom_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []
    if geom_type == "Polygon":
        return polygon_area(coordinates)
    if geom_type == "MultiPolygon":
        return sum(polygon_area(polygon) for polygon in coordinates)
    return 0.0


def collect_elevations(coordinates: Any) -> list[float]:
    """Gather every numeric third component from nested coordinate arrays.

    Walks depth-first with an explicit stack.  A sequence whose first element
    is a number is one coordinate tuple; anything else is descended into.
    """
    elevations: list[float] = []
    stack: list[Any] = [coordinates]
    while stack:
        node = stack.pop()
        if not isinstance(node, (list, tuple)) or not node:
            continue
        if _is_number(node[0]):
            if len(node) >= 3 and _is_number(node[2]):
                elevations.append(float(node[2]))
            continue
        # reversed keeps document order when popping
        stack.extend(reversed(node))
    return elevations


def compute_feature_attributes(feature: Feature) -> dict[str, float]:
    """Compute the derived attributes for one feature.

    Returns:
        Mapping of computed property keys to values; keys are absent when
        the attribute does not apply (non-polygonal area, no elevations).
    """
    computed: dict[str, float] = {}
    geometry = feature.geometry or {}

    if geometry.get("type") in _POLYGONAL_TYPES:
        area = geometry_area(geometry)
        computed[COMPUTED_AREA_KEY] = round(area / SQUARE_METERS_PER_DUNUM, AREA_DECIMALS)

    elevations = collect_elevations(geometry.get("coordinates"))
    if elevations:
        computed[COMPUTED_ELEVATION_KEY] = round(sum(elevations) / len(elevations), ELEVATION_DECIMALS)

    return computed


def apply_computed_attributes(collection: FeatureCollection) -> FeatureCollection:
    """Inject computed attributes into each feature's property bag in place.

    A failure on one feature is logged and that feature keeps its original
    properties; the remaining features are still processed.
    """
    for index, feature in enumerate(collection.features):
        try:
            feature.properties.update(compute_feature_attributes(feature))
        except Exception as e:
            logger.warning(f"Skipping derived attributes for feature {index}: {e}")
    return collection


def compute_bbox(features: Sequence[Feature]) -> BBox | None:
    """Bounding box ``(west, south, east, north)`` over all feature geometries."""
    west = south = math.inf
    east = north = -math.inf
    for feature in features:
        if not feature.geometry:
            continue
        minx, miny, maxx, maxy = shape(feature.geometry).bounds
        west, south = min(west, minx), min(south, miny)
        east, north = max(east, maxx), max(north, maxy)
    if west == math.inf:
        return None
    return (west, south, east, north)
