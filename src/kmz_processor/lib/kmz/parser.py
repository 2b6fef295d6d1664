"""KML to GeoJSON-shaped feature conversion using lxml.

Each ``Placemark`` becomes one feature carrying the first geometry found in
priority order Polygon, Point, LineString.  Coordinates keep at most three
components (longitude, latitude, elevation).  Placemarks whose geometry does
not meet its minimum vertex count are dropped rather than failing the
document; only malformed XML is fatal.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from lxml import etree

from kmz_processor.lib.kmz.errors import KmlParseError

MIN_POLYGON_POINTS = 3
MIN_LINE_POINTS = 2
MIN_POINT_COORDS = 1

BBox = tuple[float, float, float, float]

_COMMA_SPACING = re.compile(r"\s*,\s*")


@dataclass
class Feature:
    """A single GeoJSON-style feature."""

    geometry: dict[str, Any]
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def geometry_type(self) -> str:
        return self.geometry.get("type", "")

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "Feature", "geometry": self.geometry, "properties": self.properties}


@dataclass
class FeatureCollection:
    """Ordered features parsed from one KML document.

    ``bbox`` is only set when the document declares an explicit extent
    (``LatLonAltBox``/``LatLonBox``); it is never derived from the geometry.
    """

    features: list[Feature] = field(default_factory=list)
    bbox: BBox | None = None

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def to_geojson(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }
        if self.bbox is not None:
            data["bbox"] = list(self.bbox)
        return data


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)


def _local(el: etree._Element) -> str | None:
    """Local (namespace-free) tag name, or None for comments and PIs."""
    if not isinstance(el.tag, str):
        return None
    return etree.QName(el).localname


def _children(el: etree._Element, name: str) -> list[etree._Element]:
    return [child for child in el if _local(child) == name]


def _descendants(el: etree._Element, name: str) -> Iterator[etree._Element]:
    for child in el.iter():
        if child is not el and _local(child) == name:
            yield child


def _first(elements: Iterator[etree._Element] | list[etree._Element]) -> etree._Element | None:
    return next(iter(elements), None)


def _child_text(el: etree._Element, name: str) -> str | None:
    child = _first(_children(el, name))
    if child is None:
        return None
    return (child.text or "").strip()


def parse_coordinates(text: str | None) -> list[list[float]]:
    """Parse a KML ``coordinates`` string.

    Tuples are whitespace-separated; components are comma-separated.  Only
    the first three components are kept.

    Raises:
        ValueError: If a tuple has fewer than two components or a component
            is not a number.
    """
    if not text:
        return []
    coords: list[list[float]] = []
    for token in _COMMA_SPACING.sub(",", text.strip()).split():
        parts = [p for p in token.split(",") if p != ""]
        if len(parts) < 2:
            msg = f"Coordinate tuple needs at least longitude and latitude: {token!r}"
            raise ValueError(msg)
        coords.append([float(p) for p in parts[:3]])
    return coords


def _ring_coordinates(ring_parent: etree._Element) -> list[list[float]]:
    ring = _first(_descendants(ring_parent, "LinearRing"))
    if ring is None:
        return []
    return parse_coordinates(_child_text(ring, "coordinates"))


def _polygon_rings(polygon: etree._Element) -> list[list[list[float]]] | None:
    outer_boundary = _first(_children(polygon, "outerBoundaryIs"))
    outer = _ring_coordinates(outer_boundary if outer_boundary is not None else polygon)
    if len(outer) < MIN_POLYGON_POINTS:
        return None
    rings = [outer]
    for inner_boundary in _children(polygon, "innerBoundaryIs"):
        inner = _ring_coordinates(inner_boundary)
        if len(inner) >= MIN_POLYGON_POINTS:
            rings.append(inner)
    return rings


def _point_geometry(point: etree._Element) -> dict[str, Any] | None:
    coords = parse_coordinates(_child_text(point, "coordinates"))
    if len(coords) < MIN_POINT_COORDS:
        return None
    return {"type": "Point", "coordinates": coords[0]}


def _line_geometry(line: etree._Element) -> dict[str, Any] | None:
    coords = parse_coordinates(_child_text(line, "coordinates"))
    if len(coords) < MIN_LINE_POINTS:
        return None
    return {"type": "LineString", "coordinates": coords}


def _multipolygon_geometry(placemark: etree._Element) -> dict[str, Any] | None:
    """MultiGeometry made solely of polygons becomes a MultiPolygon."""
    multi = _first(_descendants(placemark, "MultiGeometry"))
    if multi is None:
        return None
    if _first(_descendants(multi, "Point")) is not None or _first(_descendants(multi, "LineString")) is not None:
        return None
    polygons = [rings for p in _descendants(multi, "Polygon") if (rings := _polygon_rings(p)) is not None]
    if len(polygons) < 2:
        return None
    return {"type": "MultiPolygon", "coordinates": polygons}


def _placemark_geometry(placemark: etree._Element) -> dict[str, Any] | None:
    multipolygon = _multipolygon_geometry(placemark)
    if multipolygon is not None:
        return multipolygon

    polygon = _first(_descendants(placemark, "Polygon"))
    if polygon is not None:
        rings = _polygon_rings(polygon)
        return {"type": "Polygon", "coordinates": rings} if rings else None

    point = _first(_descendants(placemark, "Point"))
    if point is not None:
        return _point_geometry(point)

    line = _first(_descendants(placemark, "LineString"))
    if line is not None:
        return _line_geometry(line)

    return None


def _extended_data(placemark: etree._Element) -> dict[str, Any]:
    props: dict[str, Any] = {}
    for extended in _children(placemark, "ExtendedData"):
        for data in _descendants(extended, "Data"):
            key = data.get("name")
            if key:
                props[key] = _child_text(data, "value")
        for simple in _descendants(extended, "SimpleData"):
            key = simple.get("name")
            if key:
                props[key] = (simple.text or "").strip()
    return props


def _placemark_properties(placemark: etree._Element) -> dict[str, Any]:
    props: dict[str, Any] = {}
    placemark_id = placemark.get("id")
    if placemark_id:
        props["id"] = placemark_id
    name = _child_text(placemark, "name")
    if name is not None:
        props["name"] = name
    description = _child_text(placemark, "description")
    if description is not None:
        props["description"] = description
    for key, value in _extended_data(placemark).items():
        props.setdefault(key, value)
    return props


def _declared_bbox(root: etree._Element) -> BBox | None:
    for name in ("LatLonAltBox", "LatLonBox"):
        box = _first(_descendants(root, name))
        if box is None:
            continue
        try:
            west = float(_child_text(box, "west") or "")
            south = float(_child_text(box, "south") or "")
            east = float(_child_text(box, "east") or "")
            north = float(_child_text(box, "north") or "")
        except ValueError:
            logger.debug(f"Ignoring incomplete {name} extent")
            continue
        return (west, south, east, north)
    return None


def parse_kml(data: bytes) -> FeatureCollection:
    """Convert a KML document into a feature collection.

    Args:
        data: Raw KML bytes.

    Returns:
        Features in document order of their placemarks.

    Raises:
        KmlParseError: If the document is not well-formed XML.
    """
    try:
        root = etree.fromstring(data, parser=_xml_parser())
    except etree.XMLSyntaxError as e:
        msg = f"Failed to parse KML: {e}"
        raise KmlParseError(msg) from e
    if root is None:
        msg = "Failed to parse KML: empty document"
        raise KmlParseError(msg)

    collection = FeatureCollection(bbox=_declared_bbox(root))
    skipped = 0
    for placemark in _descendants(root, "Placemark"):
        try:
            geometry = _placemark_geometry(placemark)
        except ValueError as e:
            logger.debug(f"Skipping placemark with unreadable coordinates: {e}")
            geometry = None
        if geometry is None:
            skipped += 1
            continue
        collection.features.append(Feature(geometry=geometry, properties=_placemark_properties(placemark)))

    if skipped:
        logger.info(f"Dropped {skipped} placemark(s) without usable geometry")
    logger.debug(f"Parsed {len(collection)} feature(s) from KML")
    return collection
