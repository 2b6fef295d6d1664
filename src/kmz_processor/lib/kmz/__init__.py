"""KMZ reading library: archive extraction, KML parsing, derived attributes.

Public API:
    - load_kmz: Extract, parse, and enrich a KMZ archive in one call
    - extract_kml: Locate the first KML document in an archive
    - parse_kml: Convert KML bytes into a FeatureCollection
    - apply_computed_attributes: Inject area/elevation properties
    - compute_bbox: Bounding box over feature geometries
    - Feature, FeatureCollection, KmlDocument: Data structures
    - TerminalProcessingError and subclasses: Non-retryable failures
"""

from pathlib import Path

from kmz_processor.lib.kmz.archive import KmlDocument, extract_kml
from kmz_processor.lib.kmz.attributes import (
    COMPUTED_AREA_KEY,
    COMPUTED_ELEVATION_KEY,
    apply_computed_attributes,
    compute_bbox,
)
from kmz_processor.lib.kmz.errors import (
    FILE_MISSING,
    NO_KML_FOUND,
    ArchiveError,
    FileMissingError,
    KmlParseError,
    KmzProcessingError,
    NoKmlDocumentError,
    TerminalProcessingError,
)
from kmz_processor.lib.kmz.parser import Feature, FeatureCollection, parse_kml


def load_kmz(source: Path | str | bytes) -> tuple[KmlDocument, FeatureCollection]:
    """Extract the KML document from an archive, parse it, and compute attributes.

    Args:
        source: Path to a KMZ archive or its raw bytes.

    Returns:
        The extracted document and its enriched feature collection.

    Raises:
        NoKmlDocumentError: If the archive holds no KML document.
        ArchiveError: If the source is not a zip archive.
        KmlParseError: If the KML is not well-formed XML.
    """
    document = extract_kml(source)
    collection = apply_computed_attributes(parse_kml(document.data))
    return document, collection


__all__ = [
    "COMPUTED_AREA_KEY",
    "COMPUTED_ELEVATION_KEY",
    "FILE_MISSING",
    "NO_KML_FOUND",
    "ArchiveError",
    "Feature",
    "FeatureCollection",
    "FileMissingError",
    "KmlDocument",
    "KmlParseError",
    "KmzProcessingError",
    "NoKmlDocumentError",
    "TerminalProcessingError",
    "apply_computed_attributes",
    "compute_bbox",
    "extract_kml",
    "load_kmz",
    "parse_kml",
]
