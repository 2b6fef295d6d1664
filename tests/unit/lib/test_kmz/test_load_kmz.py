"""Unit tests for the combined extract, parse, and enrich entry point."""

import pytest

from kmz_processor.lib.kmz import (
    COMPUTED_AREA_KEY,
    COMPUTED_ELEVATION_KEY,
    KmlParseError,
    NoKmlDocumentError,
    load_kmz,
)


class TestLoadKmz:
    """Tests for load_kmz."""

    def test_box_polygon_end_to_end(self, box_kmz_path) -> None:
        document, collection = load_kmz(box_kmz_path)

        assert document.entry_name == "doc.kml"
        assert len(collection) == 1
        props = collection.features[0].properties
        assert props["id"] == "parcel-1"
        assert props["name"] == "Box"
        assert 1022 <= props[COMPUTED_AREA_KEY] <= 1026
        assert props[COMPUTED_ELEVATION_KEY] == 10.0

    def test_missing_document(self, make_kmz) -> None:
        with pytest.raises(NoKmlDocumentError):
            load_kmz(make_kmz({"notes.txt": "nothing here"}))

    def test_malformed_document(self, make_kmz) -> None:
        with pytest.raises(KmlParseError):
            load_kmz(make_kmz({"doc.kml": "<kml><Document>"}))
