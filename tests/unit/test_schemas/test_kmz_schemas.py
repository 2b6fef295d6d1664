"""Tests for KMZ response schemas."""

from datetime import UTC, datetime

from kmz_processor.models.kmz_file import KmzFile, KmzFileStatus
from kmz_processor.schemas.kmz import (
    KmzFeatureCollection,
    KmzFileResponse,
    KmzGeoJSONFeature,
    KmzUploadResponse,
)


class TestKmzFileResponse:
    """Tests for KmzFileResponse."""

    def test_from_orm_reads_metadata_column(self) -> None:
        kmz_file = KmzFile(
            id=5,
            filename="1-a-b.kmz",
            original_name="b.kmz",
            file_size=100,
            status=KmzFileStatus.FAILED,
            feature_count=0,
            file_metadata={"error": "file_missing"},
            upload_date=datetime(2026, 3, 1, tzinfo=UTC),
        )

        response = KmzFileResponse.model_validate(kmz_file)

        assert response.metadata == {"error": "file_missing"}
        assert response.status == "failed"
        assert response.processed_date is None
        assert response.model_dump()["metadata"] == {"error": "file_missing"}

    def test_from_dict_by_field_name(self) -> None:
        response = KmzFileResponse.model_validate(
            {"id": 1, "filename": "f", "original_name": "f", "status": "queued", "metadata": {"layerName": "doc.kml"}}
        )
        assert response.metadata == {"layerName": "doc.kml"}
        assert response.feature_count == 0


class TestGeoJSONSchemas:
    """Tests for the GeoJSON response models."""

    def test_feature_defaults(self) -> None:
        feature = KmzGeoJSONFeature(id=1, properties={})
        assert feature.model_dump() == {"type": "Feature", "id": 1, "geometry": None, "properties": {}}

    def test_collection(self) -> None:
        collection = KmzFeatureCollection(features=[KmzGeoJSONFeature(id=2, properties={"name": "x"})])
        assert collection.type == "FeatureCollection"
        assert len(collection.features) == 1

    def test_upload_response(self) -> None:
        assert KmzUploadResponse(message="KMZ uploaded and queued", kmz_id=3).kmz_id == 3
