"""Unit tests for KMZ record and feature persistence."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.dml import Delete, Insert, Update

from kmz_processor.lib.kmz import Feature, FeatureCollection
from kmz_processor.models.kmz_feature import KmzFeature
from kmz_processor.models.kmz_file import KmzFile, KmzFileStatus
from kmz_processor.services import kmz_service


def _session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


def _collection(count: int) -> FeatureCollection:
    features = [
        Feature(
            geometry={"type": "Point", "coordinates": [35.8 + i / 100, 34.2]},
            properties={"id": f"p{i}", "name": f"Point {i}", "type": "Point"},
        )
        for i in range(count)
    ]
    return FeatureCollection(features=features)


class TestCreateKmzFile:
    """Tests for create_kmz_file."""

    @pytest.mark.asyncio
    async def test_adds_and_commits_queued_record(self) -> None:
        session = _session()

        kmz_file = await kmz_service.create_kmz_file(
            session,
            filename="1-abc-parcels.kmz",
            original_name="parcels.kmz",
            file_size=1024,
            metadata={"layerName": "doc.kml"},
        )

        assert isinstance(kmz_file, KmzFile)
        assert kmz_file.status == KmzFileStatus.QUEUED
        assert kmz_file.feature_count == 0
        assert kmz_file.file_metadata == {"layerName": "doc.kml"}
        session.add.assert_called_once_with(kmz_file)
        session.commit.assert_awaited_once()
        session.refresh.assert_awaited_once_with(kmz_file)

    @pytest.mark.asyncio
    async def test_failed_status(self) -> None:
        kmz_file = await kmz_service.create_kmz_file(
            _session(),
            filename="f.kmz",
            original_name="f.kmz",
            file_size=10,
            status=KmzFileStatus.FAILED,
            metadata={"error": "no_kml_found"},
        )
        assert kmz_file.status == KmzFileStatus.FAILED


class TestAddKmzFile:
    """Tests for add_kmz_file."""

    @pytest.mark.asyncio
    async def test_flushes_without_committing(self) -> None:
        session = _session()

        kmz_file = await kmz_service.add_kmz_file(
            session, filename="1-abc-parcels.kmz", original_name="parcels.kmz", file_size=1024
        )

        assert kmz_file.status == KmzFileStatus.QUEUED
        session.add.assert_called_once_with(kmz_file)
        session.flush.assert_awaited_once()
        session.commit.assert_not_awaited()


class TestQueries:
    """Tests for read helpers."""

    @pytest.mark.asyncio
    async def test_get_kmz_file(self) -> None:
        session = _session()
        record = KmzFile(id=3, filename="f.kmz", original_name="f.kmz")
        result = MagicMock()
        result.scalar_one_or_none.return_value = record
        session.execute = AsyncMock(return_value=result)

        assert await kmz_service.get_kmz_file(session, 3) is record

    @pytest.mark.asyncio
    async def test_list_kmz_files_applies_limit(self) -> None:
        session = _session()
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        session.execute = AsyncMock(return_value=result)

        assert await kmz_service.list_kmz_files(session, limit=5) == []

        statement = session.execute.call_args.args[0]
        assert "LIMIT" in str(statement.compile(dialect=postgresql.dialect()))

    @pytest.mark.asyncio
    async def test_count_features(self) -> None:
        session = _session()
        result = MagicMock()
        result.scalar_one.return_value = 4
        session.execute = AsyncMock(return_value=result)

        assert await kmz_service.count_features(session, 3) == 4


class TestReplaceFeatures:
    """Tests for replace_features."""

    @pytest.mark.asyncio
    async def test_deletes_then_inserts_each_feature(self) -> None:
        session = _session()

        inserted = await kmz_service.replace_features(session, 7, _collection(3))

        assert inserted == 3
        statements = [call.args[0] for call in session.execute.await_args_list]
        assert isinstance(statements[0], Delete)
        assert all(isinstance(s, Insert) for s in statements[1:])
        assert len(statements) == 4

    @pytest.mark.asyncio
    async def test_does_not_commit(self) -> None:
        session = _session()

        await kmz_service.replace_features(session, 7, _collection(1))

        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_collection_only_deletes(self) -> None:
        session = _session()

        assert await kmz_service.replace_features(session, 7, FeatureCollection(features=[])) == 0
        assert session.execute.await_count == 1


class TestFeatureRow:
    """Tests for the feature row mapping."""

    def test_maps_properties_to_columns(self) -> None:
        row = kmz_service._feature_row(
            2, None, {"id": "pm-1", "name": "Box", "description": "", "type": "Polygon", "area": 1.5}
        )
        assert row["kmz_id"] == 2
        assert row["feature_id"] == "pm-1"
        assert row["name"] == "Box"
        assert row["description"] is None
        assert row["placemark_type"] == "Polygon"
        assert row["geometry"] is None
        assert row["style"] is None
        assert row["properties"]["area"] == 1.5

    def test_geometry_is_sql_expression(self) -> None:
        row = kmz_service._feature_row(2, {"type": "Point", "coordinates": [1.0, 2.0]}, {})
        sql = str(row["geometry"].compile(dialect=postgresql.dialect()))
        assert "ST_SetSRID" in sql
        assert "ST_GeomFromGeoJSON" in sql

    def test_geometry_forced_to_3d(self) -> None:
        geometry = {"type": "Point", "coordinates": [35.8, 34.2, 10.0]}
        compiled = kmz_service._feature_row(2, geometry, {})["geometry"].compile(dialect=postgresql.dialect())

        assert "ST_Force3D(ST_GeomFromGeoJSON(" in str(compiled)
        geojson = [value for value in compiled.params.values() if isinstance(value, str)]
        assert json.loads(geojson[0])["coordinates"] == [35.8, 34.2, 10.0]
        assert 4326 in compiled.params.values()


class TestFeatureColumn:
    """Tests for the kmz_features geometry column."""

    def test_accepts_z_coordinates(self) -> None:
        column_type = KmzFeature.__table__.c.geometry.type

        assert column_type.geometry_type == "GEOMETRYZ"
        assert column_type.dimension == 3
        assert column_type.srid == 4326
        assert str(column_type.compile(dialect=postgresql.dialect())) == "geometry(GEOMETRYZ,4326)"


class TestStatusUpdates:
    """Tests for the mark_* helpers."""

    @pytest.mark.asyncio
    async def test_update_targets_kmz_files(self) -> None:
        session = _session()

        await kmz_service.mark_failed(session, 4, "no_kml_found")

        statement = session.execute.call_args.args[0]
        assert isinstance(statement, Update)
        assert statement.table.name == "kmz_files"
        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert "metadata" in sql
        assert "status" in sql
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mark_processing(self) -> None:
        with patch.object(kmz_service, "_update_kmz_file", new_callable=AsyncMock) as mock_update:
            session = _session()
            await kmz_service.mark_processing(session, 4)

        mock_update.assert_awaited_once_with(session, 4, status=KmzFileStatus.PROCESSING)

    @pytest.mark.asyncio
    async def test_mark_failed_records_reason(self) -> None:
        with patch.object(kmz_service, "_update_kmz_file", new_callable=AsyncMock) as mock_update:
            session = _session()
            await kmz_service.mark_failed(session, 4, "file_missing")

        mock_update.assert_awaited_once_with(
            session, 4, status=KmzFileStatus.FAILED, file_metadata={"error": "file_missing"}
        )

    @pytest.mark.asyncio
    async def test_mark_processed_with_thumbnail(self) -> None:
        with patch.object(kmz_service, "_update_kmz_file", new_callable=AsyncMock) as mock_update:
            await kmz_service.mark_processed(_session(), 4, feature_count=2, thumbnail_path="/t/4.png")

        values = mock_update.call_args.kwargs
        assert values["status"] == KmzFileStatus.PROCESSED
        assert values["feature_count"] == 2
        assert values["thumbnail_path"] == "/t/4.png"
        assert values["processed_date"] is not None

    @pytest.mark.asyncio
    async def test_mark_processed_without_thumbnail_keeps_column(self) -> None:
        with patch.object(kmz_service, "_update_kmz_file", new_callable=AsyncMock) as mock_update:
            await kmz_service.mark_processed(_session(), 4, feature_count=0)

        assert "thumbnail_path" not in mock_update.call_args.kwargs
