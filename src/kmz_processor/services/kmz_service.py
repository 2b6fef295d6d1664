"""KMZ file records and feature persistence.

Feature replacement and status updates run in the caller's session; the
caller owns the transaction boundary (commit or rollback).
"""

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from kmz_processor.lib.kmz import FeatureCollection
from kmz_processor.models.kmz_feature import KmzFeature
from kmz_processor.models.kmz_file import KmzFile, KmzFileStatus

WGS84_SRID = 4326


async def add_kmz_file(
    session: AsyncSession,
    *,
    filename: str,
    original_name: str,
    file_size: int | None,
    storage_path: str | None = None,
    status: KmzFileStatus = KmzFileStatus.QUEUED,
    metadata: dict[str, Any] | None = None,
) -> KmzFile:
    """Add a job record for an uploaded archive and flush it, without committing.

    Args:
        session: Database session.
        filename: Stored (unique) filename.
        original_name: Filename as uploaded.
        file_size: Size in bytes.
        storage_path: Absolute path of the stored upload.
        status: Initial status (``failed`` when the upload was rejected).
        metadata: Initial metadata, e.g. ``{"layerName": "doc.kml"}``.

    Returns:
        The pending KmzFile, with its id assigned.
    """
    kmz_file = KmzFile(
        filename=filename,
        original_name=original_name,
        file_size=file_size,
        storage_path=storage_path,
        status=status,
        feature_count=0,
        file_metadata=metadata,
    )
    session.add(kmz_file)
    await session.flush()
    return kmz_file


async def create_kmz_file(session: AsyncSession, **fields: Any) -> KmzFile:
    """Insert and commit a job record; see ``add_kmz_file`` for the fields."""
    kmz_file = await add_kmz_file(session, **fields)
    await session.commit()
    await session.refresh(kmz_file)
    return kmz_file


async def get_kmz_file(session: AsyncSession, kmz_id: int) -> KmzFile | None:
    result = await session.execute(select(KmzFile).where(KmzFile.id == kmz_id))
    return result.scalar_one_or_none()


async def list_kmz_files(session: AsyncSession, *, limit: int = 100) -> list[KmzFile]:
    """Most recently uploaded files first."""
    result = await session.execute(select(KmzFile).order_by(KmzFile.upload_date.desc(), KmzFile.id.desc()).limit(limit))
    return list(result.scalars().all())


async def list_features(session: AsyncSession, kmz_id: int) -> Sequence[KmzFeature]:
    result = await session.execute(select(KmzFeature).where(KmzFeature.kmz_id == kmz_id).order_by(KmzFeature.id))
    return result.scalars().all()


async def count_features(session: AsyncSession, kmz_id: int) -> int:
    result = await session.execute(select(func.count()).select_from(KmzFeature).where(KmzFeature.kmz_id == kmz_id))
    return result.scalar_one()


def _feature_row(kmz_id: int, geometry: dict[str, Any] | None, properties: dict[str, Any]) -> dict[str, Any]:
    geometry_value = None
    if geometry is not None:
        geometry_value = func.ST_SetSRID(func.ST_Force3D(func.ST_GeomFromGeoJSON(json.dumps(geometry))), WGS84_SRID)
    return {
        "kmz_id": kmz_id,
        "feature_id": _optional_text(properties.get("id")),
        "name": _optional_text(properties.get("name")),
        "description": _optional_text(properties.get("description")),
        "placemark_type": _optional_text(properties.get("type")),
        "geometry": geometry_value,
        "style": None,
        "properties": properties,
    }


def _optional_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


async def replace_features(session: AsyncSession, kmz_id: int, collection: FeatureCollection) -> int:
    """Delete every feature row of ``kmz_id`` and insert the collection's features.

    Geometry is handed to PostGIS as GeoJSON text, forced to 3-D to match
    the ``GEOMETRYZ`` column, and tagged EPSG:4326.
    Nothing is committed here; replacing inside one transaction keeps a
    partial feature set from ever becoming visible.

    Returns:
        Number of feature rows inserted.
    """
    await session.execute(delete(KmzFeature).where(KmzFeature.kmz_id == kmz_id))

    for feature in collection.features:
        await session.execute(insert(KmzFeature).values(**_feature_row(kmz_id, feature.geometry, feature.properties)))

    logger.debug(f"Replaced features for kmz {kmz_id}: {len(collection)} row(s)")
    return len(collection)


async def _update_kmz_file(session: AsyncSession, kmz_id: int, **values: Any) -> None:
    # Keyed by mapped attribute so "metadata" resolves through file_metadata
    await session.execute(
        update(KmzFile).where(KmzFile.id == kmz_id).values({getattr(KmzFile, key): value for key, value in values.items()})
    )


async def mark_processing(session: AsyncSession, kmz_id: int) -> None:
    await _update_kmz_file(session, kmz_id, status=KmzFileStatus.PROCESSING)


async def mark_failed(session: AsyncSession, kmz_id: int, reason: str) -> None:
    """Set status ``failed`` with ``{"error": reason}`` as metadata."""
    await _update_kmz_file(session, kmz_id, status=KmzFileStatus.FAILED, file_metadata={"error": reason})
    logger.warning(f"KMZ {kmz_id} marked failed: {reason}")


async def mark_processed(
    session: AsyncSession,
    kmz_id: int,
    *,
    feature_count: int,
    thumbnail_path: str | None = None,
) -> None:
    """Set status ``processed``, the processing time, feature count, and thumbnail."""
    values: dict[str, Any] = {
        "status": KmzFileStatus.PROCESSED,
        "processed_date": datetime.now(UTC),
        "feature_count": feature_count,
    }
    if thumbnail_path is not None:
        values["thumbnail_path"] = thumbnail_path
    await _update_kmz_file(session, kmz_id, **values)
