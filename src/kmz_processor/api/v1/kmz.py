"""KMZ API endpoints.

POST /kmz/upload (multipart file upload), GET /kmz (latest jobs),
GET /kmz/{kmz_id} (status), GET /kmz/{kmz_id}/features (GeoJSON),
GET /kmz/{kmz_id}/thumbnail (PNG).
"""

from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from geoalchemy2.shape import to_shape
from shapely.geometry import mapping
from sqlalchemy.ext.asyncio import AsyncSession

from kmz_processor.core.config import Settings, get_settings
from kmz_processor.core.dependencies import get_async_session, get_job_queue
from kmz_processor.core.queue import JobQueue
from kmz_processor.models.kmz_file import KmzFile
from kmz_processor.schemas.kmz import (
    KmzFeatureCollection,
    KmzFileListResponse,
    KmzFileResponse,
    KmzGeoJSONFeature,
    KmzUploadResponse,
)
from kmz_processor.services import kmz_service
from kmz_processor.services.upload_service import accept_upload, validate_upload

router = APIRouter(prefix="/kmz", tags=["kmz"])

RECENT_FILES_LIMIT = 100
_NOT_FOUND_DETAIL = "not_found"


async def _get_kmz_or_404(session: AsyncSession, kmz_id: int) -> KmzFile:
    kmz_file = await kmz_service.get_kmz_file(session, kmz_id)
    if kmz_file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND_DETAIL)
    return kmz_file


@router.post("/upload", response_model=KmzUploadResponse)
async def upload_kmz(
    file: UploadFile,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> KmzUploadResponse:
    """Store an uploaded KMZ archive and queue it for processing.

    Rejected uploads raise ``InvalidUploadError`` (a ValueError), which the
    application turns into a 400 response.
    """
    original_name = validate_upload(file.filename)

    content = await file.read()
    if len(content) > settings.upload_max_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds maximum size of {settings.upload_max_size_mb} MB",
        )

    kmz_file = await accept_upload(session, queue, settings, original_name=original_name, content=content)
    return KmzUploadResponse(message="KMZ uploaded and queued", kmz_id=kmz_file.id)


@router.get("", response_model=KmzFileListResponse)
async def list_kmz(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> KmzFileListResponse:
    """List the most recently uploaded files."""
    files = await kmz_service.list_kmz_files(session, limit=RECENT_FILES_LIMIT)
    return KmzFileListResponse(items=[KmzFileResponse.model_validate(f) for f in files])


@router.get("/{kmz_id}", response_model=KmzFileResponse)
async def get_kmz(
    kmz_id: int,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> KmzFileResponse:
    """Get a file's processing status."""
    return KmzFileResponse.model_validate(await _get_kmz_or_404(session, kmz_id))


@router.get("/{kmz_id}/features")
async def get_kmz_features(
    kmz_id: int,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> JSONResponse:
    """Stored features of a file as a GeoJSON FeatureCollection."""
    await _get_kmz_or_404(session, kmz_id)

    features = []
    for row in await kmz_service.list_features(session, kmz_id):
        geometry = mapping(to_shape(row.geometry)) if row.geometry is not None else None
        features.append(KmzGeoJSONFeature(id=row.id, geometry=geometry, properties=row.properties or {}))

    collection = KmzFeatureCollection(features=features)
    return JSONResponse(content=collection.model_dump(), media_type="application/geo+json")


@router.get("/{kmz_id}/thumbnail")
async def get_kmz_thumbnail(
    kmz_id: int,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> FileResponse:
    """Download a processed file's thumbnail."""
    kmz_file = await _get_kmz_or_404(session, kmz_id)
    if not kmz_file.thumbnail_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thumbnail not available")

    path = Path(kmz_file.thumbnail_path)
    if not path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thumbnail not found on disk")
    return FileResponse(path=path, media_type="image/png", filename=path.name)
