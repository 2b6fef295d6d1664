"""Accepting uploaded KMZ archives into the processing queue."""

import secrets
import time
import zipfile
from pathlib import Path

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from kmz_processor.core.config import Settings
from kmz_processor.core.queue import JobQueue
from kmz_processor.lib.kmz import NO_KML_FOUND
from kmz_processor.lib.kmz.archive import KML_EXTENSION, find_kml_entry_name
from kmz_processor.models.kmz_file import KmzFile, KmzFileStatus
from kmz_processor.services import kmz_service
from kmz_processor.services.processing_service import enqueue_kmz

KMZ_SUFFIX = ".kmz"


class InvalidUploadError(ValueError):
    """The upload cannot be accepted for processing."""


class NoKmlInUploadError(InvalidUploadError):
    """The uploaded archive holds no KML document; a failed record was kept."""

    def __init__(self, kmz_id: int) -> None:
        self.kmz_id = kmz_id
        super().__init__("No KML found inside KMZ")


def stored_filename(original_name: str) -> str:
    """Unique stored name: ``<epoch-ms>-<random>-<original>``."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}-{Path(original_name).name}"


def validate_upload(original_name: str | None) -> str:
    """Check the name of an upload before it is stored.

    Returns:
        The original filename.

    Raises:
        InvalidUploadError: If no name was given or it is not a ``.kmz`` file.
    """
    if not original_name:
        msg = "No file provided"
        raise InvalidUploadError(msg)
    if not original_name.lower().endswith(KMZ_SUFFIX):
        msg = "Only .kmz files are accepted"
        raise InvalidUploadError(msg)
    return original_name


def _kml_entry_of(path: Path) -> str | None:
    try:
        with zipfile.ZipFile(path) as zf:
            return find_kml_entry_name(zf)
    except zipfile.BadZipFile:
        path.unlink(missing_ok=True)
        msg = "File is not a valid KMZ archive"
        raise InvalidUploadError(msg) from None


async def accept_upload(
    session: AsyncSession,
    queue: JobQueue,
    settings: Settings,
    *,
    original_name: str,
    content: bytes,
) -> KmzFile:
    """Store an archive, record it, and queue it for processing.

    The archive is checked for a ``.kml`` entry up front.  Without one the
    record is still inserted, as ``failed`` with ``{"error": "no_kml_found"}``,
    and nothing is queued.  Otherwise the record and its queue entry are
    committed together; if either fails, neither is kept and the stored
    file is removed.

    Args:
        session: Database session.
        queue: Processing queue.
        settings: Application settings (upload directory, retry policy).
        original_name: Filename as uploaded.
        content: Archive bytes.

    Returns:
        The queued KmzFile.

    Raises:
        InvalidUploadError: If the file is not a zip archive.
        NoKmlInUploadError: If the archive holds no KML document.
    """
    upload_dir = settings.upload_path
    upload_dir.mkdir(parents=True, exist_ok=True)
    filename = stored_filename(original_name)
    stored_path = (upload_dir / filename).resolve()
    stored_path.write_bytes(content)

    entry_name = _kml_entry_of(stored_path)
    if entry_name is None:
        rejected = await kmz_service.create_kmz_file(
            session,
            filename=filename,
            original_name=original_name,
            file_size=len(content),
            storage_path=str(stored_path),
            status=KmzFileStatus.FAILED,
            metadata={"error": NO_KML_FOUND},
        )
        logger.warning(f"Upload {original_name} has no {KML_EXTENSION} entry; recorded as kmz {rejected.id}")
        raise NoKmlInUploadError(rejected.id)

    try:
        kmz_file = await kmz_service.add_kmz_file(
            session,
            filename=filename,
            original_name=original_name,
            file_size=len(content),
            storage_path=str(stored_path),
            metadata={"layerName": entry_name},
        )
        await enqueue_kmz(queue, kmz_file, settings, session=session)
        await session.commit()
    except Exception:
        await session.rollback()
        stored_path.unlink(missing_ok=True)
        raise
    await session.refresh(kmz_file)
    logger.info(f"Queued kmz {kmz_file.id} ({original_name}, {len(content)} bytes)")
    return kmz_file
