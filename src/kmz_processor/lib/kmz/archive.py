"""KMZ archive access: locate the KML document inside a zip container."""

import io
import zipfile
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from kmz_processor.lib.kmz.errors import ArchiveError, NoKmlDocumentError

KML_EXTENSION = ".kml"


@dataclass(frozen=True)
class KmlDocument:
    """Raw KML document extracted from an archive."""

    entry_name: str
    data: bytes


def find_kml_entry_name(zf: zipfile.ZipFile) -> str | None:
    """Return the first entry whose name ends in ``.kml`` (case-insensitive)."""
    for info in zf.infolist():
        if info.is_dir():
            continue
        if info.filename.lower().endswith(KML_EXTENSION):
            return info.filename
    return None


def extract_kml(source: Path | str | bytes) -> KmlDocument:
    """Read the first KML document out of a KMZ archive.

    Args:
        source: Path to the archive on disk, or the archive's raw bytes.

    Returns:
        The selected entry's name and bytes.

    Raises:
        NoKmlDocumentError: If the archive contains no ``.kml`` entry.
        ArchiveError: If the source is not a valid zip archive.
    """
    handle: Path | io.BytesIO = io.BytesIO(source) if isinstance(source, bytes) else Path(source)

    try:
        with zipfile.ZipFile(handle, "r") as zf:
            entry_name = find_kml_entry_name(zf)
            if entry_name is None:
                msg = "No KML found inside KMZ"
                raise NoKmlDocumentError(msg)
            data = zf.read(entry_name)
    except zipfile.BadZipFile as e:
        msg = f"Not a valid KMZ archive: {e}"
        raise ArchiveError(msg) from e

    logger.debug(f"Extracted {entry_name} ({len(data)} bytes)")
    return KmlDocument(entry_name=entry_name, data=data)
