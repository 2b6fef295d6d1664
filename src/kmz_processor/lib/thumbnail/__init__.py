"""Best-effort thumbnail generation for processed KMZ files.

Public API:
    - generate_thumbnail: Render (remote) or draw (local) and store a thumbnail
    - ThumbnailResult: Outcome with either a path or the swallowed error
    - thumbnail_dir_for: Resolve the thumbnail directory under a base directory
"""

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from kmz_processor.lib.kmz.attributes import compute_bbox
from kmz_processor.lib.kmz.parser import FeatureCollection
from kmz_processor.lib.thumbnail.placeholder import placeholder_caption, render_placeholder
from kmz_processor.lib.thumbnail.renderer import (
    DEFAULT_TIMEOUT,
    ThumbnailRenderError,
    build_getmap_params,
    fetch_wms_thumbnail,
)


@dataclass(frozen=True)
class ThumbnailResult:
    """Outcome of a thumbnail attempt.

    ``path`` is set on success; ``error`` holds the reason when nothing was
    produced because of a failure.  Both are None when there was nothing to
    draw (no features).
    """

    path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.path is not None


def thumbnail_dir_for(base_dir: Path | str) -> Path:
    return Path(base_dir) / "uploads" / "thumbnails"


async def generate_thumbnail(
    kmz_id: int,
    collection: FeatureCollection,
    thumbnail_dir: Path,
    *,
    render_service_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ThumbnailResult:
    """Produce ``<thumbnail_dir>/<kmz_id>.png`` for a feature collection.

    Uses the render service when one is configured and the collection
    declares an explicit extent; otherwise draws a placeholder from the
    features' bounding box.  Never raises.
    """
    try:
        if render_service_url and collection.bbox is not None:
            image = await fetch_wms_thumbnail(render_service_url, collection.bbox, timeout=timeout)
        elif collection.features:
            bbox = compute_bbox(collection.features)
            if bbox is None:
                return ThumbnailResult()
            image = render_placeholder(kmz_id, bbox)
        else:
            return ThumbnailResult()

        thumbnail_dir.mkdir(parents=True, exist_ok=True)
        path = thumbnail_dir / f"{kmz_id}.png"
        path.write_bytes(image)
    except Exception as e:
        logger.warning(f"Thumbnail generation failed for kmz {kmz_id}: {e}")
        return ThumbnailResult(error=str(e) or type(e).__name__)

    logger.debug(f"Stored thumbnail for kmz {kmz_id} at {path}")
    return ThumbnailResult(path=path)


__all__ = [
    "ThumbnailRenderError",
    "ThumbnailResult",
    "build_getmap_params",
    "fetch_wms_thumbnail",
    "generate_thumbnail",
    "placeholder_caption",
    "render_placeholder",
    "thumbnail_dir_for",
]
