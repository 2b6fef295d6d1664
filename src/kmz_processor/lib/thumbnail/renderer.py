"""Remote thumbnail rendering through a WMS GetMap request."""

import httpx
from loguru import logger

from kmz_processor.lib.kmz.parser import BBox

THUMBNAIL_WIDTH = 400
THUMBNAIL_HEIGHT = 200
DEFAULT_TIMEOUT = 5.0


class ThumbnailRenderError(Exception):
    """Raised when the render service does not return an image."""


def build_getmap_params(bbox: BBox, *, width: int = THUMBNAIL_WIDTH, height: int = THUMBNAIL_HEIGHT) -> dict[str, str]:
    """Build WMS 1.1.1 GetMap query parameters for an EPSG:4326 extent."""
    return {
        "service": "WMS",
        "version": "1.1.1",
        "request": "GetMap",
        "format": "image/png",
        "transparent": "true",
        "width": str(width),
        "height": str(height),
        "srs": "EPSG:4326",
        "bbox": ",".join(str(v) for v in bbox),
    }


async def fetch_wms_thumbnail(base_url: str, bbox: BBox, *, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Fetch a rendered PNG for ``bbox`` from ``<base_url>/wms``.

    Args:
        base_url: Render service base URL (e.g. a GeoServer root).
        bbox: Extent as ``(west, south, east, north)``.
        timeout: Request timeout in seconds.

    Returns:
        The image bytes.

    Raises:
        httpx.HTTPError: On transport failures or non-2xx responses.
        ThumbnailRenderError: If the service answered with something other
            than an image (WMS reports errors as XML with status 200).
    """
    url = f"{base_url.rstrip('/')}/wms"
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url, params=build_getmap_params(bbox))
        response.raise_for_status()

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        msg = f"Render service returned {content_type or 'no content type'} instead of an image"
        raise ThumbnailRenderError(msg)

    logger.debug(f"Fetched {len(response.content)} byte thumbnail from render service")
    return response.content
