"""Webhook alert for jobs that failed permanently."""

import httpx
from loguru import logger

DEFAULT_TIMEOUT = 5.0


def build_failure_payload(job_id: int | None, filename: str | None, error: BaseException | str | None) -> dict:
    """Structured alert body: ``{text, job_id, filename, error}``."""
    if isinstance(error, BaseException):
        reason = str(error) or type(error).__name__
    else:
        reason = error or "unknown"
    return {
        "text": f"KMZ job failed permanently for kmz_id={job_id}, filename={filename or 'n/a'}",
        "job_id": job_id,
        "filename": filename,
        "error": reason,
    }


async def send_job_failure_notification(
    webhook_url: str | None,
    *,
    job_id: int | None,
    filename: str | None,
    error: BaseException | str | None,
    timeout: float = DEFAULT_TIMEOUT,
) -> bool:
    """POST a failure alert to ``webhook_url``.

    Args:
        webhook_url: Alert destination; when unset this is a silent no-op.
        job_id: KMZ file id of the failed job.
        filename: Stored filename of the failed job.
        error: The exception (or message) that ended the job.
        timeout: Request timeout in seconds.

    Returns:
        True if the webhook accepted the alert, False otherwise.  Delivery
        errors are logged, never raised.
    """
    if not webhook_url:
        return False

    payload = build_failure_payload(job_id, filename, error)
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(webhook_url, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"Failed to send job failure notification for kmz {job_id}: {e}")
        return False
    except Exception:
        logger.exception(f"Unexpected error sending job failure notification for kmz {job_id}")
        return False

    logger.info(f"Sent job failure notification for kmz {job_id}")
    return True
