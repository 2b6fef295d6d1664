"""Loguru logging configuration.

Human-readable stderr output by default, an opt-in JSON sink for records
bound with ``json_output=True``, and an optional rotating file sink shared by
the API and worker processes.
"""

import sys
from pathlib import Path

from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"
_LOG_FILE_NAME = "kmz-processor.log"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None, *, process_name: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for log files.  When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
        process_name: Optional label ("api", "worker") bound to every record
            so interleaved API and worker logs can be told apart.
    """
    logger.remove()
    if process_name:
        logger.configure(extra={"process_name": process_name})
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        format=_LOG_FORMAT,
        serialize=False,
    )
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        serialize=True,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / _LOG_FILE_NAME,
            level=log_level.upper(),
            format=_LOG_FORMAT,
            rotation="24h",
            retention="7 days",
        )
