"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from kmz_processor.models.kmz_feature import KmzFeature
from kmz_processor.models.kmz_file import KmzFile, KmzFileStatus
from kmz_processor.models.queue_job import QueueJob, QueueJobStatus

__all__ = [
    "KmzFeature",
    "KmzFile",
    "KmzFileStatus",
    "QueueJob",
    "QueueJobStatus",
]
