"""KMZ upload and feature Pydantic v2 response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class KmzUploadResponse(BaseModel):
    """Accepted upload, queued for processing."""

    message: str
    kmz_id: int


class KmzFileResponse(BaseModel):
    """Processing job record."""

    id: int
    filename: str
    original_name: str
    file_size: int | None = None
    status: str
    feature_count: int = 0
    metadata: dict | None = Field(default=None, validation_alias="file_metadata")
    thumbnail_path: str | None = None
    upload_date: datetime | None = None
    processed_date: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class KmzFileListResponse(BaseModel):
    """Most recent processing jobs."""

    items: list[KmzFileResponse]


class KmzGeoJSONFeature(BaseModel):
    """A stored feature as a GeoJSON Feature."""

    type: str = "Feature"
    id: int
    geometry: dict | None = None
    properties: dict


class KmzFeatureCollection(BaseModel):
    """GeoJSON FeatureCollection of a processed file's features."""

    type: str = "FeatureCollection"
    features: list[KmzGeoJSONFeature]
