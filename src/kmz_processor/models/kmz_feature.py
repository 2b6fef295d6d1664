"""KmzFeature model: one placemark extracted from a KMZ archive."""

from typing import Any

from geoalchemy2 import Geometry
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from kmz_processor.models.base import Base, IntegerIDMixin


class KmzFeature(Base, IntegerIDMixin):
    """Placemark geometry and properties belonging to exactly one KMZ file."""

    __tablename__ = "kmz_features"

    kmz_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("kmz_files.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feature_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    placemark_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Always 3-D: 2-D placemarks are stored with z = 0
    geometry: Mapped[Any] = mapped_column(
        Geometry(geometry_type="GEOMETRYZ", srid=4326, dimension=3, spatial_index=False),
        nullable=True,
    )
    # Reserved for future styling; always NULL today
    style: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    properties: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (Index("idx_kmz_features_geometry", "geometry", postgresql_using="gist"),)
