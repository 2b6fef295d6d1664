"""Create kmz_files, kmz_features, and queue_jobs tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

import geoalchemy2  # noqa: F401
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    op.create_table(
        "kmz_files",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("filename", sa.String(512), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default="queued", nullable=False),
        sa.Column("feature_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("thumbnail_path", sa.Text(), nullable=True),
        sa.Column("upload_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("processed_date", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_kmz_files_status", "kmz_files", ["status"])
    op.create_index("ix_kmz_files_upload_date", "kmz_files", ["upload_date"])

    op.create_table(
        "kmz_features",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kmz_id", sa.Integer(), nullable=False),
        sa.Column("feature_id", sa.String(255), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("placemark_type", sa.String(100), nullable=True),
        sa.Column(
            "geometry",
            geoalchemy2.types.Geometry(geometry_type="GEOMETRYZ", srid=4326, dimension=3, spatial_index=False),
            nullable=True,
        ),
        sa.Column("style", postgresql.JSONB(), nullable=True),
        sa.Column("properties", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["kmz_id"], ["kmz_files.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_kmz_features_kmz_id", "kmz_features", ["kmz_id"])
    op.create_index("idx_kmz_features_geometry", "kmz_features", ["geometry"], postgresql_using="gist")

    op.create_table(
        "queue_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("queue_name", sa.String(100), nullable=False),
        sa.Column("job_name", sa.String(100), server_default="process", nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(20), server_default="waiting", nullable=False),
        sa.Column("attempts_made", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default="5", nullable=False),
        sa.Column("backoff_type", sa.String(20), server_default="exponential", nullable=False),
        sa.Column("backoff_delay_ms", sa.Integer(), server_default="2000", nullable=False),
        sa.Column("available_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(100), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_queue_jobs_claim", "queue_jobs", ["queue_name", "status", "available_at"])


def downgrade() -> None:
    op.drop_index("ix_queue_jobs_claim", table_name="queue_jobs")
    op.drop_table("queue_jobs")
    op.drop_index("idx_kmz_features_geometry", table_name="kmz_features")
    op.drop_index("ix_kmz_features_kmz_id", table_name="kmz_features")
    op.drop_table("kmz_features")
    op.drop_index("ix_kmz_files_upload_date", table_name="kmz_files")
    op.drop_index("ix_kmz_files_status", table_name="kmz_files")
    op.drop_table("kmz_files")
