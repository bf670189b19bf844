"""create_pipeline_tables

Revision ID: 3f1c9a0d2b71
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

from models.base import JSONType

revision: str = "3f1c9a0d2b71"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, as the models do
ARCHIVE_STATUS = sa.Enum(
    "NEW", "DOWNLOADING", "DOWNLOADED", "DOWNLOAD_FAILED", "EXAMINING_ZIP", "PROCESSED_ZIP", "EXTRACTION_FAILED",
    name="archivestatus",
)
FILE_STATUS = sa.Enum(
    "UNASSOCIATED", "ASSOCIATED", "PROCESSING", "PROCESSED", "NO_DATE", "NO_PAIR", "FAILED",
    name="filestatus",
)
FILE_KIND = sa.Enum("MEDIA", "SIDECAR", name="filekind")


def upgrade() -> None:
    """Create archives, file_entries and media_records."""
    op.create_table(
        "archives",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=500), nullable=False),
        sa.Column("local_staging_path", sa.String(length=1024), nullable=False),
        sa.Column("status", ARCHIVE_STATUS, nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
    )
    op.create_index("ix_archives_status", "archives", ["status"])
    op.create_index("idx_archive_status_created", "archives", ["status", "created_at"])

    op.create_table(
        "file_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("archive_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("path", sa.String(length=2048), nullable=False),
        sa.Column("kind", FILE_KIND, nullable=False),
        sa.Column("pairing_key", sa.String(length=500), nullable=False),
        sa.Column("status", FILE_STATUS, nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("related_entry_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["archive_id"], ["archives.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_entry_id"], ["file_entries.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("archive_id", "path", name="uq_file_entry_archive_path"),
    )
    op.create_index("ix_file_entries_archive_id", "file_entries", ["archive_id"])
    op.create_index("ix_file_entries_status", "file_entries", ["status"])
    op.create_index("idx_file_entry_pairing", "file_entries", ["archive_id", "kind", "pairing_key"])
    op.create_index("idx_file_entry_kind_status", "file_entries", ["kind", "status"])

    op.create_table(
        "media_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("media_entry_id", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("final_path", sa.String(length=2048), nullable=False),
        sa.Column("raw_metadata", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["media_entry_id"], ["file_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("media_entry_id"),
    )


def downgrade() -> None:
    """Drop the pipeline tables."""
    op.drop_table("media_records")
    op.drop_index("idx_file_entry_kind_status", table_name="file_entries")
    op.drop_index("idx_file_entry_pairing", table_name="file_entries")
    op.drop_index("ix_file_entries_status", table_name="file_entries")
    op.drop_index("ix_file_entries_archive_id", table_name="file_entries")
    op.drop_table("file_entries")
    op.drop_index("idx_archive_status_created", table_name="archives")
    op.drop_index("ix_archives_status", table_name="archives")
    op.drop_table("archives")
    ARCHIVE_STATUS.drop(op.get_bind(), checkfirst=True)
    FILE_STATUS.drop(op.get_bind(), checkfirst=True)
    FILE_KIND.drop(op.get_bind(), checkfirst=True)
