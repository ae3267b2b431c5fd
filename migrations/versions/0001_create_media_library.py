from alembic import op
import sqlalchemy as sa

revision = "0001_create_media_library"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "media_assets",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="uploaded"),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("format", sa.String(length=16), nullable=False),
        sa.Column("file_hash", sa.String(length=64), nullable=True),
        sa.Column("alt_text", sa.String(length=200), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("tags", sa.String(length=500), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=False, server_default="uncategorized"),
        sa.Column("variants", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("uploaded_by", sa.String(length=256), nullable=True),
        sa.Column("external_id", sa.String(length=64), nullable=True),
        sa.Column("photographer_name", sa.String(length=200), nullable=True),
        sa.Column("photographer_username", sa.String(length=100), nullable=True),
        sa.UniqueConstraint("file_path", name="uq_media_assets_file_path"),
    )
    op.create_index("ix_media_assets_category", "media_assets", ["category"])
    op.create_index("ix_media_assets_created_at", "media_assets", ["created_at"])
    op.create_index("ix_media_assets_file_hash", "media_assets", ["file_hash"])
    op.create_index("ix_media_assets_external_id", "media_assets", ["external_id"])

    op.create_table(
        "media_usages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("asset_id", sa.String(length=32), nullable=False),
        sa.Column("consumer_type", sa.String(length=50), nullable=False),
        sa.Column("consumer_id", sa.String(length=64), nullable=False),
        sa.Column("usage_type", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        # an asset with usages cannot be deleted
        sa.ForeignKeyConstraint(["asset_id"], ["media_assets.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("asset_id", "consumer_type", "consumer_id", name="uq_media_usage_consumer"),
    )
    op.create_index("ix_media_usages_asset_id", "media_usages", ["asset_id"])
    op.create_index("ix_media_usages_consumer", "media_usages", ["consumer_type", "consumer_id"])

    op.create_table(
        "image_sizes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("label", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=True),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("mode", sa.String(length=32), nullable=False, server_default="crop"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("label", name="uq_image_sizes_label"),
    )
    op.create_index("ix_image_sizes_category", "image_sizes", ["category"])

def downgrade():
    op.drop_index("ix_image_sizes_category", table_name="image_sizes")
    op.drop_table("image_sizes")
    op.drop_index("ix_media_usages_consumer", table_name="media_usages")
    op.drop_index("ix_media_usages_asset_id", table_name="media_usages")
    op.drop_table("media_usages")
    op.drop_index("ix_media_assets_external_id", table_name="media_assets")
    op.drop_index("ix_media_assets_file_hash", table_name="media_assets")
    op.drop_index("ix_media_assets_created_at", table_name="media_assets")
    op.drop_index("ix_media_assets_category", table_name="media_assets")
    op.drop_table("media_assets")
