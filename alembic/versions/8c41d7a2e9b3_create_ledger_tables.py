"""create ledger tables

Revision ID: 8c41d7a2e9b3
Revises: 
Create Date: 2026-01-10 18:42:03.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8c41d7a2e9b3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.Text(), nullable=False),
    )

    op.create_table(
        "series",
        sa.Column("series_id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("author", sa.Text(), nullable=True),
        sa.Column("editorial", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="READING"),
        sa.Column("publishing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_volumes", sa.Integer(), nullable=True),
        sa.Column("cover_image", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("retail_price", sa.Float(), nullable=True),
        sa.Column("mal_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(
            ("user_id",),
            ["users.id"],
            name="fk_series_user_id_users",
            ondelete="CASCADE",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_series_user_updated", "series", ["user_id", "updated_at"])

    op.create_table(
        "volumes",
        sa.Column("volume_id", sa.Integer(), primary_key=True),
        sa.Column("series_id", sa.Integer(), nullable=False),
        sa.Column("volume_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("isbn", sa.Text(), nullable=True),
        sa.Column("owned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("price_paid", sa.Float(), nullable=True),
        sa.Column("condition", sa.Text(), nullable=False, server_default="NEW"),
        sa.Column("store", sa.Text(), nullable=True),
        sa.Column("purchase_date", sa.Text(), nullable=True),
        sa.Column("read_date", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cover_image", sa.Text(), nullable=True),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
        sa.UniqueConstraint(
            "series_id",
            "volume_number",
            name="uq_volumes_series_volume_number",
        ),
        sa.CheckConstraint("volume_number >= 1", name="ck_volumes_volume_number"),
        sa.ForeignKeyConstraint(
            ("series_id",),
            ["series.series_id"],
            name="fk_volumes_series_id_series",
            ondelete="CASCADE",
        ),
        sqlite_autoincrement=True,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("volumes")
    op.drop_index("ix_series_user_updated", table_name="series")
    op.drop_table("series")
    op.drop_table("users")
