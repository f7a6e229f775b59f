"""create sites

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

_STATUS = sa.Enum("active", "inactive", "suspended", name="sitestatus")


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("domain_key", sa.String(255), nullable=False),
        sa.Column("api_token", sa.String(64), nullable=False),
        sa.Column("status", _STATUS, nullable=False),
        sa.Column("wp_version", sa.String(32), nullable=True),
        sa.Column("plugin_version", sa.String(32), nullable=True),
        sa.Column("installed_plugins", sa.JSON(), nullable=False),
        sa.Column("detected_forms", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_sites_api_token", "sites", ["api_token"], unique=True)
    op.create_index("ix_sites_deleted_at", "sites", ["deleted_at"])
    # At most one live site per host[:port].
    op.create_index(
        "uq_sites_domain_live",
        "sites",
        ["domain_key"],
        unique=True,
        sqlite_where=sa.text("deleted_at IS NULL"),
        postgresql_where=sa.text("deleted_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_sites_domain_live", table_name="sites")
    op.drop_index("ix_sites_deleted_at", table_name="sites")
    op.drop_index("ix_sites_api_token", table_name="sites")
    op.drop_table("sites")
    _STATUS.drop(op.get_bind(), checkfirst=True)
