"""Baseline teams and users tables with single-provider auth columns.

Teams carry one Slack and one Google binding; users carry the service they
signed in with.  Revision 002 normalizes these into provider tables and
revision 003 drops them.

Revision ID: 001
Revises:
Create Date: 2020-12-01
"""

import sqlalchemy as sa

from alembic import op
from authproviders.helpers.auth_db import JSONType, UUIDType

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("name", sa.String()),
        sa.Column("slackId", sa.String()),
        sa.Column("slackData", JSONType),
        sa.Column("googleId", sa.String()),
        sa.Column(
            "createdAt",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "users",
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("name", sa.String()),
        sa.Column("email", sa.String()),
        sa.Column("service", sa.String(), server_default="slack"),
        sa.Column("serviceId", sa.String()),
        sa.Column("isAdmin", sa.Boolean(), server_default=sa.false()),
        sa.Column("slackData", JSONType),
        sa.Column("teamId", UUIDType),
        sa.Column(
            "createdAt",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["teamId"], ["teams.id"], name="users_teamId_fkey"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("users")
    op.drop_table("teams")
