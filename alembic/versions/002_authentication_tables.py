"""Add authentication provider tables and backfill them.

Creates authentication_providers (one row per team and identity provider)
and user_authentication_providers (one row per user and provider), then
copies the legacy single-provider columns of teams and users into them.

Revision ID: 002
Revises: 001
Create Date: 2020-12-19
"""

import sqlalchemy as sa

from alembic import context, op
from authproviders.helpers import auth_backfill
from authproviders.helpers.auth_db import JSONType, UUIDType

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

PROVIDER_TABLE = auth_backfill.PROVIDER_TABLE
USER_PROVIDER_TABLE = auth_backfill.USER_PROVIDER_TABLE


def upgrade() -> None:
    connection = auth_backfill.live_connection(
        op.get_bind(), offline=context.is_offline_mode()
    )

    op.create_table(
        PROVIDER_TABLE,
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("plugin", sa.String(), nullable=False),
        sa.Column("externalTeamId", sa.String(), nullable=False),
        sa.Column("teamId", UUIDType, nullable=False),
        sa.Column("data", JSONType),
        sa.Column(
            "createdAt",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["teamId"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "unique_plugin_external_id",
        PROVIDER_TABLE,
        ["plugin", "externalTeamId"],
        unique=True,
    )

    op.create_table(
        USER_PROVIDER_TABLE,
        sa.Column("id", UUIDType, nullable=False),
        sa.Column("externalUserId", sa.String(), nullable=False),
        sa.Column("userId", UUIDType, nullable=False),
        sa.Column("authenticationProviderId", UUIDType, nullable=False),
        sa.Column(
            "isTeamAdmin", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("data", JSONType),
        sa.Column(
            "createdAt",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["userId"], ["users.id"]),
        sa.ForeignKeyConstraint(["authenticationProviderId"], [f"{PROVIDER_TABLE}.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "unique_provider_external_user_id",
        USER_PROVIDER_TABLE,
        ["authenticationProviderId", "externalUserId"],
        unique=True,
    )

    auth_backfill.migrate_teams(connection)
    auth_backfill.migrate_users(connection)


def downgrade() -> None:
    op.drop_index("unique_provider_external_user_id", table_name=USER_PROVIDER_TABLE)
    op.drop_table(USER_PROVIDER_TABLE)
    op.drop_index("unique_plugin_external_id", table_name=PROVIDER_TABLE)
    op.drop_table(PROVIDER_TABLE)
