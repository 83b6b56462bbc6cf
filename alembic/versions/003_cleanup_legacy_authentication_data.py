"""Catch up the provider backfill and drop legacy auth columns.

Copies teams and users created after revision 002 ran (bounded by the
newest provider and link rows), then removes the single-provider columns
from teams and users.  Downgrade re-adds the columns and rebuilds them from
the provider tables; a team keeps at most one Slack and one Google binding.

Revision ID: 003
Revises: 002
Create Date: 2020-12-21
"""

import sqlalchemy as sa

from alembic import context, op
from authproviders.helpers import auth_backfill
from authproviders.helpers.auth_db import JSONType, UUIDType

revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    connection = auth_backfill.live_connection(
        op.get_bind(), offline=context.is_offline_mode()
    )
    auth_backfill.catch_up(connection)

    # Batch mode recreates the tables on SQLite
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("isAdmin")
        batch_op.drop_column("serviceId")
        batch_op.drop_column("service")
        batch_op.drop_column("teamId")
        batch_op.drop_column("slackData")

    with op.batch_alter_table("teams") as batch_op:
        batch_op.drop_column("slackId")
        batch_op.drop_column("slackData")
        batch_op.drop_column("googleId")


def downgrade() -> None:
    connection = auth_backfill.live_connection(
        op.get_bind(), offline=context.is_offline_mode()
    )

    with op.batch_alter_table("users") as batch_op:
        batch_op.add_column(
            sa.Column("isAdmin", sa.Boolean(), server_default=sa.false())
        )
        batch_op.add_column(sa.Column("serviceId", sa.String()))
        batch_op.add_column(sa.Column("service", sa.String(), server_default="slack"))
        batch_op.add_column(sa.Column("teamId", UUIDType))
        batch_op.add_column(sa.Column("slackData", JSONType))
        batch_op.create_foreign_key("users_teamId_fkey", "teams", ["teamId"], ["id"])

    with op.batch_alter_table("teams") as batch_op:
        batch_op.add_column(sa.Column("slackId", sa.String()))
        batch_op.add_column(sa.Column("slackData", JSONType))
        batch_op.add_column(sa.Column("googleId", sa.String()))

    auth_backfill.restore_legacy_teams(connection)
    auth_backfill.restore_legacy_users(connection)
