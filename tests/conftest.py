import pytest
import sqlalchemy as sa

from authproviders.helpers.auth_db import JSONType, UUIDType
from authproviders.helpers.user_store import (
    AuthenticationProvider,
    UserAuthenticationProvider,
)


@pytest.fixture
def legacy_engine():
    """In-memory database with the legacy team/user columns and the provider tables."""
    engine = sa.create_engine("sqlite://")
    metadata = sa.MetaData()
    sa.Table(
        "teams",
        metadata,
        sa.Column("id", UUIDType, primary_key=True),
        sa.Column("name", sa.String),
        sa.Column("slackId", sa.String),
        sa.Column("slackData", JSONType),
        sa.Column("googleId", sa.String),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=False),
    )
    sa.Table(
        "users",
        metadata,
        sa.Column("id", UUIDType, primary_key=True),
        sa.Column("service", sa.String),
        sa.Column("serviceId", sa.String),
        sa.Column("isAdmin", sa.Boolean),
        sa.Column("slackData", JSONType),
        sa.Column("teamId", UUIDType, sa.ForeignKey("teams.id")),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=False),
    )
    AuthenticationProvider.__table__.to_metadata(metadata)
    UserAuthenticationProvider.__table__.to_metadata(metadata)
    metadata.create_all(engine)
    yield engine
    engine.dispose()
