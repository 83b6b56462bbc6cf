"""SQLAlchemy ORM models and session operations for team authentication.

Declares teams, users, the authentication providers bound to a team and
the per-user links to those providers.  All models inherit from the shared
``Base`` declared in :mod:`authproviders.helpers.auth_db`.  Database column
names are camelCase; Python attributes are snake_case.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Session, relationship

from authproviders.helpers.auth_db import Base, JSONType, UUIDType

PLUGINS = ("slack", "google", "email")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# ORM Models
# ---------------------------------------------------------------------------


class Team(Base):
    __tablename__ = "teams"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    name = Column(String)
    created_at = Column(
        "createdAt", DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at = Column(
        "updatedAt",
        DateTime(timezone=True),
        nullable=False,
        default=_now,
        onupdate=_now,
    )

    authentication_providers = relationship(
        "AuthenticationProvider", back_populates="team"
    )


class User(Base):
    __tablename__ = "users"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    name = Column(String)
    email = Column(String)
    created_at = Column(
        "createdAt", DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at = Column(
        "updatedAt",
        DateTime(timezone=True),
        nullable=False,
        default=_now,
        onupdate=_now,
    )

    authentications = relationship("UserAuthenticationProvider", back_populates="user")


class AuthenticationProvider(Base):
    __tablename__ = "authentication_providers"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    plugin = Column(String, nullable=False)  # slack, google, email
    external_team_id = Column("externalTeamId", String, nullable=False)
    team_id = Column("teamId", UUIDType, ForeignKey("teams.id"), nullable=False)
    data = Column(JSONType)  # raw provider payload, slack only
    created_at = Column(
        "createdAt", DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at = Column(
        "updatedAt",
        DateTime(timezone=True),
        nullable=False,
        default=_now,
        onupdate=_now,
    )

    __table_args__ = (
        Index("unique_plugin_external_id", plugin, external_team_id, unique=True),
    )

    team = relationship("Team", back_populates="authentication_providers")
    user_authentications = relationship(
        "UserAuthenticationProvider", back_populates="provider"
    )


class UserAuthenticationProvider(Base):
    __tablename__ = "user_authentication_providers"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    external_user_id = Column("externalUserId", String, nullable=False)
    user_id = Column("userId", UUIDType, ForeignKey("users.id"), nullable=False)
    authentication_provider_id = Column(
        "authenticationProviderId",
        UUIDType,
        ForeignKey("authentication_providers.id"),
        nullable=False,
    )
    is_team_admin = Column("isTeamAdmin", Boolean, nullable=False, default=False)
    data = Column(JSONType)
    created_at = Column(
        "createdAt", DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at = Column(
        "updatedAt",
        DateTime(timezone=True),
        nullable=False,
        default=_now,
        onupdate=_now,
    )

    __table_args__ = (
        Index(
            "unique_provider_external_user_id",
            authentication_provider_id,
            external_user_id,
            unique=True,
        ),
    )

    user = relationship("User", back_populates="authentications")
    provider = relationship(
        "AuthenticationProvider", back_populates="user_authentications"
    )


# ---------------------------------------------------------------------------
# Provider CRUD
# ---------------------------------------------------------------------------


def get_authentication_provider(
    db: Session, plugin: str, external_team_id: str
) -> AuthenticationProvider | None:
    """Look up a provider by its (plugin, externalTeamId) key."""
    return (
        db.query(AuthenticationProvider)
        .filter(
            AuthenticationProvider.plugin == plugin,
            AuthenticationProvider.external_team_id == external_team_id,
        )
        .first()
    )


def list_providers_for_team(db: Session, team_id: str) -> list[AuthenticationProvider]:
    return (
        db.query(AuthenticationProvider)
        .filter(AuthenticationProvider.team_id == team_id)
        .all()
    )


def create_authentication_provider(
    db: Session,
    team_id: str,
    plugin: str,
    external_team_id: str,
    data: dict | None = None,
) -> AuthenticationProvider:
    """Bind a team to an external identity provider."""
    if plugin not in PLUGINS:
        raise ValueError(f"Unknown authentication plugin: {plugin!r}")
    provider = AuthenticationProvider(
        id=_uuid(),
        plugin=plugin,
        external_team_id=external_team_id,
        team_id=team_id,
        data=data if plugin == "slack" else None,
    )
    db.add(provider)
    return provider


# ---------------------------------------------------------------------------
# User authentication CRUD
# ---------------------------------------------------------------------------


def get_user_authentication(
    db: Session, provider_id: str, external_user_id: str
) -> UserAuthenticationProvider | None:
    return (
        db.query(UserAuthenticationProvider)
        .filter(
            UserAuthenticationProvider.authentication_provider_id == provider_id,
            UserAuthenticationProvider.external_user_id == external_user_id,
        )
        .first()
    )


def link_user_authentication(
    db: Session,
    user_id: str,
    provider: AuthenticationProvider,
    external_user_id: str,
    *,
    is_team_admin: bool = False,
    data: dict | None = None,
) -> UserAuthenticationProvider:
    """Link a user to a provider, reusing the existing link if present.

    Provider payloads are only kept for slack, matching what the backfill
    writes.
    """
    existing = get_user_authentication(db, provider.id, external_user_id)
    if existing is not None:
        return existing

    link = UserAuthenticationProvider(
        id=_uuid(),
        user_id=user_id,
        authentication_provider_id=provider.id,
        external_user_id=external_user_id,
        is_team_admin=is_team_admin,
        data=data if provider.plugin == "slack" else None,
    )
    db.add(link)
    return link


def list_authentications_for_user(
    db: Session, user_id: str
) -> list[UserAuthenticationProvider]:
    return (
        db.query(UserAuthenticationProvider)
        .filter(UserAuthenticationProvider.user_id == user_id)
        .all()
    )
