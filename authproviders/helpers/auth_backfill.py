"""Backfill of authentication providers from the legacy team/user columns.

Teams used to carry a single ``slackId``/``slackData``/``googleId`` and users
a single ``service``/``serviceId``/``isAdmin``.  The forward path derives the
normalized ``authentication_providers`` and ``user_authentication_providers``
rows from them; the reverse path writes the legacy columns back from the
normalized rows.

All functions take the migration's :class:`~sqlalchemy.engine.Connection`
and run inside its transaction.  Rows of one phase are derived first and
written as a single batch, so any failure aborts the whole step.

Usage (inside an Alembic revision)::

    from authproviders.helpers import auth_backfill

    connection = op.get_bind()
    auth_backfill.migrate_teams(connection)
    auth_backfill.migrate_users(connection)
"""

import logging
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from authproviders.helpers.auth_db import JSONType, UUIDType

logger = logging.getLogger(__name__)

PROVIDER_TABLE = "authentication_providers"
USER_PROVIDER_TABLE = "user_authentication_providers"

# ---------------------------------------------------------------------------
# Lightweight table shapes (legacy columns included)
# ---------------------------------------------------------------------------

_timestamp = sa.DateTime(timezone=True)

teams = sa.table(
    "teams",
    sa.column("id", UUIDType),
    sa.column("slackId", sa.String),
    sa.column("slackData", JSONType),
    sa.column("googleId", sa.String),
    sa.column("createdAt", _timestamp),
)

users = sa.table(
    "users",
    sa.column("id", UUIDType),
    sa.column("service", sa.String),
    sa.column("serviceId", sa.String),
    sa.column("isAdmin", sa.Boolean),
    sa.column("slackData", JSONType),
    sa.column("teamId", UUIDType),
    sa.column("createdAt", _timestamp),
)

providers = sa.table(
    PROVIDER_TABLE,
    sa.column("id", UUIDType),
    sa.column("plugin", sa.String),
    sa.column("externalTeamId", sa.String),
    sa.column("teamId", UUIDType),
    sa.column("data", JSONType),
    sa.column("createdAt", _timestamp),
    sa.column("updatedAt", _timestamp),
)

user_providers = sa.table(
    USER_PROVIDER_TABLE,
    sa.column("id", UUIDType),
    sa.column("externalUserId", sa.String),
    sa.column("userId", UUIDType),
    sa.column("authenticationProviderId", UUIDType),
    sa.column("isTeamAdmin", sa.Boolean),
    sa.column("data", JSONType),
    sa.column("createdAt", _timestamp),
    sa.column("updatedAt", _timestamp),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _logged_step(label: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("%s failed, rolling back: %s", label, exc)
        raise


def live_connection(
    bind: Connection | None, *, offline: bool = False
) -> Connection:
    """Return ``bind``, refusing to backfill without a live connection.

    Alembic's offline (``--sql``) mode only renders statements; the backfill
    has to read rows, so it cannot be turned into a script.
    """
    if offline or bind is None:
        raise RuntimeError(
            "The authentication provider backfill needs a live database "
            "connection and cannot run in offline (--sql) mode."
        )
    return bind


# ---------------------------------------------------------------------------
# Row derivation
# ---------------------------------------------------------------------------


def derive_team_providers(
    team: Mapping[str, Any], now: datetime
) -> list[dict[str, Any]]:
    """Provider rows for one legacy team.

    One slack row when ``slackId`` is set, one google row when ``googleId``
    is set, and always one email row keyed by the team's own id.
    """
    candidates = []
    if team["slackId"]:
        candidates.append(("slack", team["slackId"], team["slackData"]))
    if team["googleId"]:
        candidates.append(("google", team["googleId"], None))
    candidates.append(("email", team["id"], None))

    return [
        {
            "id": str(uuid.uuid4()),
            "plugin": plugin,
            "externalTeamId": external_team_id,
            "teamId": team["id"],
            "data": data,
            "createdAt": now,
            "updatedAt": now,
        }
        for plugin, external_team_id, data in candidates
    ]


def derive_user_authentication(
    row: Mapping[str, Any], now: datetime
) -> dict[str, Any]:
    """Link row for one legacy user matched to one provider."""
    return {
        "id": str(uuid.uuid4()),
        "userId": row["id"],
        "externalUserId": row["serviceId"],
        "isTeamAdmin": bool(row["isAdmin"]),
        "authenticationProviderId": row["providerId"],
        "data": row["slackData"] if row["plugin"] == "slack" else None,
        "createdAt": now,
        "updatedAt": now,
    }


# ---------------------------------------------------------------------------
# Forward backfill
# ---------------------------------------------------------------------------


def migrate_teams(connection: Connection, since: datetime | None = None) -> int:
    """Create provider rows for every legacy team (created after ``since``).

    Returns the number of provider rows inserted.
    """
    query = sa.select(
        teams.c.id, teams.c.slackId, teams.c.slackData, teams.c.googleId
    )
    if since is not None:
        query = query.where(teams.c.createdAt > since)

    with _logged_step("Team provider backfill"):
        now = _now()
        rows = [
            provider
            for team in connection.execute(query).mappings()
            for provider in derive_team_providers(team, now)
        ]
        if rows:
            connection.execute(providers.insert(), rows)

    logger.info("Backfilled %d authentication providers", len(rows))
    return len(rows)


def migrate_users(connection: Connection, since: datetime | None = None) -> int:
    """Link every legacy user to the provider matching its team and service.

    Users whose service has no provider on their team are skipped.
    Returns the number of links inserted.
    """
    join = users.join(
        providers,
        sa.and_(
            users.c.teamId == providers.c.teamId,
            users.c.service == providers.c.plugin,
        ),
    )
    query = sa.select(
        users.c.id,
        users.c.isAdmin,
        users.c.serviceId,
        users.c.slackData,
        providers.c.id.label("providerId"),
        providers.c.plugin,
    ).select_from(join)
    total_query = sa.select(sa.func.count()).select_from(users)
    if since is not None:
        query = query.where(users.c.createdAt > since)
        total_query = total_query.where(users.c.createdAt > since)

    with _logged_step("User authentication backfill"):
        now = _now()
        rows = [
            derive_user_authentication(row, now)
            for row in connection.execute(query).mappings()
        ]
        if rows:
            connection.execute(user_providers.insert(), rows)
        total = connection.execute(total_query).scalar_one()

    skipped = total - len({row["userId"] for row in rows})
    if skipped:
        logger.debug("Skipped %d users without a matching provider", skipped)
    logger.info("Backfilled %d user authentications", len(rows))
    return len(rows)


# ---------------------------------------------------------------------------
# Catch-up
# ---------------------------------------------------------------------------


def high_water_marks(
    connection: Connection,
) -> tuple[datetime | None, datetime | None]:
    """Most recent ``createdAt`` of providers and of user links."""
    last_team = connection.execute(
        sa.select(sa.func.max(providers.c.createdAt))
    ).scalar()
    last_user = connection.execute(
        sa.select(sa.func.max(user_providers.c.createdAt))
    ).scalar()
    return last_team, last_user


def catch_up(connection: Connection) -> tuple[int, int]:
    """Backfill teams and users created since the previous backfill."""
    last_team, last_user = high_water_marks(connection)
    logger.info(
        "Catching up teams since %s and users since %s", last_team, last_user
    )
    return migrate_teams(connection, last_team), migrate_users(connection, last_user)


# ---------------------------------------------------------------------------
# Reverse reconstruction
# ---------------------------------------------------------------------------


def restore_legacy_teams(connection: Connection) -> int:
    """Write ``slackId``/``slackData``/``googleId`` back onto teams.

    Providers are merged per team (oldest first, later ones win) into a
    single update; a null candidate never clears a value.
    Returns the number of teams updated.
    """
    query = sa.select(
        providers.c.teamId,
        providers.c.plugin,
        providers.c.externalTeamId,
        providers.c.data,
    ).order_by(providers.c.teamId, providers.c.createdAt, providers.c.id)

    with _logged_step("Team legacy column restore"):
        legacy: dict[str, dict[str, Any]] = {}
        for provider in connection.execute(query).mappings():
            values = legacy.setdefault(provider["teamId"], {})
            if provider["plugin"] == "slack":
                candidate = {
                    "slackId": provider["externalTeamId"],
                    "slackData": provider["data"],
                }
            elif provider["plugin"] == "google":
                candidate = {"googleId": provider["externalTeamId"]}
            else:
                continue
            values.update({k: v for k, v in candidate.items() if v is not None})

        updated = 0
        for team_id, values in legacy.items():
            if not values:
                continue
            connection.execute(
                teams.update().where(teams.c.id == team_id).values(values)
            )
            updated += 1

    logger.info("Restored legacy authentication columns on %d teams", updated)
    return updated


def restore_legacy_users(connection: Connection) -> int:
    """Write ``service``/``serviceId``/``isAdmin``/``teamId`` back onto users.

    A legacy user held one service, so the earliest link of each user wins.
    ``slackData`` is only written from slack links.
    Returns the number of users updated.
    """
    join = user_providers.join(
        providers, user_providers.c.authenticationProviderId == providers.c.id
    )
    query = (
        sa.select(
            user_providers.c.userId,
            user_providers.c.externalUserId,
            user_providers.c.isTeamAdmin,
            user_providers.c.data,
            providers.c.plugin,
            providers.c.teamId,
        )
        .select_from(join)
        .order_by(
            user_providers.c.userId, user_providers.c.createdAt, user_providers.c.id
        )
    )

    with _logged_step("User legacy column restore"):
        restored: set[str] = set()
        for link in connection.execute(query).mappings():
            if link["userId"] in restored:
                continue
            restored.add(link["userId"])

            values = {
                "isAdmin": link["isTeamAdmin"],
                "serviceId": link["externalUserId"],
                "service": link["plugin"],
                "teamId": link["teamId"],
            }
            if link["plugin"] == "slack" and link["data"] is not None:
                values["slackData"] = link["data"]
            connection.execute(
                users.update().where(users.c.id == link["userId"]).values(values)
            )

    logger.info("Restored legacy authentication columns on %d users", len(restored))
    return len(restored)
