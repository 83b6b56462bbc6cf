"""Database plumbing shared by the auth models and the migrations.

Provides the declarative ``Base``, the portable column types used by both
the ORM models and the Alembic revisions, and engine/session helpers.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from authproviders.helpers import dotenv

logger = logging.getLogger(__name__)

Base = declarative_base()

# UUID on PostgreSQL, 36-char string elsewhere (SQLite in local dev/tests)
UUIDType = sa.String(36).with_variant(postgresql.UUID(as_uuid=False), "postgresql")

# Absent blobs are stored as SQL NULL, not JSON 'null'
JSONType = sa.JSON(none_as_null=True).with_variant(
    postgresql.JSONB(none_as_null=True), "postgresql"
)

_engines: dict[str, Engine] = {}


def get_database_url(*, migrations: bool = False) -> str:
    """Resolve the database URL from the environment.

    Migrations prefer ``DATABASE_URL_MIGRATIONS`` over ``DATABASE_URL``.
    """
    url = None
    if migrations:
        url = dotenv.get_dotenv_value(dotenv.KEY_DATABASE_URL_MIGRATIONS)
    url = url or dotenv.get_dotenv_value(dotenv.KEY_DATABASE_URL)
    if not url:
        raise ValueError(
            "Database URL not configured. "
            "Set DATABASE_URL (or DATABASE_URL_MIGRATIONS for migrations)."
        )
    return url


def get_engine(url: str | None = None) -> Engine:
    """Return a cached engine for ``url`` (defaults to the configured URL)."""
    url = url or get_database_url()
    engine = _engines.get(url)
    if engine is None:
        engine = sa.create_engine(
            url,
            echo=dotenv.get_bool_value(dotenv.KEY_DB_ECHO),
        )
        _engines[url] = engine
        logger.debug("Created engine for dialect %s", engine.dialect.name)
    return engine


def dispose_engines() -> None:
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()


@contextmanager
def get_session(engine: Engine | None = None) -> Iterator[Session]:
    """Session scope: commit on success, roll back and re-raise on error."""
    factory = sessionmaker(bind=engine or get_engine())
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
