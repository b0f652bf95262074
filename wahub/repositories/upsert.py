"""Dialect-aware INSERT ... ON CONFLICT statements."""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_for(session: AsyncSession, model):
    """Build an ``insert()`` supporting ``on_conflict_*`` for the session's database."""
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on {dialect}") from None
