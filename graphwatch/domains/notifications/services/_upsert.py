"""Dialect-aware INSERT .. ON CONFLICT DO NOTHING."""

from __future__ import annotations

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError


def insert_if_absent(session, table, values: dict, key: str) -> bool:
    """Insert one row unless `key` already exists. True when this call inserted it."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    else:
        try:
            with session.begin_nested():
                session.execute(insert(table).values(**values))
            return True
        except IntegrityError:
            return False
    result = session.execute(stmt)
    return result.rowcount == 1
