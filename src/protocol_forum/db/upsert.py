"""INSERT .. ON CONFLICT DO UPDATE for the dialects that support it."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy.sql.dml import Insert


def upsert_statement(
    dialect_name: str,
    model: Any,
    values: dict[str, object],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
) -> Insert | None:
    """Return an upsert for ``model`` or None when the dialect has no ON CONFLICT.

    On conflict over ``conflict_columns`` the existing row takes the incoming
    values of ``update_columns``.
    """
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
