"""Dialect-aware INSERT ... ON CONFLICT for catalog seeding."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


async def upsert(
    db: AsyncSession,
    model: Any,  # noqa: ANN401
    values: dict[str, Any],
    index_elements: list[str],
) -> None:
    """Insert ``values`` or update every non-key column on conflict."""
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={k: stmt.excluded[k] for k in values if k not in index_elements},
    )
    await db.execute(stmt)
