from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import Executable, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """
    Thin query helpers shared by all repositories.

    Only ``commit`` ends a transaction; services own that call and roll back
    on failure.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Run the statement and return its first column as a ScalarResult."""
        return (await self.execute(statement, params)).scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        return (await self.execute(statement, params)).scalar_one_or_none()

    async def paginate(self, statement: Select, *, limit: int, offset: int) -> Tuple[List[Any], int]:
        """Return one page of ORM rows for the statement together with the total row count."""
        counted = select(func.count()).select_from(statement.order_by(None).subquery())
        total = int((await self.execute(counted)).scalar_one())
        page = await self.scalars(statement.offset(offset).limit(limit))
        return list(page), total

    async def add(self, entity: Any) -> None:
        self.session.add(entity)

    async def add_all(self, entities: Iterable[Any]) -> None:
        self.session.add_all(list(entities))

    async def flush(self) -> None:
        """Send pending changes so generated ids and constraints apply before commit."""
        await self.session.flush()

    async def commit(self) -> None:
        await self.session.commit()
