"""Store contracts and their SQLAlchemy implementations.

The aggregates only see the ``*Store`` protocols. A fresh set of stores is
built for every session through :func:`build_repositories`, so everything an
operation touches shares one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Sequence, TypeVar

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import models, schemas
from .errors import NotFoundError

T = TypeVar("T")


class PathwayStore(Protocol):
    async def create(self, data: dict[str, Any]) -> schemas.Pathway: ...

    async def update(self, pathway_id: int, data: dict[str, Any]) -> schemas.Pathway: ...

    async def find_one(
        self, pathway_id: int, *, for_update: bool = False
    ) -> schemas.Pathway: ...

    async def find_by_ids(self, ids: Sequence[int]) -> list[schemas.Pathway]: ...


class PathwayOptionStore(Protocol):
    async def create(self, data: dict[str, Any]) -> schemas.PathwayOption: ...

    async def update(
        self, option_id: int, data: dict[str, Any]
    ) -> schemas.PathwayOption: ...

    async def find_one(self, option_id: int) -> schemas.PathwayOption: ...

    async def delete(self, option_id: int) -> schemas.PathwayOption: ...

    async def find_by_pathway_id(self, pathway_id: int) -> list[schemas.PathwayOption]: ...

    async def find_by_ids(self, ids: Sequence[int]) -> list[schemas.PathwayOption]: ...

    async def set_default_option(self, pathway_id: int, option_id: int) -> None: ...


class PathwayOptionTollStore(Protocol):
    async def find_by_option_id(self, option_id: int) -> list[schemas.PathwayOptionToll]: ...

    async def delete_by_option_id(self, option_id: int) -> None: ...

    async def create_many(
        self, tolls: Sequence[dict[str, Any]]
    ) -> list[schemas.PathwayOptionToll]: ...

    async def update_many(self, updates: Sequence[dict[str, Any]]) -> None: ...


class NodeStore(Protocol):
    async def find_one(self, node_id: int) -> schemas.Node: ...

    async def find_by_ids(self, ids: Sequence[int]) -> list[schemas.Node]: ...


class _SqlRepository:
    model: Any
    entity_name: str

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _live(self):
        # populate_existing: bulk UPDATE statements bypass the identity map.
        return (
            select(self.model)
            .where(self.model.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )

    async def _get_row(self, row_id: int, *, for_update: bool = False) -> Any:
        stmt = self._live().where(self.model.id == row_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = await self.session.scalar(stmt)
        if row is None:
            raise NotFoundError(self.entity_name, row_id)
        return row

    async def _flush(self, row: Any) -> Any:
        await self.session.flush()
        await self.session.refresh(row)
        return row

    async def _rows_by_ids(self, ids: Sequence[int]) -> list[Any]:
        if not ids:
            return []
        stmt = self._live().where(self.model.id.in_(set(ids))).order_by(self.model.id)
        return list(await self.session.scalars(stmt))


class SqlPathwayRepository(_SqlRepository):
    model = models.Pathway
    entity_name = "Pathway"

    async def create(self, data: dict[str, Any]) -> schemas.Pathway:
        row = models.Pathway(**data)
        self.session.add(row)
        return schemas.Pathway.model_validate(await self._flush(row))

    async def update(self, pathway_id: int, data: dict[str, Any]) -> schemas.Pathway:
        row = await self._get_row(pathway_id)
        for key, value in data.items():
            setattr(row, key, value)
        return schemas.Pathway.model_validate(await self._flush(row))

    async def find_one(
        self, pathway_id: int, *, for_update: bool = False
    ) -> schemas.Pathway:
        row = await self._get_row(pathway_id, for_update=for_update)
        return schemas.Pathway.model_validate(row)

    async def find_by_ids(self, ids: Sequence[int]) -> list[schemas.Pathway]:
        return [schemas.Pathway.model_validate(r) for r in await self._rows_by_ids(ids)]


class SqlPathwayOptionRepository(_SqlRepository):
    model = models.PathwayOption
    entity_name = "PathwayOption"

    async def create(self, data: dict[str, Any]) -> schemas.PathwayOption:
        row = models.PathwayOption(**data)
        self.session.add(row)
        return schemas.PathwayOption.model_validate(await self._flush(row))

    async def update(self, option_id: int, data: dict[str, Any]) -> schemas.PathwayOption:
        row = await self._get_row(option_id)
        for key, value in data.items():
            setattr(row, key, value)
        return schemas.PathwayOption.model_validate(await self._flush(row))

    async def find_one(self, option_id: int) -> schemas.PathwayOption:
        return schemas.PathwayOption.model_validate(await self._get_row(option_id))

    async def delete(self, option_id: int) -> schemas.PathwayOption:
        """Soft-delete an option together with its tolls."""

        row = await self._get_row(option_id)
        await self.session.execute(
            update(models.PathwayOptionToll)
            .where(
                models.PathwayOptionToll.pathway_option_id == option_id,
                models.PathwayOptionToll.deleted_at.is_(None),
            )
            .values(deleted_at=func.now())
            .execution_options(synchronize_session=False)
        )
        row.deleted_at = func.now()
        return schemas.PathwayOption.model_validate(await self._flush(row))

    async def find_by_pathway_id(self, pathway_id: int) -> list[schemas.PathwayOption]:
        stmt = (
            self._live()
            .where(models.PathwayOption.pathway_id == pathway_id)
            .order_by(models.PathwayOption.id)
        )
        rows = await self.session.scalars(stmt)
        return [schemas.PathwayOption.model_validate(r) for r in rows]

    async def find_by_ids(self, ids: Sequence[int]) -> list[schemas.PathwayOption]:
        return [
            schemas.PathwayOption.model_validate(r) for r in await self._rows_by_ids(ids)
        ]

    async def set_default_option(self, pathway_id: int, option_id: int) -> None:
        """Make ``option_id`` the only default of the pathway in one statement."""

        row = await self._get_row(option_id)
        if row.pathway_id != pathway_id:
            raise NotFoundError(self.entity_name, option_id)
        await self.session.execute(
            update(models.PathwayOption)
            .where(
                models.PathwayOption.pathway_id == pathway_id,
                models.PathwayOption.deleted_at.is_(None),
            )
            .values(
                is_default=case((models.PathwayOption.id == option_id, True), else_=False),
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )


class SqlPathwayOptionTollRepository(_SqlRepository):
    model = models.PathwayOptionToll
    entity_name = "PathwayOptionToll"

    async def find_by_option_id(self, option_id: int) -> list[schemas.PathwayOptionToll]:
        stmt = (
            self._live()
            .where(models.PathwayOptionToll.pathway_option_id == option_id)
            .order_by(models.PathwayOptionToll.sequence)
        )
        rows = await self.session.scalars(stmt)
        return [schemas.PathwayOptionToll.model_validate(r) for r in rows]

    async def delete_by_option_id(self, option_id: int) -> None:
        await self.session.execute(
            update(models.PathwayOptionToll)
            .where(
                models.PathwayOptionToll.pathway_option_id == option_id,
                models.PathwayOptionToll.deleted_at.is_(None),
            )
            .values(deleted_at=func.now())
            .execution_options(synchronize_session=False)
        )

    async def create_many(
        self, tolls: Sequence[dict[str, Any]]
    ) -> list[schemas.PathwayOptionToll]:
        rows = [models.PathwayOptionToll(**toll) for toll in tolls]
        if not rows:
            return []
        self.session.add_all(rows)
        await self.session.flush()
        for row in rows:
            await self.session.refresh(row)
        return [schemas.PathwayOptionToll.model_validate(r) for r in rows]

    async def update_many(self, updates: Sequence[dict[str, Any]]) -> None:
        """Apply ``{"id": ..., "pass_time_min": ...}`` updates."""

        for item in updates:
            await self.session.execute(
                update(models.PathwayOptionToll)
                .where(models.PathwayOptionToll.id == item["id"])
                .values(pass_time_min=item["pass_time_min"], updated_at=func.now())
                .execution_options(synchronize_session=False)
            )


class SqlNodeRepository(_SqlRepository):
    model = models.Node
    entity_name = "Node"

    async def find_one(self, node_id: int) -> schemas.Node:
        return schemas.Node.model_validate(await self._get_row(node_id))

    async def find_by_ids(self, ids: Sequence[int]) -> list[schemas.Node]:
        return [schemas.Node.model_validate(r) for r in await self._rows_by_ids(ids)]


@dataclass(frozen=True)
class Repositories:
    """Stores bound to one session."""

    pathways: PathwayStore
    options: PathwayOptionStore
    tolls: PathwayOptionTollStore
    nodes: NodeStore


def build_repositories(session: AsyncSession) -> Repositories:
    return Repositories(
        pathways=SqlPathwayRepository(session),
        options=SqlPathwayOptionRepository(session),
        tolls=SqlPathwayOptionTollRepository(session),
        nodes=SqlNodeRepository(session),
    )


async def run_in_transaction(
    sessionmaker: async_sessionmaker[AsyncSession],
    fn: Callable[[Repositories], Awaitable[T]],
) -> T:
    """Run ``fn`` with transaction-bound stores.

    Commits when ``fn`` returns, rolls back and re-raises whatever it raised.
    """

    async with sessionmaker() as session:
        async with session.begin():
            return await fn(build_repositories(session))


async def run_read_only(
    sessionmaker: async_sessionmaker[AsyncSession],
    fn: Callable[[Repositories], Awaitable[T]],
) -> T:
    async with sessionmaker() as session:
        return await fn(build_repositories(session))
