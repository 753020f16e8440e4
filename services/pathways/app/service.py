"""Transactional entry points used by the HTTP layer and by other callers.

Every method takes plain data (dicts or payload models) and returns frozen
snapshots; entities never leave a transaction.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.common.logging import get_logger
from src.common.metrics import JOB_DURATION, PATHWAY_TRANSACTIONS

from . import schemas
from .bulk_sync import PathwayOptionDomainService
from .pathways import PathwayEntity, PathwayFactory
from .repositories import Repositories, run_in_transaction, run_read_only

SERVICE_NAME = "pathways"

T = TypeVar("T")

logger = get_logger(__name__)
tracer = trace.get_tracer(__name__)


async def _with_options(
    factory: PathwayFactory, pathway: PathwayEntity
) -> schemas.PathwayWithOptions:
    # Re-read: option writes touch the pathway only through its options.
    fresh = await factory.find_one(pathway.id)
    options = [option.to_option() for option in await fresh.options()]
    return schemas.PathwayWithOptions(**fresh.to_pathway().model_dump(), options=options)


class PathwayApplicationService:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def _transaction(
        self,
        operation: str,
        fn: Callable[[PathwayFactory], Awaitable[T]],
        **context: Any,
    ) -> T:
        """Run ``fn`` in one transaction; any error rolls back and propagates."""

        async def work(repositories: Repositories) -> T:
            return await fn(PathwayFactory(repositories))

        start = time.perf_counter()
        with tracer.start_as_current_span(f"pathways.{operation}") as span:
            for key, value in context.items():
                span.set_attribute(f"pathways.{key}", value)
            try:
                result = await run_in_transaction(self._sessionmaker, work)
            except Exception as exc:
                PATHWAY_TRANSACTIONS.labels(operation, "rolled_back").inc()
                logger.warning(
                    "pathways.transaction_rolled_back",
                    operation=operation,
                    error=type(exc).__name__,
                    detail=str(exc),
                    **context,
                )
                raise
            finally:
                JOB_DURATION.labels(SERVICE_NAME, operation).observe(
                    time.perf_counter() - start
                )
        PATHWAY_TRANSACTIONS.labels(operation, "committed").inc()
        return result

    async def _read(self, fn: Callable[[PathwayFactory], Awaitable[T]]) -> T:
        async def work(repositories: Repositories) -> T:
            return await fn(PathwayFactory(repositories))

        return await run_read_only(self._sessionmaker, work)

    async def _locked_option_change(
        self,
        operation: str,
        pathway_id: int,
        change: Callable[[PathwayEntity], Awaitable[Any]],
        **context: Any,
    ) -> schemas.PathwayWithOptions:
        async def fn(factory: PathwayFactory) -> schemas.PathwayWithOptions:
            pathway = await factory.find_one(pathway_id, for_update=True)
            await change(pathway)
            return await _with_options(factory, pathway)

        return await self._transaction(operation, fn, pathway_id=pathway_id, **context)

    # Pathways

    async def create_pathway(
        self, payload: schemas.CreatePathwayPayload | Mapping[str, Any]
    ) -> schemas.Pathway:
        async def fn(factory: PathwayFactory) -> schemas.Pathway:
            saved = await factory.create(payload).save()
            return saved.to_pathway()

        return await self._transaction("create_pathway", fn)

    async def update_pathway(
        self,
        pathway_id: int,
        payload: schemas.UpdatePathwayPayload | Mapping[str, Any],
    ) -> schemas.Pathway:
        async def fn(factory: PathwayFactory) -> schemas.Pathway:
            pathway = await factory.find_one(pathway_id, for_update=True)
            updated = await pathway.update(payload)
            return updated.to_pathway()

        return await self._transaction("update_pathway", fn, pathway_id=pathway_id)

    async def find_pathway(self, pathway_id: int) -> schemas.PathwayWithOptions:
        async def fn(factory: PathwayFactory) -> schemas.PathwayWithOptions:
            return await _with_options(factory, await factory.find_one(pathway_id))

        return await self._read(fn)

    async def list_pathway_options(self, pathway_id: int) -> list[schemas.PathwayOption]:
        async def fn(factory: PathwayFactory) -> list[schemas.PathwayOption]:
            pathway = await factory.find_one(pathway_id)
            return [option.to_option() for option in await pathway.options()]

        return await self._read(fn)

    # Options

    async def add_option_to_pathway(
        self,
        pathway_id: int,
        payload: schemas.AddPathwayOptionPayload | Mapping[str, Any],
    ) -> schemas.PathwayWithOptions:
        return await self._locked_option_change(
            "add_option",
            pathway_id,
            lambda pathway: pathway.add_option(payload),
        )

    async def remove_option_from_pathway(
        self, pathway_id: int, option_id: int
    ) -> schemas.PathwayWithOptions:
        return await self._locked_option_change(
            "remove_option",
            pathway_id,
            lambda pathway: pathway.remove_option(option_id),
            option_id=option_id,
        )

    async def update_pathway_option(
        self,
        pathway_id: int,
        option_id: int,
        payload: schemas.UpdatePathwayOptionPayload | Mapping[str, Any],
    ) -> schemas.PathwayWithOptions:
        return await self._locked_option_change(
            "update_option",
            pathway_id,
            lambda pathway: pathway.update_option(option_id, payload),
            option_id=option_id,
        )

    async def set_default_option(
        self, pathway_id: int, option_id: int
    ) -> schemas.PathwayWithOptions:
        return await self._locked_option_change(
            "set_default_option",
            pathway_id,
            lambda pathway: pathway.set_default_option(option_id),
            option_id=option_id,
        )

    async def bulk_sync_options(
        self,
        pathway_id: int,
        payload: schemas.BulkSyncOptionsPayload | Mapping[str, Any],
    ) -> schemas.PathwayWithOptions:
        async def fn(factory: PathwayFactory) -> schemas.PathwayWithOptions:
            pathway = await factory.find_one(pathway_id, for_update=True)
            service = PathwayOptionDomainService(factory.option_factory)
            await service.bulk_sync_options(pathway, pathway_id, payload)
            return await _with_options(factory, pathway)

        return await self._transaction("bulk_sync_options", fn, pathway_id=pathway_id)

    # Tolls

    async def sync_option_tolls(
        self,
        pathway_id: int,
        option_id: int,
        tolls: Sequence[schemas.SyncTollInput | Mapping[str, Any]],
    ) -> list[schemas.PathwayOptionToll]:
        async def fn(factory: PathwayFactory) -> list[schemas.PathwayOptionToll]:
            pathway = await factory.find_one(pathway_id, for_update=True)
            option = await pathway.sync_option_tolls(option_id, tolls)
            return await option.get_tolls()

        return await self._transaction(
            "sync_option_tolls", fn, pathway_id=pathway_id, option_id=option_id
        )

    async def get_option_tolls(
        self, pathway_id: int, option_id: int
    ) -> list[schemas.PathwayOptionToll]:
        async def fn(factory: PathwayFactory) -> list[schemas.PathwayOptionToll]:
            pathway = await factory.find_one(pathway_id)
            return await pathway.get_option_tolls(option_id)

        return await self._read(fn)
