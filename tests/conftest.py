from typing import AsyncIterator, Awaitable, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.pathways.app import models
from services.pathways.app.pathways import PathwayEntity, PathwayFactory
from services.pathways.app.repositories import build_repositories
from src.common import db
from src.common.settings import Settings

# id -> city_id
NODES = {1: 101, 2: 102, 3: 103, 4: 104, 5: 105}


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def memory_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    class TestSettings(Settings):
        postgres_dsn = "sqlite+aiosqlite:///:memory:"

    from src.common import settings as common_settings

    test_settings = TestSettings()
    monkeypatch.setattr(common_settings, "settings", test_settings)
    db._engine = None  # type: ignore[attr-defined]
    db._sessionmaker = None  # type: ignore[attr-defined]
    return test_settings


async def seed_nodes() -> None:
    sessionmaker = db.get_sessionmaker()
    async with sessionmaker() as session:
        async with session.begin():
            session.add_all(
                models.Node(id=node_id, name=f"Node {node_id}", city_id=city_id)
                for node_id, city_id in NODES.items()
            )


@pytest.fixture()
async def sessionmaker(
    memory_settings: Settings, anyio_backend: str
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    await db.create_schema()
    await seed_nodes()
    yield db.get_sessionmaker()
    await db.dispose_engine()


@pytest.fixture()
async def factory(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[PathwayFactory]:
    """Factory bound to one open transaction, rolled back after the test."""

    async with sessionmaker() as session:
        yield PathwayFactory(build_repositories(session))
        await session.rollback()


@pytest.fixture()
def make_pathway(
    factory: PathwayFactory,
) -> Callable[..., Awaitable[PathwayEntity]]:
    async def make(**overrides: object) -> PathwayEntity:
        payload = {
            "origin_node_id": 1,
            "destination_node_id": 2,
            "name": "Moscow - Tver",
            "code": "MOW-TVR",
        }
        payload.update(overrides)
        return await factory.create(payload).save()

    return make


@pytest.fixture()
def node_seeder() -> Callable[[], Awaitable[None]]:
    return seed_nodes
