import asyncio
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

from src.common.db import create_schema, get_sessionmaker, run_migrations
from src.common.settings import SettingsMeta

from .service import PathwayApplicationService


class Settings(BaseSettings, metaclass=SettingsMeta):
    service_name: str = "pathways"
    # create: metadata.create_all (dev, tests); migrate: alembic upgrade head.
    schema_mode: Literal["create", "migrate", "none"] = "create"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_pathway_service() -> PathwayApplicationService:
    return PathwayApplicationService(get_sessionmaker())


async def init_db() -> None:
    from . import models  # noqa: F401

    mode = get_settings().schema_mode
    if mode == "create":
        await create_schema()
    elif mode == "migrate":
        await asyncio.to_thread(run_migrations)
