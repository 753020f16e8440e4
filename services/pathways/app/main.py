from fastapi import FastAPI

from src.common import settings as common_settings
from src.common.logging import get_logger, setup_logging
from src.common.metrics import JOB_DURATION, setup_metrics
from src.common.telemetry import setup_otel

from . import deps
from .api import register_exception_handlers, router

setup_logging(common_settings.settings.log_level)
logger = get_logger(__name__)

app = FastAPI(title="pathways")
setup_metrics(app, "pathways")
setup_otel(app, "pathways")
register_exception_handlers(app)


@app.on_event("startup")
async def on_startup() -> None:
    await deps.init_db()
    JOB_DURATION.labels("pathways", "startup").observe(0)
    logger.info("pathways.started")


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
async def readyz() -> dict[str, str]:
    return {"status": "ready"}


app.include_router(router)
