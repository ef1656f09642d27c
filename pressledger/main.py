from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pressledger.api.errors import register_exception_handlers
from pressledger.api.routers import jobs, materials, realtime, reports
from pressledger.core.config import settings
from pressledger.core.logging import configure_logging
from pressledger.schemas.common import Health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    logger.info(
        "pressledger starting: env=%s, lock_timeout_ms=%s, retries=%s, verify_on_write=%s",
        settings.app_env,
        settings.lock_timeout_ms,
        settings.conflict_retry_attempts,
        settings.verify_reconciliation_on_write,
    )
    yield
    logger.info("pressledger stopped")


app = FastAPI(title="Print Shop Material Ledger API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(materials.router)
app.include_router(reports.router)
app.include_router(jobs.router)
app.include_router(realtime.router)


@app.get("/health", response_model=Health)
async def health() -> Health:
    return Health(status="ok", time=datetime.now(timezone.utc))
