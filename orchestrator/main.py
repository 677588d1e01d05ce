import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import OperationalError

from orchestrator.settings import settings
from orchestrator.api.v1.jobs import router as jobs_router
from orchestrator.api.v1.admin import router as admin_router, cron_router
from orchestrator.api.v1.metrics import router as metrics_router
from orchestrator.db.session import create_tables, engine

logger = logging.getLogger("uvicorn")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables when asked (dev). The store may still be booting.
    if settings.AUTO_CREATE_TABLES:
        for i in range(10):
            try:
                await create_tables()
                logger.info("Tables ready.")
                break
            except OperationalError as e:
                logger.warning(f"Store not reachable, retrying in 2s... ({i+1}/10): {e}")
                await asyncio.sleep(2)
        else:
            logger.error("Could not create tables; continuing without them.")

    yield

    # Shutdown
    await engine.dispose()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.include_router(jobs_router, prefix="/api/v1/jobs", tags=["jobs"])
app.include_router(cron_router, prefix="/api/v1/cron", tags=["cron"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}
