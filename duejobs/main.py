import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import InterfaceError, OperationalError

from duejobs.settings import settings
from duejobs.api.v1.jobs import router as jobs_router
from duejobs.api.v1.admin import router as admin_router
from duejobs.api.v1.metrics import router as metrics_router

logger = logging.getLogger(__name__)

async def create_tables(engine, attempts: int = 10, delay: float = 2.0) -> None:
    """Creates the tables, waiting for a database that is still starting up."""
    from duejobs.db.session import Base
    import duejobs.db.models  # noqa: F401 registers the tables

    for i in range(attempts):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return
        except (OperationalError, InterfaceError, OSError) as e:
            if i + 1 == attempts:
                raise
            logger.warning(f"Bootstrap: database not ready ({e}), retrying in {delay}s... ({i+1}/{attempts})")
            await asyncio.sleep(delay)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    from duejobs.db.session import AsyncSessionLocal, engine
    from duejobs.scheduler.config import EngineConfig
    from duejobs.scheduler.service import SchedulerService
    from duejobs.scheduler.tick import Tick
    from duejobs.services.publisher import build_publisher
    from duejobs.store.sql import SqlJobStore

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # 1. Schema
    await create_tables(engine)

    # 2. Engine wiring
    config = EngineConfig.from_settings(settings)
    store = SqlJobStore(AsyncSessionLocal)
    publisher = build_publisher(
        settings.PUBLISH_URL,
        signing_key=settings.PUBLISH_SIGNING_KEY,
        timeout=settings.CALL_TIMEOUT_SECONDS
    )
    app.state.store = store
    app.state.tick = Tick(store, publisher, config)

    # 3. Optional in-process trigger
    scheduler = None
    if settings.TRIGGER_ENABLED:
        scheduler = SchedulerService(app.state.tick, interval=settings.TICK_INTERVAL_SECONDS)
        await scheduler.start()

    yield

    # Shutdown
    if scheduler:
        await scheduler.stop()
    close = getattr(publisher, "close", None)
    if close:
        await close()
    await engine.dispose()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.include_router(jobs_router, prefix="/api/v1/jobs", tags=["jobs"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}
