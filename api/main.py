"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (build the DB engine, create tables, connect to Redis)
3. Registers all routers (health, jobs, dispatch, status)
4. Turns any unhandled exception into a JSON 500
5. Runs shutdown logic (close connections)

The API never processes jobs itself. Submissions are written to Postgres,
and triggers become continuation requests on Redis that a worker process
picks up.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis as AsyncRedis

from api.routers import dispatch, health, jobs, status
from config.settings import settings
from models.base import Base, make_async_engine, make_async_session_factory

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ─────────────────────────────────────────────────
    engine = make_async_engine(settings.database_url, timeout=settings.STORE_TIMEOUT_SECONDS)
    logger.info("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.session_factory = make_async_session_factory(engine)
    app.state.redis = AsyncRedis.from_url(settings.redis_url)
    logger.info("API ready")

    yield

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.redis.close()
    await engine.dispose()
    logger.info("API shut down")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Extraction Queue",
        description="Durable per-owner queue of document extraction jobs with self-healing dispatch",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(dispatch.router)
    app.include_router(status.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
