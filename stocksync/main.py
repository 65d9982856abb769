# stocksync/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stocksync.core.config import get_settings
from stocksync.core.exceptions import (
    DatabaseError,
    JobConflictError,
    JobNotFoundError,
    MappingNotFound,
    PartialFailure,
    SyncEngineError,
    ValidationError,
)
from stocksync.core.logging_config import configure_logging
from stocksync.integrations.setup import SyncEngine, build_sync_engine
from stocksync.routes import health, inventory, mappings, sync

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    MappingNotFound.code: 404,
    JobNotFoundError.code: 404,
    JobConflictError.code: 409,
    ValidationError.code: 422,
    PartialFailure.code: 207,
}


def error_status(exc: SyncEngineError) -> int:
    """Remote, transient and auth failures all surface as 502."""
    return ERROR_STATUS.get(exc.code, 502)


def _build_default_engine() -> SyncEngine:
    settings = get_settings()
    if settings.DATABASE_URL:
        from stocksync.database import get_engine, make_session_factory
        from stocksync.services.store.sql import SqlAlchemySyncStore

        store = SqlAlchemySyncStore(make_session_factory(get_engine()))
        logger.info("Using database-backed sync store")
    else:
        from stocksync.services.store.memory import InMemorySyncStore

        store = InMemorySyncStore()
        logger.warning("DATABASE_URL not set; using in-memory sync store")
    return build_sync_engine(settings, store=store)


def _run_migrations():
    if os.getenv('RUN_MIGRATIONS', 'false').lower() != 'true':
        return
    logger.info("Running database migrations...")
    result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
    if result.returncode == 0:
        logger.info("Migrations completed successfully")
    else:
        logger.error(f"Migration failed: {result.stderr}")


def create_app(engine: Optional[SyncEngine] = None) -> FastAPI:
    """
    Build the API. Passing ``engine`` skips the default wiring; the caller
    then owns its shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = engine is None
        if owned:
            _run_migrations()
            app.state.engine = _build_default_engine()
        else:
            app.state.engine = engine

        app.state.engine.scheduler.start()
        try:
            yield
        finally:
            if owned:
                await app.state.engine.aclose()
            else:
                await app.state.engine.scheduler.shutdown()

    app = FastAPI(title="Stock Sync Engine", lifespan=lifespan)

    @app.exception_handler(SyncEngineError)
    async def sync_engine_error_handler(request: Request, exc: SyncEngineError):
        status = error_status(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed ({exc.code}): {exc}")
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        logger.error(f"{request.method} {request.url.path} database error: {exc}")
        return JSONResponse(status_code=503, content={"code": "DATABASE_ERROR", "message": str(exc)})

    app.include_router(inventory.router)
    app.include_router(sync.router)
    app.include_router(mappings.router)
    app.include_router(health.router)
    return app


configure_logging()
app = create_app()
