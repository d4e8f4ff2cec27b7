import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.api.v1.teachers.router import router as teachers_router
from schoolerp.api.v1.timetables.locks import ScheduleLocks
from schoolerp.api.v1.timetables.router import router as timetables_router
from schoolerp.core.config import settings
from schoolerp.core.error_handlers import request_validation_handler
from schoolerp.core.logging import setup_logging
from schoolerp.db.schema_check import ensure_schema
from schoolerp.db.session import build_engine, build_sessionmaker, get_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The process owns the engine; request handlers only borrow sessions from it
    engine = build_engine(settings.database_url)
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    if settings.auto_create_tables:
        await ensure_schema(engine)
    logger.info("Timetable service started")
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Timetable service stopped")


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="SchoolERP Timetable", lifespan=lifespan)
    # One lock registry per process; see api.v1.timetables.locks
    app.state.schedule_locks = ScheduleLocks()

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Routers
    app.include_router(timetables_router)
    app.include_router(teachers_router)

    @app.get("/health", tags=["health"])
    async def health(db: AsyncSession = Depends(get_db)):
        try:
            await db.execute(text("SELECT 1"))
        except DBAPIError:
            logger.exception("Health check failed")
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
        return {"status": "ok"}

    return app


app = create_app()
