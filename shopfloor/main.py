# shopfloor/main.py

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shopfloor.api.v1.endpoints import csv, health, users
from shopfloor.core.config import Settings, get_settings
from shopfloor.core.db import Database, init_db

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and bootstrap tables and the admin account"""
    settings = app.state.settings
    start_time = time.time()
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {'Development' if settings.DEBUG else 'Production'}")

    database = Database(settings.SQLALCHEMY_DATABASE_URI, echo=settings.DB_ECHO).open()
    app.state.database = database
    init_db(database, settings)

    elapsed = time.time() - start_time
    logger.info(f"Application startup completed in {elapsed:.2f} seconds")
    try:
        yield
    finally:
        database.close()
        app.state.database = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=settings.DESCRIPTION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = None

    # Set up CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(health.router, prefix=settings.API_V1_STR)
    app.include_router(csv.router, prefix=settings.API_V1_STR)
    app.include_router(users.router, prefix=settings.API_V1_STR)

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "shopfloor.main:create_app",
        factory=True,
        host=_settings.HOST,
        port=_settings.PORT,
        log_level=_settings.LOG_LEVEL,
        reload=_settings.DEBUG
    )
