"""FastAPI application for MemoryReel."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError

from memoryreel.ai_client import VisionClient, build_vision_client
from memoryreel.config import Settings, settings
from memoryreel.db.connection import build_engine, build_session_factory, check_db, close_db, init_db
from memoryreel.enrichment import EnrichmentService
from memoryreel.errors import (
    AssetUploadError,
    ExtractionError,
    InvalidEdit,
    RecordNotFound,
    StoreError,
)
from memoryreel.library import MediaLibrary
from memoryreel.media_api import router as media_router
from memoryreel.models import HealthStatus
from memoryreel.pipeline import IngestionPipeline
from memoryreel.publisher import AssetPublisher
from memoryreel.sampler import FrameSampler
from memoryreel.storage import build_storage

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build every shared client once; close them on shutdown."""
    config: Settings = app.state.config
    config.ensure_directories()

    engine = build_engine(config=config)
    try:
        await init_db(engine)
        logger.info("Database connection initialized")
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database initialization failed: {e}")

    vision_client: Optional[VisionClient] = None
    if config.OPENAI_API_KEY:
        vision_client = build_vision_client(config)
    else:
        logger.warning("OPENAI_API_KEY not set - uploads will be saved with placeholder metadata")

    storage = build_storage(config)
    publisher = AssetPublisher(storage)
    sampler = FrameSampler()
    session_factory = build_session_factory(engine)
    enrichment = EnrichmentService(vision_client) if vision_client else None

    app.state.engine = engine
    app.state.pipeline = IngestionPipeline(sampler, enrichment, publisher, session_factory, config)
    app.state.library = MediaLibrary(session_factory, publisher, sampler)

    logger.info("MemoryReel started")
    logger.info(f"Storage backend: {config.STORAGE_BACKEND}")
    logger.info(f"AI enrichment: {'enabled' if vision_client else 'disabled'}")

    yield

    if vision_client is not None:
        await vision_client.close()
        logger.info("OpenAI client closed")
    await storage.close()
    await close_db(engine)


def create_app(config: Settings = settings) -> FastAPI:
    app = FastAPI(
        title="MemoryReel",
        description="Personal media library with AI enrichment",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config

    app.include_router(media_router)

    # Local backend serves its own files
    if config.STORAGE_BACKEND == "local":
        app.mount(
            "/files",
            StaticFiles(directory=str(config.MEDIA_DIR), check_dir=False),
            name="files",
        )

    # Prometheus metrics
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    _register_error_handlers(app)

    @app.get("/health", response_model=HealthStatus)
    async def health_check(request: Request):
        """Check row store reachability and AI configuration."""
        engine = getattr(request.app.state, "engine", None)
        database_available = await check_db(engine) if engine is not None else False
        ai_configured = bool(config.OPENAI_API_KEY)

        status = "healthy" if database_available and ai_configured else "degraded"
        return HealthStatus(
            status=status,
            database_available=database_available,
            ai_configured=ai_configured,
            storage_backend=config.STORAGE_BACKEND,
        )

    return app


# Error taxonomy -> HTTP status
ERROR_STATUS = {
    ExtractionError: 422,
    AssetUploadError: 502,
    StoreError: 503,
    RecordNotFound: 404,
    InvalidEdit: 400,
}


def _register_error_handlers(app: FastAPI) -> None:
    for error_class, status_code in ERROR_STATUS.items():

        async def handler(request: Request, exc: Exception, status_code: int = status_code):
            logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})

        app.add_exception_handler(error_class, handler)


app = create_app()

