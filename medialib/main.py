import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from medialib.api.v1 import external, media, sizes, usages
from medialib.config import Settings, get_settings
from medialib.db import check_db, create_engine, create_sessionmaker, init_models
from medialib.errors import AssetInUse, MediaLibraryError
from medialib.services.media_service import MediaService
from medialib.services.size_specs import SizeSpecRegistry

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went wrong while handling the media library request."

def _envelope(code: str, message: str, status: int, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message, "http_status": status, "details": details or {}}},
    )

async def media_error_handler(request: Request, exc: MediaLibraryError) -> JSONResponse:
    if exc.http_status >= 500:
        # infrastructure failure: full context to the log, nothing internal to the caller
        logger.error("%s on %s %s: %s %s", exc.code, request.method, request.url.path, exc.message, exc.details,
                     exc_info=exc)
        return _envelope(exc.code, exc.public_message or GENERIC_MESSAGE, exc.http_status)
    details = {k: v for k, v in exc.details.items() if v is not None}
    if isinstance(exc, AssetInUse):
        details["usages"] = [u.model_dump(mode="json") for u in exc.usages]
    return _envelope(exc.code, exc.message, exc.http_status, details)

async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _envelope("media.bad_request", str(exc), 400)

async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _envelope("media.database_error", GENERIC_MESSAGE, 500)

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.LOG_LEVEL.upper(),
                            format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        engine = create_engine(settings)
        await init_models(engine)
        sessions = create_sessionmaker(engine)
        if settings.SEED_DEFAULT_SIZES:
            await SizeSpecRegistry(sessions).seed_defaults()

        executor = ThreadPoolExecutor(max_workers=max(1, settings.TRANSFORM_MAX_CONCURRENCY))
        app.state.engine = engine
        app.state.media = MediaService.from_settings(settings, sessions, executor=executor)
        logger.info("%s ready (content root %s)", settings.APP_NAME, app.state.media.store.root)
        try:
            yield
        finally:
            await app.state.media.wait_for_background()
            executor.shutdown(wait=True)
            await engine.dispose()

    app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)

    origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",")] if settings.CORS_ALLOW_ORIGINS else ["*"]
    app.add_middleware(CORSMiddleware, allow_origins=origins, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
    # the content root is created by the asset store at startup
    app.mount(settings.PUBLIC_URL_PREFIX.rstrip("/") or "/content",
              StaticFiles(directory=settings.CONTENT_ROOT, check_dir=False), name="content")

    app.add_exception_handler(MediaLibraryError, media_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    @app.get("/health")
    async def health():
        try:
            db_ok = await check_db(app.state.engine)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Health check could not reach the database: %s", e)
            db_ok = False
        return {"status": "ok", "db": db_ok}

    for module in (media, usages, external, sizes):
        app.include_router(module.router, prefix="/api/v1")
    return app

app = create_app()
