"""FastAPI application entry point.

Sale Compass API - weekly sale-sheet import and market price comparison.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salecompass.routes import api_router
from salecompass.schemas import ErrorResponse
from salecompass.services.csv_parser import CsvImportError
from salecompass.settings import get_settings
from salecompass.stores.postgres import init_db, close_db, ping_db
from salecompass.stores.redis import init_redis, close_redis

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Postgres and Redis failures are logged, not fatal: without Redis chunk
    uploads are buffered in process memory.
    """
    try:
        await init_db()
        await ping_db()
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres init failed")

    try:
        await init_redis()
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis init failed; chunk uploads use in-memory buffering")

    yield

    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Weekly sale-sheet import and market price comparison API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CsvImportError)
    async def csv_import_error_handler(request: Request, exc: CsvImportError) -> JSONResponse:
        """Import pipeline errors carry their own code and HTTP status."""
        logger.warning(
            f"[csv-import] {request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}"
        )
        body = ErrorResponse.build(exc.code, exc.message, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        body = ErrorResponse.build(
            "INTERNAL_ERROR",
            str(exc) if settings.debug else "Internal server error",
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "salecompass.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
