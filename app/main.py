import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.auth.jwt import AuthError
from app.db.engine import engine
from app.dedup.engine import DeleteBatchError
from app.library.store import StoreUnavailableError
from app.models import Base
from app.routers import duplicates, health, imports, selections, tracks, version
from app.schemas.errors import error_response
from app.settings import settings

logger = logging.getLogger(__name__)


async def _check_postgres() -> None:
    """Verify PostgreSQL is reachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # 1. Check Postgres
    try:
        await _check_postgres()
        logger.info("PostgreSQL connection verified")
    except Exception as exc:
        logger.debug("PostgreSQL connection error: %s", exc)
        raise SystemExit(
            "FATAL: Cannot reach PostgreSQL. "
            "Check DATABASE_URL and ensure the server is running."
        ) from exc

    # 2. Create missing tables
    if settings.db_auto_create:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    yield

    # Shutdown
    await engine.dispose()


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(health.router)
    application.include_router(version.router, prefix="/api/v1")
    application.include_router(tracks.router, prefix="/api/v1")
    application.include_router(imports.router, prefix="/api/v1")
    application.include_router(duplicates.router, prefix="/api/v1")
    application.include_router(selections.router, prefix="/api/v1")

    @application.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        response = error_response(401, exc.code, exc.message)
        response.headers["WWW-Authenticate"] = "Bearer"
        return response

    @application.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(
        request: Request, exc: StoreUnavailableError
    ) -> JSONResponse:
        return error_response(
            503, "STORE_UNAVAILABLE", "The song library is temporarily unavailable."
        )

    @application.exception_handler(DeleteBatchError)
    async def delete_batch_error_handler(request: Request, exc: DeleteBatchError) -> JSONResponse:
        return error_response(
            409,
            "PARTIAL_DELETE",
            str(exc),
            details={"deleted": exc.deleted, "remaining": exc.remaining},
        )

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred.")

    return application


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.service_host, port=settings.service_port)
