"""Mosaic FastAPI application."""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mosaic import __version__
from mosaic.api.routes import health, plugins, repositories, resume, search
from mosaic.errors import (
    DownloadError,
    MosaicError,
    ProviderCallFailure,
    ProviderNotFound,
    ContentNotFound,
    SidecarUnavailable,
)
from mosaic.runtime import MosaicRuntime


def _error(status_code: int, exc: MosaicError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, **({"context": exc.details} if exc.details else {})},
    )


def create_app(runtime: MosaicRuntime | None = None) -> FastAPI:
    """Build the API around *runtime* (a fresh one from settings if omitted).

    The lifespan starts the runtime on startup and stops it on shutdown.
    """
    runtime = runtime or MosaicRuntime()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await runtime.start()
        yield
        await runtime.stop()

    app = FastAPI(
        title="Mosaic",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime.settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module in (health, search, plugins, resume, repositories):
        app.include_router(module.router)

    # --- Exception handlers ---

    @app.exception_handler(ProviderCallFailure)
    async def provider_failure_handler(request: Request, exc: ProviderCallFailure) -> JSONResponse:
        if isinstance(exc, (ProviderNotFound, ContentNotFound)):
            return _error(404, exc)
        return _error(504 if exc.timed_out else 502, exc)

    @app.exception_handler(DownloadError)
    async def download_error_handler(request: Request, exc: DownloadError) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(SidecarUnavailable)
    async def sidecar_error_handler(request: Request, exc: SidecarUnavailable) -> JSONResponse:
        return _error(503, exc)

    @app.exception_handler(MosaicError)
    async def mosaic_error_handler(request: Request, exc: MosaicError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app
