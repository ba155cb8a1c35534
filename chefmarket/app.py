"""
FastAPI application entry point for the marketplace backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chefmarket import auth
from chefmarket.config import get_settings
from chefmarket.db import IntegrityViolationError, StorageError
from chefmarket.dependencies import get_db_client
from chefmarket.routes import router
from chefmarket.seed import seed_catalog

logger = logging.getLogger(__name__)


async def _integrity_violation(request: Request, exc: IntegrityViolationError):
    logger.info("Integrity violation on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _storage_error(request: Request, exc: StorageError):
    logger.error(
        "Storage failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"detail": "Internal storage error"})


async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request data",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Chef Marketplace API", version="0.1.0")
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(IntegrityViolationError, _integrity_violation)
    app.add_exception_handler(StorageError, _storage_error)
    app.add_exception_handler(RequestValidationError, _validation_error)

    @app.on_event("startup")
    def on_startup():
        if settings.seed_catalog_on_startup:
            seed_catalog(get_db_client())

    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
