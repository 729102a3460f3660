"""Application factory and top-level wiring.

``create_app`` brings together configuration, logging, middleware, the JSON
error envelope, the API routers and Prometheus metrics. Tables are created
and upgraded when the app starts rather than on import, so tests can point
the session at their own engine first.
"""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .core.config import settings
from .core.errors import http_exception_handler, validation_exception_handler
from .core.logging import configure_logging
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Registers every table on Base.metadata.
from . import models as _models  # noqa: F401
from .routers import (
    api_auth,
    api_categories,
    api_clients,
    api_commissions,
    api_imports,
    api_products,
    api_reports,
    api_templates,
)

ROUTERS = (
    api_auth.router,
    api_products.router,
    api_clients.router,
    api_categories.router,
    api_commissions.router,
    api_imports.router,
    api_templates.router,
    api_reports.router,
)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME, version=__version__)

    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.on_event("startup")
    def _init_db() -> None:
        Base.metadata.create_all(bind=engine)
        run_migrations(engine)

    Instrumentator().instrument(app).expose(app, include_in_schema=False)
    return app


app = create_app()


def run() -> None:
    uvicorn.run("stockbook.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


__all__ = ["app", "create_app", "run"]
