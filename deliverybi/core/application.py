"""
Application builder: middlewares, routers, lifespan and exception handlers
wired step by step.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from deliverybi.core.config import settings
from deliverybi.core.logging import app_logger, init_app_logging
from deliverybi.infra.db import health_check
from deliverybi.routers import (
    ads,
    alerts,
    auth,
    campaigns,
    catalog,
    controlling,
    customers,
    health,
    heatmap,
    maps,
    objectives,
    reviews,
    sales_projections,
    share,
)


class ApplicationBuilder:
    """Builder for FastAPI application with separated concerns."""

    def __init__(self):
        self.app = FastAPI(
            title=settings.APP_NAME,
            version="1.0.0",
            description="Business intelligence para restaurantes en Glovo, Uber Eats y Just Eat",
            openapi_url="/api/v1/openapi.json",
            docs_url="/docs",
            redoc_url="/redoc",
        )
        self._middlewares_added = False
        self._routes_added = False
        self._startup_handlers_added = False

    def add_cors_middleware(self) -> ApplicationBuilder:
        if self._middlewares_added:
            raise RuntimeError("Middlewares already added")

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS_LIST or ["http://localhost:3000", "http://localhost:5173"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        app_logger.info("CORS middleware added")
        return self

    def add_security_middleware(self) -> ApplicationBuilder:
        if self._middlewares_added:
            raise RuntimeError("Middlewares already added")

        @self.app.middleware("http")
        async def add_security_headers(request: Request, call_next):
            response = await call_next(request)
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            return response

        app_logger.info("Security middleware added")
        return self

    def add_request_logging_middleware(self) -> ApplicationBuilder:
        if self._middlewares_added:
            raise RuntimeError("Middlewares already added")

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            response = await call_next(request)
            app_logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
            )
            return response

        app_logger.info("Request logging middleware added")
        return self

    def finalize_middlewares(self) -> ApplicationBuilder:
        self._middlewares_added = True
        return self

    def add_routes(self) -> ApplicationBuilder:
        if self._routes_added:
            raise RuntimeError("Routes already added")

        self.app.include_router(health.router)
        self.app.include_router(auth.router)
        self.app.include_router(catalog.router)
        self.app.include_router(controlling.router)
        self.app.include_router(maps.router)
        self.app.include_router(heatmap.router)
        self.app.include_router(reviews.router)
        self.app.include_router(objectives.router)
        self.app.include_router(share.router)
        self.app.include_router(campaigns.router)
        self.app.include_router(alerts.router)
        self.app.include_router(customers.router)
        self.app.include_router(ads.router)
        self.app.include_router(sales_projections.router)

        @self.app.get("/")
        def root():
            return {
                "name": settings.APP_NAME,
                "env": settings.ENV,
                "docs": "/docs",
                "healthz": "/healthz",
                "readyz": "/readyz",
            }

        app_logger.info("All routes added")
        self._routes_added = True
        return self

    def add_startup_handlers(self) -> ApplicationBuilder:
        if self._startup_handlers_added:
            raise RuntimeError("Startup handlers already added")

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            app_logger.info("Starting application...")
            try:
                health_check()
                app_logger.info("Database connection validated")
            except SQLAlchemyError as exc:
                app_logger.error("Database connection failed", exc=exc)
                raise

            yield

            app_logger.info("Shutting down application...")

        self.app.router.lifespan_context = lifespan
        self._startup_handlers_added = True
        return self

    def add_exception_handlers(self) -> ApplicationBuilder:
        @self.app.exception_handler(SQLAlchemyError)
        async def database_error_handler(request: Request, exc: SQLAlchemyError):
            app_logger.error("Database error", exc=exc, path=request.url.path)
            return JSONResponse(status_code=503, content={"detail": "Base de datos no disponible."})

        @self.app.exception_handler(500)
        async def internal_error_handler(request: Request, exc: Exception):
            app_logger.error("Internal error", exc=exc, path=request.url.path)
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})

        @self.app.exception_handler(404)
        async def not_found_handler(request: Request, exc: Exception):
            return JSONResponse(status_code=404, content={"detail": getattr(exc, "detail", "Not found")})

        app_logger.info("Exception handlers added")
        return self

    def build(self) -> FastAPI:
        if not self._middlewares_added:
            raise RuntimeError("Middlewares not finalized")
        if not self._routes_added:
            raise RuntimeError("Routes not added")
        if not self._startup_handlers_added:
            raise RuntimeError("Startup handlers not added")

        app_logger.info("FastAPI application built successfully")
        return self.app


def create_application() -> FastAPI:
    init_app_logging()

    builder = (
        ApplicationBuilder()
        .add_cors_middleware()
        .add_security_middleware()
        .add_request_logging_middleware()
        .finalize_middlewares()
        .add_routes()
        .add_startup_handlers()
        .add_exception_handlers()
    )
    return builder.build()
