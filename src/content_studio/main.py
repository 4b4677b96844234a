"""
FastAPI application assembly
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import config
from .logging_config import setup_logging, RequestIDMiddleware
from .middleware.security import SecurityHeadersMiddleware, RequestSizeLimitMiddleware
from .exceptions import register_exception_handlers
from .db import Base, engine, SessionLocal
from .db.engine import check_connection
from .services.templates import seed_templates
from .auth_routes import router as auth_router, account_router
from .content_routes import (
    ai_router,
    content_router,
    images_router,
    templates_router,
    credits_router,
    dashboard_router,
)
from .billing_routes import router as billing_router
from .webhook_routes import router as webhook_router
from .admin_routes import router as admin_router

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create missing tables and seed the template catalogue"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = seed_templates(db)
        if added:
            logger.info(f"Seeded {added} templates")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"Content Studio API {__version__} started (env={config.ENV}, build={config.BUILD_VERSION})")
    yield


def create_app() -> FastAPI:
    setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)

    app = FastAPI(title="Content Studio API", version=__version__, lifespan=lifespan)

    # Middleware runs in reverse order of registration
    app.add_middleware(SecurityHeadersMiddleware, hsts=config.is_prod)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    for router in (
        auth_router,
        account_router,
        ai_router,
        content_router,
        images_router,
        templates_router,
        credits_router,
        dashboard_router,
        billing_router,
        webhook_router,
        admin_router,
    ):
        app.include_router(router)

    @app.get("/")
    async def root():
        return {"message": "Content Studio API", "status": "running"}

    @app.get("/health")
    def health():
        """Health check endpoint for load balancers and monitoring"""
        database_ok = check_connection()
        body = {
            "status": "healthy" if database_ok else "degraded",
            "service": "content-studio",
            "version": config.BUILD_VERSION,
            "database": "ok" if database_ok else "unavailable",
        }
        return JSONResponse(status_code=200 if database_ok else 503, content=body)

    return app
