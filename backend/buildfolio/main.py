"""
Buildfolio - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from buildfolio.config import get_settings
from buildfolio.database.connection import (
    SchemaCapabilities,
    close_db,
    detect_capabilities,
    init_db,
)
from buildfolio.utils.logger import get_logger, setup_logging

# Import models so Base.metadata has all tables before init_db()
import buildfolio.models  # noqa: F401

from buildfolio.api.routes import contact, explore, portfolio, uploads, usernames, views
from buildfolio.api.middleware.error_handler import register_exception_handlers

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: init DB, resolve schema capabilities. Shutdown: close pool."""
    setup_logging()
    app.state.capabilities = SchemaCapabilities()
    try:
        await init_db()
        app.state.capabilities = await detect_capabilities()
        logger.info(
            "Application started",
            extra={"experiences_enabled": app.state.capabilities.experiences},
        )
    except Exception as e:
        logger.warning(
            "Database connection failed at startup. Start PostgreSQL and check DATABASE_URL. Error: %s",
            e,
        )
    yield
    await close_db()
    logger.info("Application shutdown")


def create_application() -> FastAPI:
    app = FastAPI(
        title="Buildfolio API",
        description="Portfolio builder: authoring, publishing and discovery",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )

    # Rate limiting is applied per-route (views, contact, upload)
    register_exception_handlers(app)

    prefix = settings.api_prefix
    app.include_router(usernames.router, prefix=prefix, tags=["usernames"])
    app.include_router(portfolio.router, prefix=prefix, tags=["portfolio"])
    app.include_router(uploads.router, prefix=prefix, tags=["uploads"])
    app.include_router(views.router, prefix=prefix, tags=["views"])
    app.include_router(contact.router, prefix=prefix, tags=["contact"])
    app.include_router(explore.router, prefix=prefix, tags=["explore"])

    @app.get("/")
    async def root():
        """Redirect to API docs."""
        return RedirectResponse(url="/docs")

    @app.get("/health")
    async def health():
        """Health check for load balancers and monitoring."""
        return {"status": "ok"}

    return app


app = create_application()
