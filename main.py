import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

import integrations
import portfolio
import users
from config import Settings
from context import AppContext, build_context, get_context
from database import ensure_indexes
from errors import setup_exception_handlers
from resources import build_routers

logger = logging.getLogger(__name__)

# =======
# Logging
# =======

def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )
    # Quiet down noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


# ==================
# FastAPI app config
# ==================

def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the API.

    Pass a ready `AppContext` to run against an existing database (tests);
    otherwise the context is built from the environment at startup and the
    process exits if MongoDB cannot be reached.
    """
    settings = context.settings if context is not None else Settings.from_env()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = app.state.context
        if ctx is None:
            try:
                ctx = build_context(settings)
            except PyMongoError:
                logger.exception("Error connecting to MongoDB")
                sys.exit(1)
            app.state.context = ctx
        ensure_indexes(ctx.db)
        users.bootstrap_admin(ctx)
        try:
            yield
        finally:
            ctx.close()

    app = FastAPI(title="Portfolio API", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_exception_handlers(app)

    # ======
    # Routes
    # ======
    app.include_router(users.router, prefix=settings.api_prefix)
    for router in build_routers():
        app.include_router(router, prefix=settings.api_prefix)
    app.include_router(portfolio.router, prefix=settings.api_prefix)
    app.include_router(integrations.router, prefix=settings.api_prefix)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "portfolio-api"}

    @app.get("/test")
    def test_database(ctx: AppContext = Depends(get_context)):
        collections = []
        try:
            collections = ctx.db.list_collection_names()
            database = "connected"
        except PyMongoError as exc:
            logger.warning("Database check failed: %s", exc)
            database = "not-available"
        return {"backend": "running", "database": database, "collections": collections[:10]}

    return app


app = create_app()
