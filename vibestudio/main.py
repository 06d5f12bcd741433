"""Vibe Studio API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map StudioError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup via lifespan context manager
    - Runs orphaned by a previous process are reconciled before serving

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Shutdown cancels in-flight runs; the next startup sweep marks them as errors
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vibestudio.api.dependencies import get_services
from vibestudio.api.error_handlers import register_error_handlers
from vibestudio.api.routes import health, project_agent, projects, settings as settings_routes
from vibestudio.config import get_settings
from vibestudio.infrastructure import database
from vibestudio.infrastructure.observability import setup_logging
from vibestudio.services.agent_coordinator import reconcile_interrupted_runs

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.database_create_tables:
        await manager.create_tables()
    services = get_services()
    reconciled = await reconcile_interrupted_runs(services.store)
    if reconciled:
        logger.warning(f"Reconciled {reconciled} interrupted agent run(s)")
    logger.info("Vibe Studio API started")
    yield
    logger.info("Vibe Studio API shutting down")
    await services.coordinator.shutdown()
    await database.get_db_manager().dispose()


app = FastAPI(
    title="Vibe Studio API", version="0.1.0", lifespan=lifespan,
)

# CORS - configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes - explicit registration
app.include_router(health.router)
app.include_router(projects.router)
app.include_router(project_agent.router)
app.include_router(settings_routes.router)

register_error_handlers(app)
