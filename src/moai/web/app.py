"""
Moai Web - FastAPI application.

Hosts the onboarding router. Store resources are created in the lifespan
and torn down on shutdown; handlers reach them through app.state.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from moai import __version__
from moai.config import get_settings
from moai.db.client import AppResources
from moai.logging_config import configure_logging
from onboarding.api import router as onboarding_router

logger = logging.getLogger(__name__)


def create_app(resources: AppResources | None = None) -> FastAPI:
    """
    Build the application.

    Pass `resources` to run against an existing client; otherwise one is
    built from settings at startup when Supabase is configured.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_logging(settings.log_level, rich=False)

        owned = None
        if resources is not None:
            app.state.resources = resources
        elif settings.has_supabase:
            owned = AppResources.from_settings(settings)
            app.state.resources = owned
        else:
            logger.warning("Supabase is not configured; onboarding endpoints will return 503")
            app.state.resources = None

        logger.info(f"Moai API started ({settings.moai_env})")
        try:
            yield
        finally:
            if owned is not None:
                owned.close()

    app = FastAPI(title="Moai", version=__version__, lifespan=lifespan)
    app.include_router(onboarding_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()
