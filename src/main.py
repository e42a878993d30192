from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from src.apps.api import router
from src.config.logging import configure_logging, get_logger
from src.config.settings import Settings, get_settings
from src.services import PipelineOrchestrator, Reconciler, platform_factory_from_settings
from src.services.orchestrator import PlatformFactory

logger = get_logger("main")


def create_app(
    settings: Optional[Settings] = None,
    platform_factory_builder: Callable[[Settings], PlatformFactory] = platform_factory_from_settings,
) -> FastAPI:
    """Build the API. Configuration is read when the app starts, not at import."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or get_settings()
        configure_logging(app_settings.LOG_LEVEL)

        # Raises ConfigurationError, which aborts startup
        targets = app_settings.repo_targets()

        orchestrator = PipelineOrchestrator(
            targets=targets,
            platform_factory=platform_factory_builder(app_settings),
            reconciler=Reconciler(labels=app_settings.ISSUE_LABELS),
            queue_max_depth=app_settings.QUEUE_MAX_DEPTH,
            processed_limit=app_settings.PROCESSED_COMMITS_LIMIT,
        )
        app.state.settings = app_settings
        app.state.orchestrator = orchestrator
        app.state.platform_factory_builder = platform_factory_builder
        app.state.git_managers = {}

        await orchestrator.start()
        logger.info("Monitoring %s", ", ".join(t.repository for t in targets))
        try:
            yield
        finally:
            await orchestrator.stop()

    app = FastAPI(
        title="Diagram Sync API",
        version="0.1.0",
        description="Validates diagrams embedded in repository documents and keeps their metadata in sync",
        lifespan=lifespan,
    )
    app.include_router(router.router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """
        Simple health check endpoint to confirm the API is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
