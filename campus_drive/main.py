import logging

from fastapi import FastAPI

from campus_drive.api.error_handlers import register_exception_handlers
from campus_drive.api.router import api_router
from campus_drive.core.config import settings
from campus_drive.db.session import init_models
from campus_drive.jobs.scheduler import start_scheduler
from campus_drive.middleware.logging import RequestLoggingMiddleware
from campus_drive.services.event_bus import event_bus

logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup_jobs() -> None:
        await init_models()
        if settings.scheduler_enabled:
            app.state.scheduler = start_scheduler()

    @app.on_event("shutdown")
    async def _shutdown_jobs() -> None:
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            scheduler.shutdown()
        await event_bus.aclose()

    return app


app = create_app()
