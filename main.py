"""
Bureau task manager API.

Every HTTP request crosses the guard pipeline (rate limits, brute-force
tracking, signature scanning, sanitization, authentication and upload
pre-checks) before it reaches a router.
"""
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI

from config import Settings, settings as default_settings, validate_security_settings
from middleware.cors_handler import OriginPolicyMiddleware, add_cors_middleware
from middleware.global_error_handler import GlobalErrorMiddleware, register_exception_handlers
from middleware.guard_pipeline import build_pipeline
from middleware.security_middleware import RequestGuardMiddleware
from repositories import TaskRepository, UserRepository
from routers import auth, realtime, storage, tasks, user
from services.auth_service import AuthService
from services.background_tasks import build_scheduler
from services.guard_services import build_guard_services
from services.notification_service import ConnectionRegistry
from services.storage_service import StorageService
from services.task_service import TaskService
from services.user_service import UserService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Starts the sweeper tasks for the guard tables and stops them on shutdown."""
    logger.info("🚀 [STARTUP] Beginning application startup...")
    app.state.scheduler.start()
    yield
    logger.info("👋 [SHUTDOWN] Beginning graceful shutdown...")
    await app.state.scheduler.stop()


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> FastAPI:
    settings = settings or default_settings
    validate_security_settings(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Task manager API behind a layered request-defense pipeline",
        lifespan=lifespan,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None if settings.is_production() else "/redoc",
    )

    guards = build_guard_services(settings, clock)
    users = UserRepository()
    task_rows = TaskRepository()
    notifications = ConnectionRegistry(max_connections_per_user=settings.ws_max_connections_per_user)

    app.state.settings = settings
    app.state.guard_services = guards
    app.state.notifications = notifications
    app.state.auth_service = AuthService(users, guards.credentials, guards.brute_force)
    app.state.user_service = UserService(users)
    app.state.task_service = TaskService(task_rows, users, notifications)
    app.state.storage_service = StorageService(settings.upload_dir, guards.uploads, guards.audit)
    app.state.scheduler = build_scheduler(guards)

    # Added innermost first: CORS -> origin policy -> error handling -> guard pipeline -> routes
    app.add_middleware(RequestGuardMiddleware, pipeline=build_pipeline(guards), settings=settings, sleep=sleep)
    app.add_middleware(GlobalErrorMiddleware, production=settings.is_production())
    app.add_middleware(OriginPolicyMiddleware, settings=settings, audit=guards.audit)
    add_cors_middleware(app, settings)

    register_exception_handlers(app)

    app.include_router(auth.router, prefix="/api/auth")
    app.include_router(user.router, prefix="/api/users")
    app.include_router(tasks.router, prefix="/api/tasks")
    app.include_router(storage.router, prefix="/api")
    app.include_router(storage.files_router)
    app.include_router(realtime.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    logger.info(f"✅ [STARTUP] {settings.app_name} v{settings.app_version} configured ({settings.environment})")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
