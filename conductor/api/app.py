"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from .routes import agents, approvals, observability, orchestration


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def set_app(application: Application | None) -> None:
    """Replace the global application instance."""
    global _app
    _app = application


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan."""
    application = get_app()
    await application.start()
    yield
    await application.stop()


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    if application is not None:
        set_app(application)

    fastapi_app = FastAPI(
        title="Conductor API",
        description="Control surface for agents, plans and approvals",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application = get_app()
    fastapi_app.include_router(agents.create_agents_router(application))
    fastapi_app.include_router(orchestration.create_orchestration_router(application))
    fastapi_app.include_router(approvals.create_approvals_router(application))
    fastapi_app.include_router(observability.create_observability_router(application))

    return fastapi_app
