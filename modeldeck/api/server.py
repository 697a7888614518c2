"""
FastAPI server for modeldeck.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config import Config, get_config, set_config
from ..deploy import DeploymentCoordinator
from ..errors import ModelDeckError

logger = logging.getLogger(__name__)

# Global coordinator instance (shared with routes.py)
_coordinator: Optional[DeploymentCoordinator] = None


def get_coordinator() -> Optional[DeploymentCoordinator]:
    """Get the global coordinator instance."""
    return _coordinator


def set_coordinator(coordinator: Optional[DeploymentCoordinator]) -> None:
    """Set the global coordinator instance."""
    global _coordinator
    _coordinator = coordinator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    created = False

    # Startup
    if get_coordinator() is None:
        config = get_config()
        try:
            set_coordinator(DeploymentCoordinator.from_config(config))
        except Exception as e:
            logger.error(f"Failed to start coordinator: {e}")
            raise
        created = True

    coordinator = get_coordinator()
    logger.info(f"Loaded models: {', '.join(sorted(coordinator.models)) or '(none)'}")

    try:
        pending = coordinator.pending()
    except ModelDeckError as e:
        logger.error(f"Cannot read deploy journal: {e.message}")
        pending = None
    if pending:
        logger.warning(
            f"Unfinished {pending.operation} of {pending.model_name} "
            f"(last step: {pending.last_completed}); POST /api/deploy/resume to finish it"
        )

    yield

    # Shutdown
    if created:
        set_coordinator(None)


async def modeldeck_error_handler(request: Request, exc: ModelDeckError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} failed")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": str(exc)},
    )


def create_app(
    config: Optional[Config] = None,
    coordinator: Optional[DeploymentCoordinator] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    from .routes import router
    from fastapi.staticfiles import StaticFiles

    if config:
        set_config(config)
    if coordinator:
        set_coordinator(coordinator)

    config = config or get_config()

    app = FastAPI(
        title="modeldeck",
        description="Cube.js model editor backend",
        version=__version__,
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ModelDeckError, modeldeck_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router, prefix="/api")

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # Serve the editor UI if configured
    static_dir = config.server.static_dir
    if static_dir and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="editor")
    else:
        @app.get("/")
        async def root():
            return {
                "name": "modeldeck",
                "version": __version__,
                "message": "Editor UI not configured. Set server.static_dir to serve it."
            }

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 3333,
    reload: bool = False
):
    """Run the server with uvicorn."""
    if reload:
        uvicorn.run(
            "modeldeck.api.server:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level="info"
        )
        return

    app = create_app()
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )
