"""Main FastAPI application with master/slave mode switching."""
import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings
from .routers import master_router, slave_router
from .services.master import MasterNode
from .services.slave import SlaveNode

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    node = app.state.node
    mode = app.state.settings.mode
    logger.info(f"Starting PingPals in {mode.upper()} mode")

    node.start()

    yield

    # Shutdown
    if isinstance(node, MasterNode):
        await node.stop()
    else:
        node.stop()
    logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    node: Optional[Union[MasterNode, SlaveNode]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application for the configured mode."""
    settings = settings or default_settings
    mode = settings.mode.lower()
    if mode not in ("master", "slave"):
        raise ValueError(f"MODE must be 'master' or 'slave', got {settings.mode!r}")

    if node is None:
        node = MasterNode(settings) if mode == "master" else SlaveNode(settings)

    app = FastAPI(
        title=f"PingPals {mode.capitalize()} API",
        description="Distributed uptime monitoring - HTTP and ICMP checks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.node = node

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if mode == "master":
        app.include_router(master_router)
    else:
        app.include_router(slave_router)

    # Health check endpoint, no auth
    @app.get("/health", tags=["health"])
    async def health_check():
        return {"status": "ok"}

    return app


configure_logging(default_settings.log_level)

# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
