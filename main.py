"""
FastAPI Application Entry Point

Integrates:
  - WhatsApp webhook (verification + event intake)
  - Health check
  - Middleware for logging & error handling

Run: python main.py   (or: uvicorn main:app --host 0.0.0.0 --port 3000)
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Config
from infra.bootstrap import InfraBootstrap
from transport.whatsapp.webhook import router as whatsapp_router

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging once per process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_app(bootstrap: Optional[InfraBootstrap] = None) -> FastAPI:
    """
    Build the application.

    Args:
        bootstrap: Pre-built components (tests). Defaults to the
            process-wide InfraBootstrap singleton, created lazily at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan: startup and shutdown handlers.
        """
        infra = app.state.bootstrap = bootstrap or InfraBootstrap.get_instance()

        # Startup
        logger.info("=" * 60)
        logger.info("WhatsApp Webhook Service starting up...")
        logger.info(f"Environment: {Config.ENVIRONMENT}")
        logger.info(f"Backends: {infra!r}")
        logger.info("=" * 60)
        Config.validate()
        await infra.startup()

        yield

        # Shutdown
        logger.info("WhatsApp Webhook Service shutting down...")
        await infra.shutdown()
        logger.info("All connections closed")

    app = FastAPI(
        title="WhatsApp Webhook Service",
        description="Multi-tenant WhatsApp Cloud API webhook router",
        version="1.0.0",
        lifespan=lifespan,
    )
    if bootstrap is not None:
        app.state.bootstrap = bootstrap

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware for logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        logger.debug(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Internal server error"},
            )

    # Include routers
    app.include_router(whatsapp_router)

    # Health check endpoint
    @app.get("/health")
    async def health():
        """Liveness check."""
        return {
            "status": "OK",
            "message": "WhatsApp Webhook Service is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": time.monotonic() - _started_at,
        }

    return app


configure_logging(Config.LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=Config.PORT,
    )
