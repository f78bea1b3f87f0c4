"""
Auth Session Service

Handles:
1. Session manager lifecycle (start on startup, close on shutdown)
2. HTTP access to session state and auth actions
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from auth_session.routers import auth
from auth_session.session_manager import SessionManager

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Profile store client logs are noisy at INFO
logging.getLogger("botocore").setLevel(logging.WARNING)
logging.getLogger("boto3").setLevel(logging.WARNING)


def create_app(manager: SessionManager) -> FastAPI:
    """Build the FastAPI app serving a session manager.

    The manager is started when the app starts and closed when it shuts down.
    It holds one user's session for the whole process, so the app is a local
    backend-for-frontend for a single client rather than a shared service.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("=== Auth Session Service Starting ===")
        auth.set_session_manager(manager)
        await manager.start()
        logger.info("Session manager started")

        yield  # Application is running

        # Shutdown
        logger.info("=== Auth Session Service Shutting Down ===")
        await manager.close()
        auth.set_session_manager(None)

    app = FastAPI(
        title="Marketplace Auth Session",
        version="1.0.0",
        description="Client-side authentication session manager",
        lifespan=lifespan
    )
    app.include_router(auth.router)
    return app
