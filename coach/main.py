"""
Interest coach FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from coach import db
from coach.config import settings
from coach.routes import chat as chat_routes
from coach.routes import conversations as conversation_routes

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool
    - Close database pool on shutdown
    """
    # Startup
    await db.init_pool()
    logger.info("main: database pool initialized environment=%s", settings.ENVIRONMENT)

    yield

    # Shutdown
    await db.close_pool()
    logger.info("main: database pool closed")


app = FastAPI(
    title="Interest Coach",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(chat_routes.router)
app.include_router(conversation_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok"}
