import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import health, sessions
from .config import settings
from .core.bot import close_engine, get_engine
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

setup_logging()
logger = logging.getLogger(__name__)


async def _sweep_sessions(interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        get_engine().store.evict_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the session sweeper (when a TTL is set) and close clients on exit."""
    sweeper = None
    if settings.session_ttl_seconds > 0:
        interval = max(1.0, settings.session_ttl_seconds / 4)
        sweeper = asyncio.create_task(_sweep_sessions(interval))
        logger.info(f"Session sweeper running every {interval}s")

    yield

    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    await close_engine()


# Create FastAPI app
app = FastAPI(
    title="Plutus Move Bot API",
    description="Conversational lending on Move markets",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(sessions.router, tags=["Sessions"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Plutus Move Bot API",
        "version": "0.1.0",
        "description": "Conversational lending on Move markets",
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "plutus.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
