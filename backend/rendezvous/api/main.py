"""
Rendezvous - FastAPI Application Setup

Thin HTTP surface over the scheduling engine:
- Availability computation across participants' calendars
- Attendance rules, candidate slots and selections per scheduling thread
- Rule-driven or host-chosen finalization and progress summaries
- Health monitoring
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..utils.config import config
from ..utils.helpers import create_error_response
from ..agent.rules import InvalidRuleError
from ..agent.finalization import UnknownSlotError
from ..agent.scheduling_engine import SchedulingEngine
from ..services.calendar_provider import StaticCalendarProvider
from ..services.preferences_store import InMemoryPreferencesStore
from ..services.thread_store import ThreadStore, create_thread_store
from .scheduling_routes import scheduling_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.api.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Rendezvous Scheduling Engine"
SERVICE_VERSION = "1.0.0"

def create_app(
    calendar_provider=None,
    preferences_store=None,
    thread_store: Optional[ThreadStore] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application

    Collaborators not passed in are built from configuration at startup.

    Returns:
        FastAPI: Configured application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME}...")

        store = thread_store or create_thread_store(config.storage)
        app.state.engine = SchedulingEngine.from_config(
            config.scheduling,
            calendar_provider if calendar_provider is not None else StaticCalendarProvider(),
            preferences_store=preferences_store if preferences_store is not None else InMemoryPreferencesStore(),
            store=store
        )

        logger.info(f"{SERVICE_NAME} started with {type(store).__name__}")
        try:
            yield
        finally:
            engine = getattr(store, 'engine', None)
            if engine is not None:
                engine.dispose()
            app.state.engine = None
            logger.info(f"{SERVICE_NAME} shutdown complete")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Availability aggregation, slot ranking and attendance-rule finalization",
        version=SERVICE_VERSION,
        docs_url="/docs" if config.api.debug else None,
        redoc_url="/redoc" if config.api.debug else None,
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    # Add custom middleware for request logging
    @app.middleware("http")
    async def log_requests(request, call_next):
        start_time = asyncio.get_event_loop().time()
        response = await call_next(request)
        process_time = asyncio.get_event_loop().time() - start_time

        logger.info(
            f"{request.method} {request.url.path} "
            f"completed in {process_time:.3f}s with status {response.status_code}"
        )
        return response

    app.include_router(scheduling_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring and load balancing"""
        engine = getattr(app.state, 'engine', None)
        if engine is None:
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "error": "Scheduling engine not initialized"}
            )
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "store": type(engine.store).__name__,
            "default_timezone": engine.default_timezone
        }

    # Error handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        """Handle HTTP exceptions with consistent format"""
        return JSONResponse(
            status_code=exc.status_code,
            content=create_error_response(str(exc.detail), "HTTP_ERROR", {"path": str(request.url.path)})
        )

    @app.exception_handler(InvalidRuleError)
    async def invalid_rule_handler(request, exc):
        logger.warning(f"Rejected rule document on {request.url.path}: {exc}")
        return JSONResponse(status_code=422, content=create_error_response(str(exc), "INVALID_RULE"))

    @app.exception_handler(UnknownSlotError)
    async def unknown_slot_handler(request, exc):
        return JSONResponse(status_code=400, content=create_error_response(str(exc), "UNKNOWN_SLOT"))

    @app.exception_handler(ValueError)
    async def value_error_handler(request, exc):
        return JSONResponse(status_code=400, content=create_error_response(str(exc), "INVALID_REQUEST"))

    return app

# Create the app instance
app = create_app()

# Start the server
def start_server():
    """Start the FastAPI server with uvicorn"""
    uvicorn.run(
        "rendezvous.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.debug,
        log_level=config.api.log_level.lower(),
        access_log=True
    )

if __name__ == "__main__":
    start_server()
