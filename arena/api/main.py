"""FastAPI application for the Rainmaker Arena prediction rounds."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from arena.api.routes import (
    health_router,
    prices_router,
    rounds_router,
    predictions_router,
    users_router,
    telegram_router,
)
from arena.api.websocket import handle_websocket_connection
from arena.api.dependencies import (
    init_dependencies,
    shutdown_dependencies,
    get_optional_prediction_service,
    get_scheduler,
    get_settings,
)
from arena.engine.errors import UserInputError
from arena.engine.service import PredictionService
from arena.utils.logger import setup_logging
from config.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the engine on startup, starts the round scheduler when enabled,
    and tears both down on shutdown.
    """
    setup_logging()
    logger.info("Starting Rainmaker Arena API...")

    try:
        init_dependencies(loop=asyncio.get_running_loop())
        app_settings = get_settings()

        scheduler = get_scheduler()
        if app_settings.ENABLE_SCHEDULER and scheduler is not None:
            # First refresh hits the network; keep it off the event loop
            await asyncio.get_running_loop().run_in_executor(None, scheduler.start)
        else:
            logger.warning("Scheduler disabled, rounds will not open or resolve")

        logger.info(f"API started successfully on {app_settings.API_HOST}:{app_settings.API_PORT}")

    except Exception as e:
        logger.error(f"Failed to start API: {e}")
        raise

    yield

    logger.info("Shutting down Rainmaker Arena API...")
    shutdown_dependencies()
    logger.info("API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Rainmaker Arena API",
    description="Live crypto price prediction rounds with flat symbolic rewards",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# Configure CORS from settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(health_router)
app.include_router(prices_router)
app.include_router(rounds_router)
app.include_router(predictions_router)
app.include_router(users_router)
app.include_router(telegram_router)


# Root endpoint
@app.get("/", tags=["root"])
async def root() -> JSONResponse:
    """
    Root endpoint with API information.
    """
    return JSONResponse(
        content={
            "name": "Rainmaker Arena API",
            "version": "1.0.0",
            "description": "Live crypto price prediction rounds",
            "endpoints": {
                "health": "/api/health",
                "prices": "/api/prices",
                "rounds": "/api/rounds",
                "resolved_rounds": "/api/rounds/resolved",
                "predictions": "/api/predictions",
                "users": "/api/users/{user_id}",
                "telegram": "/api/telegram/webhook",
                "websocket": "/ws",
                "docs": "/docs",
            },
        }
    )


# WebSocket endpoint
@app.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    service: Optional[PredictionService] = Depends(get_optional_prediction_service),
) -> None:
    """
    WebSocket endpoint for live round events.

    Supported client messages:
    - {"type": "ping"}
    - {"type": "rounds"}
    - {"type": "predict", "user_id": "42", "asset": "BTC", "direction": "up"}

    Server messages:
    - {"type": "connected", ...}
    - {"type": "round_opened" | "round_resolved" | "digest", "message": ..., ...}
    - {"type": "prediction_accepted", "receipt": {...}}
    - {"type": "error", ...}
    """
    if service is None:
        logger.warning("WebSocket connected before the prediction service was initialized")

    await handle_websocket_connection(websocket, service)


# Custom exception handlers
@app.exception_handler(UserInputError)
async def user_input_handler(request: Request, exc: UserInputError):
    """Rejected user requests not mapped by a route."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    """Handle 500 Internal Server errors."""
    import traceback

    logger.error(f"Internal server error: {exc}")

    content = {
        "error": "Internal Server Error",
        "message": "An unexpected error occurred",
    }

    # Include detailed error info in debug mode
    if settings.DEBUG:
        content["detail"] = str(exc)
        content["traceback"] = traceback.format_exc()
        content["path"] = str(request.url)
        content["method"] = request.method

    return JSONResponse(status_code=500, content=content)


# Run with: uvicorn arena.api.main:app --host 0.0.0.0 --port 8000 --reload
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "arena.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level="info",
    )
