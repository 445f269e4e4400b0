"""Main entry point for the Courier application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from courier import __version__
from courier.api.v1 import conversations_router, relay_router
from courier.core.logging import configure_logging
from courier.core.settings import settings
from courier.services.errors import validation_error_from
from courier.services.fanout import RedisFanout, create_fanout, fanout_enabled
from courier.services.relay import get_relay_gateway

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Direct-messaging relay with durable history",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(conversations_router, prefix="/api/v1")
app.include_router(relay_router, prefix="/api/v1")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request input as 400 naming the violated field."""
    error = validation_error_from(list(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": error.reason, "field": error.field},
    )


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    gateway = get_relay_gateway()
    if fanout_enabled():
        fanout = create_fanout(gateway.deliver_remote)
        await fanout.start()
        gateway.fanout = fanout
        app.state.fanout = fanout
    else:
        app.state.fanout = None
    logger.info("%s %s started", settings.app_name, __version__)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    gateway = get_relay_gateway()
    fanout: RedisFanout | None = getattr(app.state, "fanout", None)
    if fanout:
        gateway.fanout = None
        await fanout.stop()
    gateway.registry.clear()


@app.get("/health")
async def health_check() -> dict[str, str | int]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok", "onlineUsers": get_relay_gateway().registry.online_count()}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": f"{settings.app_name} API",
        "version": __version__,
        "description": "Direct-messaging relay with durable history",
        "websocket": "/api/v1/ws",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("courier.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
