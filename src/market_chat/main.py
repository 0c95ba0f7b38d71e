# src/market_chat/main.py
"""Main entry point for the Market Chat application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from market_chat.api.v1 import messages_router, moderation_router, system_router
from market_chat.core.errors import ChatServiceError, ValidationFailed
from market_chat.core.settings import settings
from market_chat.services.eligibility import get_holder_predicate
from market_chat.services.realtime import get_realtime_broker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Market Chat API",
    description="Wallet-gated per-market chat with a moderation overlay",
    version=settings.app_version,
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
app.include_router(messages_router, prefix="/api/v1")
app.include_router(moderation_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError) -> JSONResponse:
    """Render typed service failures as the public error envelope."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed bodies the same way content rejections are reported."""
    errors = exc.errors()
    if any(error.get("type") == "missing" for error in errors):
        reason = "Missing required fields"
    elif any(
        error.get("type") == "string_too_long" and error.get("loc", ())[-1:] == ("message",)
        for error in errors
    ):
        reason = f"Message exceeds {settings.chat_max_raw_message_length} character limit"
    else:
        reason = "Invalid request"
    failure = ValidationFailed(reason)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=failure.to_payload())


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_realtime_broker().close()
    await get_holder_predicate().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Wallet-gated per-market chat with a moderation overlay",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("market_chat.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
